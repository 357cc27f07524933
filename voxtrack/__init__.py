"""Segmentation of volumetric time series and identity tracking by voxel overlap."""

__version__ = "0.1.0"

from .config import SegmentationConfig, TrackingConfig
from .exceptions import (
    DegenerateHistogram,
    DimensionMismatch,
    InvalidConfiguration,
    TrackingCancelled,
    VoxtrackError
)
from .pipeline import FrameSegmentation, SeriesResult, segment_and_track, segment_frame
from .tracking import CancellationToken, OverlapTracker, track_frames

__all__ = [
    'SegmentationConfig',
    'TrackingConfig',
    'DegenerateHistogram',
    'DimensionMismatch',
    'InvalidConfiguration',
    'TrackingCancelled',
    'VoxtrackError',
    'FrameSegmentation',
    'SeriesResult',
    'segment_and_track',
    'segment_frame',
    'CancellationToken',
    'OverlapTracker',
    'track_frames'
]

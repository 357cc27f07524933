"""Frame-to-frame identity tracking."""

from .overlap import (
    CancellationToken,
    OverlapTracker,
    best_overlaps,
    fresh_labels,
    track_frames
)

__all__ = [
    'CancellationToken',
    'OverlapTracker',
    'best_overlaps',
    'fresh_labels',
    'track_frames'
]

"""Per-frame segmentation and time-series tracking pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import logging

import numpy as np
from tqdm import tqdm

from .analysis.regions import Region, select_central_region
from .config import SegmentationConfig, TrackingConfig
from .exceptions import DimensionMismatch, InvalidConfiguration, TrackingCancelled
from .processing import (
    apply_morphological_opening,
    compute_distance_transform,
    compute_threshold,
    count_components,
    create_mask,
    create_watershed_seeds,
    fill_holes_slicewise,
    remove_small_objects,
    seed_parameters,
    split_with_watershed
)
from .tracking.overlap import CancellationToken, OverlapTracker, fresh_labels
from .utils.timing import Timer, timed_stage
from .utils.volume import rescale_to_working_resolution, validate_volume


@dataclass
class FrameSegmentation:
    mask: np.ndarray
    distance: np.ndarray
    seeds: np.ndarray
    labels: np.ndarray
    threshold: float
    central_region: Optional[Region] = None
    debug: Dict[str, Any] = field(default_factory=dict)

    @property
    def num_regions(self) -> int:
        return int(len(np.unique(self.labels)) - 1)


@dataclass
class SeriesResult:
    labels: List[np.ndarray] = field(default_factory=list)
    central_regions: List[Optional[Region]] = field(default_factory=list)
    segmentations: List[FrameSegmentation] = field(default_factory=list)
    last_id: int = 0


def segment_frame(
    volume: np.ndarray,
    config: SegmentationConfig,
    frame_index: int = 0,
    timer: Optional[Timer] = None,
    select_central: Optional[bool] = None
) -> FrameSegmentation:
    """Threshold, clean and split one frame into labelled regions.

    Args:
        volume: Scalar volume of one frame
        config: Segmentation settings
        frame_index: Position in the series, used in diagnostics
        timer: Optional stage timer
        select_central: Override ``config.select_central_region``

    Returns:
        FrameSegmentation; a blank frame yields zero regions, not an error

    Raises:
        InvalidConfiguration: With the frame index, if a parameter does not
            fit the volume
    """
    try:
        if select_central is None:
            select_central = config.select_central_region
        return _segment_frame(volume, config, frame_index, timer, select_central)
    except InvalidConfiguration as e:
        if e.frame_index is not None:
            raise
        raise InvalidConfiguration(str(e), frame_index) from e


def _segment_frame(volume, config, frame_index, timer, select_central) -> FrameSegmentation:
    volume = validate_volume(volume, frame_index)
    if len(config.spacing) != volume.ndim:
        raise InvalidConfiguration(
            f"Spacing {config.spacing} does not match a {volume.ndim}-dimensional volume",
            frame_index
        )
    spacing = config.working_spacing
    debug: Dict[str, Any] = {'frame_index': frame_index}

    if config.working_voxel_size is not None:
        with timed_stage(timer, "Rescaling"):
            volume = rescale_to_working_resolution(volume, config.spacing, config.working_voxel_size)
            debug['working_shape'] = volume.shape

    with timed_stage(timer, "Thresholding"):
        threshold, threshold_debug = compute_threshold(volume, config)
        debug.update(threshold_debug)
        mask = create_mask(volume, threshold)
        debug['mask_voxels'] = int(np.count_nonzero(mask))

    with timed_stage(timer, "Morphological Cleanup"):
        debug['components_before_cleanup'] = count_components(mask)
        if config.min_object_size > 0:
            mask = remove_small_objects(mask, config.min_object_size, spacing)
        if config.fill_holes:
            mask = fill_holes_slicewise(mask)
        if config.opening_radius > 0:
            mask = apply_morphological_opening(mask, config.opening_radius_voxels, config.use_gpu)
        debug['components_after_cleanup'] = count_components(mask)

    with timed_stage(timer, "Distance Transform"):
        distance = compute_distance_transform(mask, spacing, config.use_gpu)

    if config.use_watershed:
        with timed_stage(timer, "Watershed Segmentation"):
            radius, global_threshold, local_threshold = seed_parameters(config)
            seeds = create_watershed_seeds(distance, radius, global_threshold, local_threshold)
            labels = split_with_watershed(mask, distance, seeds, config.label_unseeded_components)
            debug['num_seeds'] = int(seeds.max())
    else:
        seeds = np.zeros(mask.shape, dtype=np.int32)
        labels, _ = fresh_labels(mask)

    central_region = None
    if select_central:
        central_region = select_central_region(labels, config.central_region_radius_voxels, spacing)
        debug['central_label'] = central_region.label if central_region is not None else None

    result = FrameSegmentation(
        mask=mask,
        distance=distance,
        seeds=seeds,
        labels=labels,
        threshold=threshold,
        central_region=central_region,
        debug=debug
    )
    debug['num_regions'] = result.num_regions
    logging.info(f"Frame {frame_index}: threshold {threshold:.2f}, {result.num_regions} regions")
    return result


def segment_and_track(
    frames: Iterable[np.ndarray],
    config: SegmentationConfig,
    tracking_config: Optional[TrackingConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
    keep_segmentations: bool = False,
    timer: Optional[Timer] = None
) -> SeriesResult:
    """Segment every frame of a series and thread persistent ids through it.

    Frames are processed strictly in order; each frame's tracking step uses
    the sealed label volume of the frame before. The cancellation token is
    checked between frames only.

    Args:
        frames: Scalar volumes in time order
        config: Segmentation settings
        tracking_config: Tracking settings
        cancel_token: Stops the run before the next frame when cancelled
        keep_segmentations: Keep masks, distance maps and seeds per frame
        timer: Optional stage timer

    Returns:
        SeriesResult with one tracked label volume per frame

    Raises:
        TrackingCancelled: Carries the tracked label volumes done so far
    """
    tracking_config = tracking_config or TrackingConfig()
    tracker = OverlapTracker()
    result = SeriesResult()

    progress = tqdm(frames, desc="Segmenting frames", disable=not tracking_config.show_progress)
    for frame_index, volume in enumerate(progress):
        if (cancel_token is not None
                and frame_index % tracking_config.check_cancel_every == 0
                and cancel_token.cancelled):
            logging.warning(f"Run cancelled before frame {frame_index}")
            raise TrackingCancelled(frame_index, result.labels)

        try:
            # Central regions are picked on the tracked ids below
            segmentation = segment_frame(volume, config, frame_index, timer, select_central=False)
            with timed_stage(timer, "Tracking"):
                tracked = tracker.update(segmentation.labels)
        except (InvalidConfiguration, DimensionMismatch) as e:
            logging.error(f"Series aborted at frame {frame_index}: {str(e)}", exc_info=True)
            raise

        central_region = None
        if config.select_central_region:
            central_region = select_central_region(
                tracked, config.central_region_radius_voxels, config.working_spacing
            )
            segmentation.central_region = central_region
            segmentation.debug['central_label'] = (
                central_region.label if central_region is not None else None
            )

        result.labels.append(tracked)
        result.central_regions.append(central_region)
        if keep_segmentations:
            result.segmentations.append(segmentation)

    result.last_id = tracker.last_id
    logging.info(f"Tracked {len(result.labels)} frames, {result.last_id} ids issued")
    if timer is not None:
        logging.info(f"\nPerformance Summary:\n{timer.get_summary()}")
    return result

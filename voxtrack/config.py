"""Configuration settings for the segmentation and tracking pipeline."""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .exceptions import InvalidConfiguration

THRESHOLD_MODES = ('fixed', 'half_maximum', 'max_fraction', 'kmeans')


@dataclass
class SegmentationConfig:
    # Data Parameters
    spacing: Tuple[float, ...]  # Physical voxel size per axis, e.g. microns
    working_voxel_size: Optional[float] = None  # Rescale to isotropic resolution first

    # Threshold
    threshold_mode: str = 'fixed'
    threshold: Optional[float] = None  # Required for 'fixed'
    histogram_max_value: float = 65535.0
    histogram_bin_width: float = 5.0
    threshold_multiplier: float = 2.0  # In units of background peak half width
    max_fraction: float = 0.5

    # K-means Parameters
    n_clusters: int = 3
    target_cluster: int = 0  # 0 = darkest, voxels brighter than it are foreground
    random_seed: Optional[int] = None

    # Morphological Operations
    min_object_size: float = 0.0  # Physical units (e.g. cubic microns)
    fill_holes: bool = True
    opening_radius: float = 0.0  # Physical units, 0 disables opening

    # Watershed
    use_watershed: bool = True
    watershed_search_radius: float = 2.0  # Physical units
    global_distance_threshold: float = 1.0  # Physical units
    local_distance_threshold: float = 1.0  # Physical units
    label_unseeded_components: bool = False

    # Central Region
    select_central_region: bool = False
    central_region_tolerance: float = 0.0  # Physical units

    # Processing
    use_gpu: bool = False

    def __post_init__(self):
        self.spacing = tuple(float(s) for s in self.spacing)

        if not self.spacing:
            raise InvalidConfiguration("Spacing must name at least one axis")

        if any(not math.isfinite(s) or s <= 0 for s in self.spacing):
            raise InvalidConfiguration(f"Spacing must be positive, got {self.spacing}")

        if self.working_voxel_size is not None and self.working_voxel_size <= 0:
            raise InvalidConfiguration(
                f"Working voxel size must be positive, got {self.working_voxel_size}"
            )

        if self.threshold_mode not in THRESHOLD_MODES:
            raise InvalidConfiguration(
                f"Unknown threshold mode '{self.threshold_mode}', "
                f"expected one of {THRESHOLD_MODES}"
            )

        if self.threshold_mode == 'fixed':
            if self.threshold is None or self.threshold <= 0:
                raise InvalidConfiguration(
                    f"Fixed threshold must be positive, got {self.threshold}"
                )

        if self.histogram_max_value <= 0 or self.histogram_bin_width <= 0:
            raise InvalidConfiguration(
                f"Invalid histogram range: max {self.histogram_max_value}, "
                f"bin width {self.histogram_bin_width}"
            )

        if self.threshold_multiplier <= 0:
            raise InvalidConfiguration(
                f"Threshold multiplier must be positive, got {self.threshold_multiplier}"
            )

        if not 0 < self.max_fraction <= 1:
            raise InvalidConfiguration(f"Max fraction must be in (0, 1], got {self.max_fraction}")

        if self.n_clusters < 2 or not 0 <= self.target_cluster < self.n_clusters - 1:
            raise InvalidConfiguration(
                f"Invalid k-means setup: {self.n_clusters} clusters, target {self.target_cluster}"
            )

        if self.min_object_size < 0:
            raise InvalidConfiguration(
                f"Minimum object size must be >= 0, got {self.min_object_size}"
            )

        if self.opening_radius < 0:
            raise InvalidConfiguration(f"Opening radius must be >= 0, got {self.opening_radius}")

        if self.use_watershed:
            if self.global_distance_threshold <= 0 or self.local_distance_threshold <= 0:
                raise InvalidConfiguration(
                    "Distance thresholds must be positive, got "
                    f"global {self.global_distance_threshold}, "
                    f"local {self.local_distance_threshold}"
                )
            if self.search_radius_voxels < 2:
                raise InvalidConfiguration(
                    f"Watershed search radius of {self.watershed_search_radius} covers "
                    f"{self.search_radius_voxels} voxels, at least 2 are required"
                )

        if self.central_region_tolerance < 0:
            raise InvalidConfiguration(
                f"Central region tolerance must be >= 0, got {self.central_region_tolerance}"
            )

    @property
    def working_spacing(self) -> Tuple[float, ...]:
        """Voxel size after the optional isotropic rescale."""
        if self.working_voxel_size is None:
            return self.spacing
        return (float(self.working_voxel_size),) * len(self.spacing)

    def to_voxels(self, length: float) -> int:
        """Convert a physical length to voxels along the finest working axis."""
        return int(length / min(self.working_spacing))

    @property
    def search_radius_voxels(self) -> int:
        return self.to_voxels(self.watershed_search_radius)

    @property
    def central_region_radius_voxels(self) -> int:
        return self.to_voxels(self.central_region_tolerance)

    @property
    def opening_radius_voxels(self) -> int:
        return int(math.ceil(self.opening_radius / min(self.working_spacing)))


@dataclass
class TrackingConfig:
    show_progress: bool = True  # tqdm bar over frames
    check_cancel_every: int = 1  # Frames between cancellation checks

    def __post_init__(self):
        if self.check_cancel_every < 1:
            raise InvalidConfiguration(
                f"Cancellation check interval must be >= 1, got {self.check_cancel_every}"
            )

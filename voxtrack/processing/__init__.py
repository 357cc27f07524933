"""Core processing algorithms for frame segmentation."""

from .histogram import (
    IntensityHistogram,
    compute_threshold,
    half_maximum_threshold,
    max_fraction_threshold
)
from .kmeans import kmeans_threshold
from .mask import create_mask
from .morphology import (
    apply_morphological_opening,
    count_components,
    fill_holes_slicewise,
    remove_small_objects
)
from .distance import compute_distance_transform
from .seeds import create_watershed_seeds, seed_parameters
from .watershed import split_with_watershed

__all__ = [
    'IntensityHistogram',
    'compute_threshold',
    'half_maximum_threshold',
    'max_fraction_threshold',
    'kmeans_threshold',
    'create_mask',
    'apply_morphological_opening',
    'count_components',
    'fill_holes_slicewise',
    'remove_small_objects',
    'compute_distance_transform',
    'create_watershed_seeds',
    'seed_parameters',
    'split_with_watershed'
]

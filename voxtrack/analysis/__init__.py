"""Region extraction and selection on label volumes."""

from .regions import (
    Region,
    draw_sphere,
    region_for_label,
    regions_from_labels,
    select_central_region
)

__all__ = [
    'Region',
    'draw_sphere',
    'region_for_label',
    'regions_from_labels',
    'select_central_region'
]

"""Labelled regions, central region selection and bounded drawing."""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np
from scipy import ndimage as ndi

from ..exceptions import InvalidConfiguration
from ..utils.volume import validate_spacing


@dataclass(frozen=True)
class Region:
    """One label of one frame. Recomputed per frame, never linked across frames."""

    label: int
    voxel_count: int
    bbox: Tuple[slice, ...]
    centroid: Tuple[float, ...]  # Voxel coordinates
    physical_size: float

    def to_mask(self, labels: np.ndarray) -> np.ndarray:
        """Binary mask of this region in the shape of ``labels``."""
        mask = np.zeros(labels.shape, dtype=bool)
        mask[self.bbox] = labels[self.bbox] == self.label
        return mask


def regions_from_labels(
    labels: np.ndarray,
    spacing: Optional[Sequence[float]] = None
) -> List[Region]:
    """All regions of a label volume in ascending label order."""
    labels = np.asarray(labels)
    spacing = validate_spacing(spacing, labels.ndim)
    voxel_volume = float(np.prod(spacing))

    present = np.unique(labels)
    present = present[present > 0]
    if present.size == 0:
        return []

    counts = np.bincount(labels.ravel(), minlength=int(present[-1]) + 1)
    centroids = ndi.center_of_mass(np.ones(labels.shape), labels, index=present)
    boxes = ndi.find_objects(labels)

    regions = []
    for label, centroid in zip(present, centroids):
        label = int(label)
        regions.append(Region(
            label=label,
            voxel_count=int(counts[label]),
            bbox=boxes[label - 1],
            centroid=tuple(float(c) for c in centroid),
            physical_size=float(counts[label]) * voxel_volume
        ))
    return regions


def region_for_label(
    labels: np.ndarray,
    label: int,
    spacing: Optional[Sequence[float]] = None
) -> Optional[Region]:
    """The region carrying ``label``, or None if the label is absent."""
    labels = np.asarray(labels)
    spacing = validate_spacing(spacing, labels.ndim)

    voxels = labels == label
    voxel_count = int(np.count_nonzero(voxels))
    if label <= 0 or voxel_count == 0:
        return None

    bbox = ndi.find_objects(voxels.astype(np.int32))[0]
    centroid = ndi.center_of_mass(voxels)
    return Region(
        label=int(label),
        voxel_count=voxel_count,
        bbox=bbox,
        centroid=tuple(float(c) for c in centroid),
        physical_size=voxel_count * float(np.prod(spacing))
    )


def _ball_offsets(radius: int, ndim: int) -> np.ndarray:
    """Integer offsets within ``radius``, by distance then lexicographic order."""
    grid = np.indices((2 * radius + 1,) * ndim).reshape(ndim, -1).T - radius
    squared = np.sum(grid * grid, axis=1)
    inside = squared <= radius * radius
    grid, squared = grid[inside], squared[inside]
    # lexsort sorts by the last key first
    order = np.lexsort(tuple(grid[:, d] for d in reversed(range(ndim))) + (squared,))
    return grid[order]


def select_central_region(
    labels: np.ndarray,
    radius: int = 0,
    spacing: Optional[Sequence[float]] = None
) -> Optional[Region]:
    """Region at the geometric centre of a label volume.

    The centre voxel is ``shape // 2``. If it is background and ``radius`` is
    positive, voxels within ``radius`` voxels of the centre are probed by
    increasing Euclidean distance, equal distances in lexicographic coordinate
    order, and the first labelled one wins.

    Returns:
        The selected Region, or None if no label lies within reach
    """
    labels = np.asarray(labels)
    if radius < 0:
        raise InvalidConfiguration(f"Central region radius must be >= 0, got {radius}")

    center = np.array([n // 2 for n in labels.shape], dtype=np.int64)
    central_label = int(labels[tuple(center)])

    if central_label == 0 and radius > 0:
        positions = center + _ball_offsets(radius, labels.ndim)
        in_bounds = np.all((positions >= 0) & (positions < np.array(labels.shape)), axis=1)
        positions = positions[in_bounds]
        values = labels[tuple(positions.T)]
        hits = np.nonzero(values)[0]
        if hits.size:
            central_label = int(values[hits[0]])
            logging.debug(f"Central region found at offset {positions[hits[0]] - center}")

    if central_label == 0:
        logging.info("No region at the volume centre")
        return None

    return region_for_label(labels, central_label, spacing)


def draw_sphere(
    volume: np.ndarray,
    center: Sequence[float],
    radius: float,
    value: float,
    spacing: Optional[Sequence[float]] = None
) -> int:
    """Set all voxels within a physical ``radius`` of ``center`` to ``value``.

    Positions outside the volume are skipped rather than raising.

    Args:
        volume: Array modified in place
        center: Centre in voxel coordinates
        radius: Radius in physical units
        value: Value to write
        spacing: Physical voxel size per axis, unit if None

    Returns:
        Number of skipped writes
    """
    spacing = np.asarray(validate_spacing(spacing, volume.ndim))
    if radius < 0:
        raise InvalidConfiguration(f"Radius must be >= 0, got {radius}")

    extent = np.ceil(radius / spacing).astype(np.int64)
    grid = np.indices(tuple(2 * extent + 1)).reshape(volume.ndim, -1).T - extent
    inside = np.sum((grid * spacing) ** 2, axis=1) <= radius * radius
    positions = np.rint(np.asarray(center, dtype=np.float64)).astype(np.int64) + grid[inside]

    in_bounds = np.all((positions >= 0) & (positions < np.array(volume.shape)), axis=1)
    volume[tuple(positions[in_bounds].T)] = value

    skipped = int(np.count_nonzero(~in_bounds))
    if skipped:
        logging.debug(f"Skipped {skipped} writes outside the volume")
    return skipped

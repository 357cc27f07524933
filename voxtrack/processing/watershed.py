"""Watershed splitting of binary masks from distance-map seeds."""

import logging

import numpy as np
from scipy import ndimage as ndi
from skimage.segmentation import watershed

from ..exceptions import DimensionMismatch
from .morphology import face_structure


def flood_priority(distance: np.ndarray, mask: np.ndarray, markers: np.ndarray) -> np.ndarray:
    """Integer flooding keys that order seeds by label within each level.

    Each voxel of the mask gets the rank of its inverted distance, scaled so
    that the seed voxels of one level sort before all other voxels of that
    level and among themselves by ascending label. skimage floods equal keys
    in insertion order, so the fronts of lower labels always move first.
    """
    _, level_rank = np.unique(-distance[mask], return_inverse=True)
    seed_labels = np.unique(markers[markers > 0])
    stride = seed_labels.size + 2

    keys = np.zeros(mask.shape, dtype=np.int64)
    keys[mask] = level_rank.ravel() * stride + (stride - 1)
    seeded = markers > 0
    keys[seeded] -= (stride - 2) - np.searchsorted(seed_labels, markers[seeded])
    return keys.astype(np.float64)


def split_with_watershed(
    mask: np.ndarray,
    distance: np.ndarray,
    seeds: np.ndarray,
    label_unseeded_components: bool = False
) -> np.ndarray:
    """Flood seeds over the inverted distance map within the mask.

    Voxels are claimed in order of decreasing distance by the first flood
    front that reaches them. Fronts arriving at the same level together are
    resolved in favour of the lower seed label, whatever the seeds' positions.

    Args:
        mask: Binary mask constraining the flood
        distance: Squared distance map
        seeds: Seed label volume, 0 = no seed
        label_unseeded_components: Give mask components that hold no seed a
            label of their own instead of leaving them at 0

    Returns:
        int32 label volume, 0 outside the mask
    """
    mask = np.asarray(mask, dtype=bool)
    distance = np.asarray(distance)
    seeds = np.asarray(seeds)

    for other in (distance, seeds):
        if other.shape != mask.shape:
            raise DimensionMismatch(mask.shape, other.shape)

    markers = np.where(mask, seeds, 0).astype(np.int32)
    if markers.any():
        labels = watershed(
            flood_priority(distance, mask, markers),
            markers=markers,
            connectivity=1,
            mask=mask
        ).astype(np.int32)
    else:
        labels = np.zeros(mask.shape, dtype=np.int32)

    # Guard against leakage outside the mask
    labels[~mask] = 0

    if label_unseeded_components:
        components, n_components = ndi.label(mask, structure=face_structure(mask.ndim))
        if n_components:
            seeded = np.zeros(n_components + 1, dtype=bool)
            seeded[np.unique(components[labels > 0])] = True
            unseeded = ~seeded[components] & mask
            if unseeded.any():
                extra, n_extra = ndi.label(unseeded, structure=face_structure(mask.ndim))
                labels[unseeded] = extra[unseeded] + labels.max()
                logging.info(f"Labelled {n_extra} mask components without a seed")

    logging.info(f"Watershed produced {len(np.unique(labels)) - 1} regions")
    return labels

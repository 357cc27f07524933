"""Watershed seeds from local maxima of the distance map."""

from typing import Tuple
import logging

import numpy as np
from scipy import ndimage as ndi

from ..exceptions import InvalidConfiguration
from .morphology import ball_structure, face_structure

MIN_SEARCH_RADIUS = 2


def seed_parameters(config) -> Tuple[int, float, float]:
    """Search radius in voxels and squared distance thresholds from a config.

    Returns:
        Tuple of (radius, global_threshold, local_threshold), thresholds in
        the squared physical units of the distance map
    """
    return (
        config.search_radius_voxels,
        config.global_distance_threshold ** 2,
        config.local_distance_threshold ** 2
    )


def find_local_maxima(distance: np.ndarray, radius: int, global_threshold: float) -> np.ndarray:
    """Voxels at or above ``global_threshold`` that equal their neighbourhood maximum.

    The neighbourhood is a hypersphere of ``radius`` voxels; positions outside
    the volume are ignored.
    """
    footprint = ball_structure(radius, distance.ndim)
    neighbourhood_max = ndi.maximum_filter(
        distance, footprint=footprint, mode='constant', cval=-np.inf
    )
    return (distance >= global_threshold) & (distance == neighbourhood_max)


def create_watershed_seeds(
    distance: np.ndarray,
    radius: int,
    global_threshold: float,
    local_threshold: float
) -> np.ndarray:
    """Label watershed seeds in a squared distance map.

    Neighbouring pixels in the centre of an object often share the same
    distance value, so qualifying voxels are first merged into plateaus by
    connected-component labeling (full connectivity). Plateaus are then
    visited from the highest peak down; a plateau is dropped when it is
    connected to an already accepted seed through foreground voxels whose
    distance stays above ``peak - local_threshold``, i.e. when it is not
    separated from a higher maximum by at least the local threshold.

    Args:
        distance: Squared distance map
        radius: Local maximum search radius in voxels, at least 2
        global_threshold: Minimum squared distance of a seed
        local_threshold: Minimum squared-distance drop between two seeds

    Returns:
        int32 label volume of seeds, 1..N in raster order, 0 elsewhere
    """
    distance = np.asarray(distance, dtype=np.float64)

    if radius < MIN_SEARCH_RADIUS:
        raise InvalidConfiguration(
            f"Local maxima search radius must be >= {MIN_SEARCH_RADIUS} voxels, got {radius}"
        )
    if global_threshold <= 0 or local_threshold < 0:
        raise InvalidConfiguration(
            f"Invalid seed thresholds: global {global_threshold}, local {local_threshold}"
        )

    full_structure = ndi.generate_binary_structure(distance.ndim, distance.ndim)
    candidates = find_local_maxima(distance, radius, global_threshold)
    plateaus, n_plateaus = ndi.label(candidates, structure=full_structure)

    if n_plateaus == 0:
        logging.info("No watershed seeds above the global distance threshold")
        return np.zeros(distance.shape, dtype=np.int32)

    plateau_ids = np.arange(1, n_plateaus + 1)
    peaks = np.asarray(ndi.maximum(distance, plateaus, index=plateau_ids), dtype=np.float64)
    # Raster-order representative voxel per plateau
    first_voxels = ndi.minimum(
        np.arange(distance.size).reshape(distance.shape), plateaus, index=plateau_ids
    )
    first_voxels = np.unravel_index(np.asarray(first_voxels, dtype=np.int64), distance.shape)
    plateau_boxes = ndi.find_objects(plateaus)

    # Basins of {d > level} never cross the foreground components of the map
    face = face_structure(distance.ndim)
    components, _ = ndi.label(distance > 0, structure=face)
    component_boxes = ndi.find_objects(components)

    visiting_order = np.lexsort((plateau_ids, -peaks))
    accepted = np.zeros(distance.shape, dtype=bool)
    # component -> {level: (basin labels of the component box, basins holding a seed)}
    seeded_levels = {}
    n_suppressed = 0

    for position in visiting_order:
        plateau = plateau_ids[position]
        first_voxel = tuple(int(axis[position]) for axis in first_voxels)
        component = int(components[first_voxel])
        component_box = component_boxes[component - 1]
        levels = seeded_levels.get(component)

        if local_threshold > 0 and levels is not None:
            level = max(peaks[position] - local_threshold, 0.0)
            if level not in levels:
                basin_mask = (
                    (distance[component_box] > level) & (components[component_box] == component)
                )
                basins = ndi.label(basin_mask, structure=face)[0]
                seeded = set(np.unique(basins[accepted[component_box]]).tolist()) - {0}
                levels[level] = (basins, seeded)
            basins, seeded = levels[level]
            local_voxel = tuple(c - s.start for c, s in zip(first_voxel, component_box))
            if int(basins[local_voxel]) in seeded:
                n_suppressed += 1
                continue

        plateau_box = plateau_boxes[plateau - 1]
        voxels = plateaus[plateau_box] == plateau
        accepted[plateau_box] |= voxels

        # Full-connectivity plateaus may touch several face-connected components
        coords = tuple(idx + s.start for idx, s in zip(np.nonzero(voxels), plateau_box))
        touched = components[coords]
        for seeded_component in np.unique(touched).tolist():
            box = component_boxes[seeded_component - 1]
            inside = touched == seeded_component
            local_voxels = tuple(c[inside] - s.start for c, s in zip(coords, box))
            for basins, seeded in seeded_levels.setdefault(seeded_component, {}).values():
                seeded.update(np.unique(basins[local_voxels]).tolist())
                seeded.discard(0)

    seeds, n_seeds = ndi.label(accepted, structure=full_structure)
    logging.info(
        f"Found {n_seeds} watershed seeds ({n_suppressed} maxima merged "
        f"below the local threshold)"
    )
    return seeds.astype(np.int32)

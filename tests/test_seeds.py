"""
Unit tests for voxtrack/processing/seeds.py
"""

import numpy as np
import pytest
from scipy import ndimage as ndi

from voxtrack.exceptions import InvalidConfiguration
from voxtrack.processing.distance import compute_distance_transform
from voxtrack.processing.seeds import create_watershed_seeds, find_local_maxima


def two_squares():
    """A 9x9 and a 7x7 square, far apart."""
    mask = np.zeros((20, 40), dtype=bool)
    mask[3:12, 3:12] = True
    mask[4:11, 25:32] = True
    return mask


def bridged_squares():
    """Two 9x9 squares joined by a 5-voxel-wide corridor."""
    mask = np.zeros((15, 40), dtype=bool)
    mask[3:12, 3:12] = True
    mask[3:12, 25:34] = True
    mask[5:10, 12:25] = True
    return mask


class TestLocalMaxima:
    """Test the neighbourhood maximum test."""

    def test_global_threshold(self):
        """Maxima below the global threshold do not qualify."""
        distance = compute_distance_transform(two_squares())

        assert find_local_maxima(distance, 2, 16.0).sum() == 2
        assert find_local_maxima(distance, 2, 17.0).sum() == 1


class TestCreateWatershedSeeds:
    """Test seed labeling."""

    def test_two_blobs_give_two_seeds(self):
        """Distant maxima above the global threshold are two seeds."""
        mask = two_squares()
        distance = compute_distance_transform(mask)

        seeds = create_watershed_seeds(distance, radius=2, global_threshold=4.0, local_threshold=1.0)

        assert seeds.dtype == np.int32
        assert seeds.max() == 2
        for label in (1, 2):
            _, n_parts = ndi.label(seeds == label)
            assert n_parts == 1
        assert seeds[7, 7] == 1
        assert seeds[7, 28] == 2

    def test_seeds_lie_in_foreground(self):
        """Seeds are only placed on foreground voxels."""
        mask = two_squares()
        seeds = create_watershed_seeds(compute_distance_transform(mask), 2, 4.0, 1.0)

        assert not (seeds > 0)[~mask].any()

    def test_plateau_is_one_seed(self):
        """An elongated ridge of equal maxima is a single seed region."""
        mask = np.zeros((15, 31), dtype=bool)
        mask[3:12, 5:26] = True
        distance = compute_distance_transform(mask)

        seeds = create_watershed_seeds(distance, 2, 4.0, 1.0)

        assert seeds.max() == 1
        assert (seeds == 1).sum() > 1

    def test_small_local_threshold_keeps_both_maxima(self):
        """Maxima separated by a deep saddle stay separate seeds."""
        distance = compute_distance_transform(bridged_squares())

        seeds = create_watershed_seeds(distance, 2, 4.0, 1.0)

        assert seeds.max() == 2
        assert seeds[7, 7] > 0
        assert seeds[7, 29] > 0

    def test_large_local_threshold_merges_maxima(self):
        """A maximum not separated by the local threshold is suppressed."""
        distance = compute_distance_transform(bridged_squares())

        seeds = create_watershed_seeds(distance, 2, 4.0, 20.0)

        assert seeds.max() == 1
        assert seeds[7, 7] == 1

    def test_many_objects(self):
        """Every one of several hundred separate objects gets its own seed."""
        mask = np.zeros((200, 200), dtype=bool)
        for row in range(2, 194, 8):
            for col in range(2, 194, 8):
                mask[row:row + 5, col:col + 5] = True
        distance = compute_distance_transform(mask)

        seeds = create_watershed_seeds(distance, 2, 4.0, 1.0)

        assert seeds.max() == 24 * 24
        assert np.count_nonzero(seeds) == 24 * 24
        assert seeds[4, 4] == 1

    def test_suppression_stays_within_each_object(self):
        """A seed in one object never suppresses maxima of another."""
        pair = bridged_squares()
        mask = np.concatenate([pair, pair], axis=0)
        distance = compute_distance_transform(mask)

        merged = create_watershed_seeds(distance, 2, 4.0, 20.0)
        separate = create_watershed_seeds(distance, 2, 4.0, 1.0)

        assert merged.max() == 2
        assert merged[7, 7] > 0 and merged[22, 7] > 0
        assert separate.max() == 4

    def test_diagonal_plateau_seeds_every_touched_object(self):
        """A plateau crossing face-disconnected voxels counts for each of them."""
        distance = np.zeros((8, 14))
        for i in range(1, 6):
            distance[i, i] = 2.0
        distance[5, 6:12] = [1.8, 1.8, 1.8, 1.9, 1.8, 1.8]

        merged = create_watershed_seeds(distance, 2, 1.0, 0.5)
        separate = create_watershed_seeds(distance, 2, 1.0, 0.05)

        assert merged.max() == 1
        assert np.count_nonzero(merged) == 5
        assert separate.max() == 2
        assert separate[5, 9] > 0

    def test_empty_distance_map(self):
        """No foreground, no seeds."""
        seeds = create_watershed_seeds(np.zeros((6, 6)), 2, 1.0, 1.0)

        assert not seeds.any()

    def test_radius_below_two_rejected(self):
        """A radius of one voxel is a configuration error."""
        with pytest.raises(InvalidConfiguration):
            create_watershed_seeds(np.zeros((6, 6)), 1, 1.0, 1.0)

    def test_non_positive_global_threshold_rejected(self):
        """The global threshold must be positive."""
        with pytest.raises(InvalidConfiguration):
            create_watershed_seeds(np.zeros((6, 6)), 2, 0.0, 1.0)

"""Intensity histogram analysis and automatic threshold selection."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple
import logging
import math

import numpy as np

from ..exceptions import DegenerateHistogram, InvalidConfiguration
from .kmeans import kmeans_threshold


@dataclass(frozen=True)
class HistogramPoint:
    index: int
    position: float  # Bin centre in intensity units
    count: int


class IntensityHistogram:
    """Histogram of a volume's samples over ``[0, max_value]``.

    Samples outside the range are clipped into the first or last bin, so every
    voxel is counted exactly once.
    """

    def __init__(self, volume: np.ndarray, max_value: float, bin_width: float):
        if max_value <= 0 or bin_width <= 0:
            raise InvalidConfiguration(
                f"Histogram needs positive max value and bin width, got {max_value}, {bin_width}"
            )

        self.max_value = float(max_value)
        self.bin_width = float(bin_width)
        self.num_bins = max(1, int(math.ceil(self.max_value / self.bin_width)))

        values = np.asarray(volume, dtype=np.float64).ravel()
        bins = np.floor(values / self.bin_width).astype(np.int64)
        np.clip(bins, 0, self.num_bins - 1, out=bins)
        self.counts = np.bincount(bins, minlength=self.num_bins)

    def position(self, index: int) -> float:
        return (index + 0.5) * self.bin_width

    def _point(self, index: int) -> HistogramPoint:
        return HistogramPoint(int(index), self.position(index), int(self.counts[index]))

    def mode(self) -> HistogramPoint:
        """Bin with the highest count; ``argmax`` picks the lowest index on ties."""
        return self._point(int(np.argmax(self.counts)))

    def right_hand_half_maximum(self) -> HistogramPoint:
        """First bin at or above the mode whose count is at most half the mode's.

        Raises:
            DegenerateHistogram: If the counts never drop that far
        """
        mode = self.mode()
        half = mode.count / 2.0
        above = np.nonzero(self.counts[mode.index:] <= half)[0]
        if above.size == 0:
            raise DegenerateHistogram(
                f"No bin above mode {mode.position} drops to half maximum ({half})"
            )
        return self._point(mode.index + int(above[0]))


def half_maximum_threshold(
    volume: np.ndarray,
    max_value: float,
    bin_width: float,
    multiplier: float
) -> Tuple[float, Dict[str, Any]]:
    """Threshold at ``mode + multiplier * (half_max - mode)``.

    The background peak is assumed to be the histogram mode; its right-hand
    half width sets the threshold scale. If no half maximum exists the half
    width falls back to a single bin.

    Returns:
        Tuple of (threshold, diagnostics)
    """
    histogram = IntensityHistogram(volume, max_value, bin_width)
    mode = histogram.mode()
    diagnostics: Dict[str, Any] = {
        'histogram_mode': mode.position,
        'histogram_fallback': False,
    }

    try:
        half_max_position = histogram.right_hand_half_maximum().position
    except DegenerateHistogram as e:
        half_max_position = mode.position + histogram.bin_width
        diagnostics['histogram_fallback'] = True
        logging.warning(f"{str(e)}; using one bin width ({histogram.bin_width}) as half width")

    diagnostics['histogram_half_maximum'] = half_max_position
    threshold = mode.position + multiplier * (half_max_position - mode.position)

    logging.info(f"Intensity offset: {mode.position}")
    logging.info(f"Threshold: {threshold}")
    return float(threshold), diagnostics


def max_fraction_threshold(volume: np.ndarray, fraction: float = 0.5) -> float:
    """Threshold at a fraction of the volume's maximum intensity."""
    if not 0 < fraction <= 1:
        raise InvalidConfiguration(f"Fraction must be in (0, 1], got {fraction}")
    return float(np.max(volume)) * fraction


def compute_threshold(volume: np.ndarray, config) -> Tuple[float, Dict[str, Any]]:
    """Pick the mask threshold according to ``config.threshold_mode``.

    Args:
        volume: Scalar volume
        config: SegmentationConfig

    Returns:
        Tuple of (threshold, diagnostics)
    """
    mode = config.threshold_mode

    if mode == 'fixed':
        threshold, diagnostics = float(config.threshold), {}
    elif mode == 'half_maximum':
        threshold, diagnostics = half_maximum_threshold(
            volume,
            config.histogram_max_value,
            config.histogram_bin_width,
            config.threshold_multiplier
        )
    elif mode == 'max_fraction':
        threshold, diagnostics = max_fraction_threshold(volume, config.max_fraction), {}
    elif mode == 'kmeans':
        threshold = kmeans_threshold(
            volume,
            n_clusters=config.n_clusters,
            target_cluster=config.target_cluster,
            random_seed=config.random_seed
        )
        diagnostics = {}
    else:
        raise InvalidConfiguration(f"Unknown threshold mode '{mode}'")

    diagnostics['threshold_mode'] = mode
    diagnostics['threshold'] = threshold
    return threshold, diagnostics

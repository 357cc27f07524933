"""Thresholding of scalar volumes into binary masks."""

import numpy as np


def create_mask(volume: np.ndarray, threshold: float) -> np.ndarray:
    """Return a boolean mask that is True where ``volume > threshold``."""
    return np.asarray(volume) > threshold

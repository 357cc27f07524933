"""Validation and resampling helpers for volumes."""

from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.ndimage import zoom

from ..exceptions import DimensionMismatch, InvalidConfiguration


def validate_volume(data: np.ndarray, frame_index: Optional[int] = None) -> np.ndarray:
    """Validate a scalar or boolean volume.

    Args:
        data: Array of any dimensionality >= 1
        frame_index: Frame index used in error messages

    Returns:
        The input as a numpy array

    Raises:
        InvalidConfiguration: If the volume is empty, non-numeric or not finite
    """
    data = np.asarray(data)

    if data.ndim < 1 or data.size == 0:
        raise InvalidConfiguration(f"Expected a non-empty volume, got shape {data.shape}", frame_index)

    if data.dtype != bool and not np.issubdtype(data.dtype, np.number):
        raise InvalidConfiguration(f"Expected numeric data type, got {data.dtype}", frame_index)

    if np.issubdtype(data.dtype, np.floating) and not np.isfinite(data).all():
        raise InvalidConfiguration("Volume contains NaN or infinite values", frame_index)

    return data


def validate_spacing(spacing: Optional[Sequence[float]], ndim: int) -> Tuple[float, ...]:
    """Return calibration as a tuple of floats, one per axis (unit if None)."""
    if spacing is None:
        return (1.0,) * ndim

    spacing = tuple(float(s) for s in spacing)
    if len(spacing) != ndim:
        raise InvalidConfiguration(
            f"Spacing {spacing} does not match a {ndim}-dimensional volume"
        )
    if any(s <= 0 for s in spacing):
        raise InvalidConfiguration(f"Spacing must be positive, got {spacing}")
    return spacing


def check_same_shape(
    expected: Tuple[int, ...],
    data: np.ndarray,
    frame_index: Optional[int] = None
) -> None:
    """Raise DimensionMismatch unless ``data`` has shape ``expected``."""
    if tuple(expected) != tuple(data.shape):
        raise DimensionMismatch(expected, data.shape, frame_index)


def rescale_to_working_resolution(
    data: np.ndarray,
    spacing: Sequence[float],
    working_voxel_size: float,
    order: int = 1
) -> np.ndarray:
    """Resample a volume to an isotropic working voxel size.

    Args:
        data: Input volume
        spacing: Physical voxel size per axis of ``data``
        working_voxel_size: Target isotropic voxel size
        order: Spline order, 0 for masks and label volumes

    Returns:
        Resampled array; boolean input stays boolean
    """
    spacing = validate_spacing(spacing, data.ndim)
    factors = tuple(s / working_voxel_size for s in spacing)

    if all(f == 1.0 for f in factors):
        return data

    if data.dtype == bool:
        return zoom(data.astype(np.uint8), factors, order=0).astype(bool)

    return zoom(data, factors, order=order)

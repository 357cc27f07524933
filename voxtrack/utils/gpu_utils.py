"""GPU memory management utilities.

CuPy is an optional dependency (``pip install voxtrack[gpu]``). Without it
every helper is a no-op and arrays stay on the CPU.
"""

from typing import Any, Tuple
import logging

import numpy as np

try:
    import cupy as cp
    import cupyx.scipy.ndimage as gpu_ndimage
    CUPY_AVAILABLE = True
except ImportError:
    cp = None
    gpu_ndimage = None
    CUPY_AVAILABLE = False


def is_gpu_array(data: Any) -> bool:
    """Check whether ``data`` is a CuPy array."""
    return CUPY_AVAILABLE and isinstance(data, cp.ndarray)


def gpu_available() -> bool:
    """Check whether a CUDA device can actually be used."""
    if not CUPY_AVAILABLE:
        return False
    try:
        return cp.cuda.runtime.getDeviceCount() > 0
    except Exception as e:
        logging.debug(f"No usable CUDA device: {str(e)}")
        return False


def get_gpu_memory_info() -> Tuple[float, float]:
    """Get current GPU memory usage.

    Returns:
        Tuple of (free_memory_gb, total_memory_gb)
    """
    if not CUPY_AVAILABLE:
        return 0.0, 0.0
    try:
        free_bytes, total_bytes = cp.cuda.runtime.memGetInfo()
        return free_bytes / (1024**3), total_bytes / (1024**3)
    except Exception as e:
        logging.warning(f"Failed to get GPU memory info: {str(e)}")
        return 0.0, 0.0


def report_gpu_memory(stage: str = "") -> None:
    """Log current GPU memory usage.

    Args:
        stage: Current processing stage for logging
    """
    free_gb, total_gb = get_gpu_memory_info()
    used_gb = total_gb - free_gb
    percent_used = (used_gb / total_gb) * 100 if total_gb > 0 else 0

    logging.debug(
        f"GPU memory{f' ({stage})' if stage else ''}: "
        f"{used_gb:.1f}GB / {total_gb:.1f}GB used ({percent_used:.1f}%), "
        f"{free_gb:.1f}GB free"
    )


def clear_gpu_memory() -> None:
    """Clear all unused memory on GPU."""
    if not CUPY_AVAILABLE:
        return
    try:
        cp.get_default_memory_pool().free_all_blocks()
        cp.get_default_pinned_memory_pool().free_all_blocks()
    except Exception as e:
        logging.warning(f"Failed to clear GPU memory: {str(e)}")


def to_gpu(data: np.ndarray) -> Any:
    """Transfer data to GPU, returning the input unchanged if that fails."""
    if not CUPY_AVAILABLE:
        return data
    try:
        return cp.asarray(data)
    except Exception as e:
        logging.warning(f"Failed to transfer data to GPU: {str(e)}")
        return data


def to_cpu(data: Any, clear_after: bool = True) -> np.ndarray:
    """Transfer data to CPU with memory management.

    Args:
        data: NumPy or CuPy array
        clear_after: If True, clear GPU memory after transfer

    Returns:
        Numpy array on CPU
    """
    if not is_gpu_array(data):
        return np.asarray(data)

    cpu_data = cp.asnumpy(data)
    if clear_after:
        clear_gpu_memory()
    return cpu_data

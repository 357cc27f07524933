"""Utility functions for the segmentation and tracking pipeline."""

from .gpu_utils import (
    CUPY_AVAILABLE,
    gpu_available,
    clear_gpu_memory,
    to_gpu,
    to_cpu
)
from .timing import Timer, timed_stage, log_execution_time
from .volume import (
    validate_volume,
    validate_spacing,
    check_same_shape,
    rescale_to_working_resolution
)

__all__ = [
    'CUPY_AVAILABLE',
    'gpu_available',
    'clear_gpu_memory',
    'to_gpu',
    'to_cpu',
    'Timer',
    'timed_stage',
    'log_execution_time',
    'validate_volume',
    'validate_spacing',
    'check_same_shape',
    'rescale_to_working_resolution'
]

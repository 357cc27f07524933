"""Error types raised by the segmentation and tracking pipeline."""

from typing import Optional


class VoxtrackError(Exception):
    """Base class for all pipeline errors."""


class InvalidConfiguration(VoxtrackError, ValueError):
    """A parameter is out of range or inconsistent. Fatal, never retried."""

    def __init__(self, message: str, frame_index: Optional[int] = None):
        self.frame_index = frame_index
        if frame_index is not None:
            message = f"Frame {frame_index}: {message}"
        super().__init__(message)


class DegenerateHistogram(VoxtrackError):
    """No bin at or above the mode drops to half the mode's count."""


class DimensionMismatch(VoxtrackError, ValueError):
    """Two volumes of one series differ in shape."""

    def __init__(self, expected, actual, frame_index: Optional[int] = None):
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        self.frame_index = frame_index
        location = f"Frame {frame_index}: " if frame_index is not None else ""
        super().__init__(
            f"{location}expected volume of shape {self.expected}, got {self.actual}"
        )


class TrackingCancelled(VoxtrackError):
    """A tracking run was stopped between two frames.

    ``frame_index`` is the first frame that was not processed; all frames
    before it are sealed, returned in ``completed``, and the tracker can be
    resumed from there.
    """

    def __init__(self, frame_index: int, completed: Optional[list] = None):
        self.frame_index = frame_index
        self.completed = completed if completed is not None else []
        super().__init__(f"Tracking cancelled before frame {frame_index}")

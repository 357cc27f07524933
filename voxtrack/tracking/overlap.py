"""Identity tracking across frames by maximal voxel overlap.

Every region of a new frame inherits the id of the previous-frame region it
overlaps most; regions that overlap nothing get a new id. There is no motion
model and the mapping is not one-to-one: when an object splits, all parts may
inherit the same id.
"""

from typing import Iterable, List, Optional, Tuple
import logging
import threading

import numpy as np
from scipy import ndimage as ndi
from skimage.segmentation import relabel_sequential
from tqdm import tqdm

from ..config import TrackingConfig
from ..exceptions import TrackingCancelled
from ..processing.morphology import face_structure
from ..utils.volume import check_same_shape, validate_volume


class CancellationToken:
    """Thread-safe flag to stop a tracking run between two frames."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def fresh_labels(frame: np.ndarray) -> Tuple[np.ndarray, int]:
    """Number the regions of one frame 1..N.

    Boolean masks are split into face-connected components. Integer label
    volumes keep their regions and are renumbered in ascending label order.
    """
    frame = np.asarray(frame)
    if frame.dtype == bool:
        labels, n_regions = ndi.label(frame, structure=face_structure(frame.ndim))
        return labels.astype(np.int32), int(n_regions)

    labels = np.where(frame > 0, frame, 0).astype(np.int64)
    labels, _, _ = relabel_sequential(labels)
    return labels.astype(np.int32), int(labels.max())


def best_overlaps(previous: np.ndarray, current: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Previous label with the largest voxel overlap for each current label.

    Equal overlap counts go to the lowest previous label.

    Returns:
        Tuple of (current_labels, previous_labels, overlap_counts) for every
        current label that overlaps at least one previous label
    """
    both = (current > 0) & (previous > 0)
    if not both.any():
        empty = np.zeros(0, dtype=np.int64)
        return empty, empty, empty

    pairs, counts = np.unique(
        np.stack([current[both], previous[both]]).astype(np.int64),
        axis=1,
        return_counts=True
    )
    # Sort by current label, then descending count, then ascending previous label
    order = np.lexsort((pairs[1], -counts, pairs[0]))
    pairs, counts = pairs[:, order], counts[order]
    _, first = np.unique(pairs[0], return_index=True)
    return pairs[0, first], pairs[1, first], counts[first]


class OverlapTracker:
    """Assigns persistent ids to the regions of successive frames.

    Frames are boolean masks or integer label volumes of identical shape and
    must be fed in time order. State lives for one series; call ``reset``
    before tracking another.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.last_id = 0
        self.frame_index = 0
        self.previous_labels: Optional[np.ndarray] = None

    @property
    def next_id(self) -> int:
        return self.last_id + 1

    def update(self, frame: np.ndarray) -> np.ndarray:
        """Track one frame and return its label volume of persistent ids."""
        frame = validate_volume(frame, self.frame_index)
        labels, n_regions = fresh_labels(frame)

        if self.previous_labels is None:
            tracked = labels
            self.last_id = n_regions
            logging.info(f"Frame {self.frame_index}: initialised {n_regions} tracks")
        else:
            check_same_shape(self.previous_labels.shape, labels, self.frame_index)
            tracked = self._assign_ids(labels, n_regions)

        self.previous_labels = tracked
        self.frame_index += 1
        return tracked

    def _assign_ids(self, labels: np.ndarray, n_regions: int) -> np.ndarray:
        ids = np.zeros(n_regions + 1, dtype=np.int64)
        matched, inherited, _ = best_overlaps(self.previous_labels, labels)
        ids[matched] = inherited

        # New ids in ascending fresh-label order
        unmatched = np.nonzero(ids[1:] == 0)[0] + 1
        ids[unmatched] = np.arange(self.next_id, self.next_id + unmatched.size)
        self.last_id += int(unmatched.size)

        inherited_ids = ids[matched]
        n_shared = inherited_ids.size - np.unique(inherited_ids).size
        logging.info(
            f"Frame {self.frame_index}: {matched.size} regions continued, "
            f"{unmatched.size} new tracks"
            + (f", {n_shared} sharing an id after a split" if n_shared else "")
        )
        return ids[labels].astype(np.int32)

    def run(
        self,
        frames: Iterable[np.ndarray],
        cancel_token: Optional[CancellationToken] = None,
        config: Optional[TrackingConfig] = None
    ) -> List[np.ndarray]:
        """Track a sequence of frames in order.

        Raises:
            TrackingCancelled: If ``cancel_token`` was cancelled; frames
                tracked so far are attached to the exception
            DimensionMismatch: If a frame changes shape
        """
        config = config or TrackingConfig()
        labelings: List[np.ndarray] = []

        for i, frame in enumerate(tqdm(frames, desc="Tracking frames", disable=not config.show_progress)):
            if cancel_token is not None and i % config.check_cancel_every == 0 and cancel_token.cancelled:
                logging.warning(f"Tracking cancelled before frame {self.frame_index}")
                raise TrackingCancelled(self.frame_index, labelings)
            labelings.append(self.update(frame))

        return labelings


def track_frames(
    frames: Iterable[np.ndarray],
    cancel_token: Optional[CancellationToken] = None,
    config: Optional[TrackingConfig] = None
) -> List[np.ndarray]:
    """Track a full series with a new tracker."""
    return OverlapTracker().run(frames, cancel_token=cancel_token, config=config)

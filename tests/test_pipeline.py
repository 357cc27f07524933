"""
Integration tests for voxtrack/pipeline.py
"""

import numpy as np
import pytest

from voxtrack.config import SegmentationConfig, TrackingConfig
from voxtrack.exceptions import DimensionMismatch, InvalidConfiguration, TrackingCancelled
from voxtrack import pipeline
from voxtrack.analysis.regions import select_central_region
from voxtrack.pipeline import segment_and_track, segment_frame
from voxtrack.tracking.overlap import CancellationToken
from voxtrack.utils.timing import Timer

SHAPE = (16, 16, 24)
QUIET = TrackingConfig(show_progress=False)


def two_cubes(shift=0):
    """Two 6^3 cubes of intensity 100 on a background of 10."""
    volume = np.full(SHAPE, 10, dtype=np.uint16)
    volume[5:11, 5:11, 2 + shift:8 + shift] = 100
    volume[5:11, 5:11, 14 + shift:20 + shift] = 100
    return volume


def bridged_cubes():
    """Two 6^3 cubes joined by a thin 2x2 bar."""
    volume = np.full(SHAPE, 10, dtype=np.uint16)
    volume[5:11, 5:11, 2:8] = 100
    volume[5:11, 5:11, 10:16] = 100
    volume[7:9, 7:9, 8:10] = 100
    return volume


@pytest.fixture
def config():
    return SegmentationConfig(spacing=(1.0, 1.0, 1.0), threshold=50.0)


class TestSegmentFrame:
    """Test single-frame segmentation."""

    def test_two_objects(self, config):
        """Separate cubes become separate regions in raster order."""
        result = segment_frame(two_cubes(), config)

        assert result.num_regions == 2
        assert result.threshold == 50.0
        assert result.labels[8, 8, 4] == 1
        assert result.labels[8, 8, 16] == 2
        assert np.count_nonzero(result.labels == 1) == 216
        assert result.debug['num_seeds'] == 2

    def test_watershed_splits_bridged_objects(self, config):
        """Watershed separates touching objects that share one component."""
        result = segment_frame(bridged_cubes(), config)

        assert result.num_regions == 2
        assert result.debug['components_after_cleanup'] == 1
        assert result.labels[8, 8, 4] != result.labels[8, 8, 12]

    def test_without_watershed(self):
        """Without watershed, each mask component is one region."""
        config = SegmentationConfig(spacing=(1.0, 1.0, 1.0), threshold=50.0, use_watershed=False)

        result = segment_frame(bridged_cubes(), config)

        assert result.num_regions == 1
        assert not result.seeds.any()

    def test_blank_frame(self, config):
        """A frame without foreground yields zero regions."""
        result = segment_frame(np.full(SHAPE, 10, dtype=np.uint16), config)

        assert result.num_regions == 0
        assert not result.labels.any()

    def test_central_region(self):
        """The closest region within the tolerance is selected."""
        config = SegmentationConfig(
            spacing=(1.0, 1.0, 1.0),
            threshold=50.0,
            select_central_region=True,
            central_region_tolerance=3.0
        )

        result = segment_frame(two_cubes(), config)

        assert result.central_region is not None
        assert result.central_region.label == 2
        assert result.central_region.voxel_count == 216

    def test_central_region_out_of_reach(self):
        """A background centre without tolerance selects nothing."""
        config = SegmentationConfig(
            spacing=(1.0, 1.0, 1.0), threshold=50.0, select_central_region=True
        )

        result = segment_frame(two_cubes(), config)

        assert result.central_region is None
        assert result.debug['central_label'] is None

    def test_spacing_mismatch_reports_frame(self):
        """Calibration of the wrong dimensionality is rejected with the frame index."""
        config = SegmentationConfig(spacing=(1.0, 1.0), threshold=50.0)

        with pytest.raises(InvalidConfiguration) as excinfo:
            segment_frame(two_cubes(), config, frame_index=4)

        assert excinfo.value.frame_index == 4
        assert str(excinfo.value).startswith("Frame 4:")

    def test_stage_errors_get_frame_index(self):
        """Errors raised inside a stage are tagged with the frame index."""
        config = SegmentationConfig(
            spacing=(1.0, 1.0, 1.0), threshold_mode='kmeans', random_seed=0
        )

        with pytest.raises(InvalidConfiguration) as excinfo:
            segment_frame(np.full(SHAPE, 10, dtype=np.uint16), config, frame_index=3)

        assert excinfo.value.frame_index == 3

    def test_input_not_modified(self, config):
        """The input volume is left unchanged."""
        volume = two_cubes()
        original = volume.copy()

        segment_frame(volume, config)

        assert np.array_equal(volume, original)


class TestSegmentAndTrack:
    """Test the full series pipeline."""

    def test_ids_persist_over_series(self, config):
        """Moving objects keep their ids across frames."""
        frames = [two_cubes(shift) for shift in range(3)]

        result = segment_and_track(frames, config, QUIET)

        assert len(result.labels) == 3
        assert result.last_id == 2
        for shift, labels in enumerate(result.labels):
            assert set(np.unique(labels)) == {0, 1, 2}
            assert labels[8, 8, 4 + shift] == 1
            assert labels[8, 8, 16 + shift] == 2

    def test_object_appearing_later(self, config):
        """An object entering the series gets the next free id."""
        first = np.full(SHAPE, 10, dtype=np.uint16)
        first[5:11, 5:11, 2:8] = 100

        result = segment_and_track([first, two_cubes()], config, QUIET)

        assert result.labels[1][8, 8, 4] == 1
        assert result.labels[1][8, 8, 16] == 2

    def test_blank_frame_in_series(self, config):
        """A blank frame does not abort the series."""
        frames = [two_cubes(), np.full(SHAPE, 10, dtype=np.uint16), two_cubes()]

        result = segment_and_track(frames, config, QUIET)

        assert not result.labels[1].any()
        assert set(np.unique(result.labels[2])) == {0, 3, 4}

    def test_central_region_uses_tracked_ids(self):
        """Central regions carry the persistent id of their frame."""
        config = SegmentationConfig(
            spacing=(1.0, 1.0, 1.0),
            threshold=50.0,
            select_central_region=True,
            central_region_tolerance=3.0
        )

        result = segment_and_track([two_cubes(0), two_cubes(1)], config, QUIET)

        assert [region.label for region in result.central_regions] == [2, 2]

    def test_central_region_selected_once_per_frame(self, monkeypatch):
        """Series runs pick the central region only on the tracked labels."""
        config = SegmentationConfig(
            spacing=(1.0, 1.0, 1.0),
            threshold=50.0,
            select_central_region=True,
            central_region_tolerance=3.0
        )
        calls = []

        def counting_select(labels, *args, **kwargs):
            calls.append(labels)
            return select_central_region(labels, *args, **kwargs)

        monkeypatch.setattr(pipeline, "select_central_region", counting_select)
        result = segment_and_track(
            [two_cubes(0), two_cubes(1)], config, QUIET, keep_segmentations=True
        )

        assert len(calls) == 2
        assert all(labels is tracked for labels, tracked in zip(calls, result.labels))
        assert result.segmentations[1].central_region.label == 2
        assert result.segmentations[1].debug['central_label'] == 2

    def test_segment_frame_override(self):
        """select_central=False skips the selection a config asks for."""
        config = SegmentationConfig(
            spacing=(1.0, 1.0, 1.0),
            threshold=50.0,
            select_central_region=True,
            central_region_tolerance=3.0
        )

        result = segment_frame(two_cubes(), config, select_central=False)

        assert result.central_region is None
        assert 'central_label' not in result.debug

    def test_shape_change_aborts(self, config):
        """A frame of a different shape raises with its index."""
        frames = [two_cubes(), np.full((16, 16, 25), 10, dtype=np.uint16)]

        with pytest.raises(DimensionMismatch) as excinfo:
            segment_and_track(frames, config, QUIET)

        assert excinfo.value.frame_index == 1

    def test_cancellation(self, config):
        """Cancelling stops before the next frame and keeps finished frames."""
        token = CancellationToken()

        def frames():
            yield two_cubes(0)
            yield two_cubes(1)
            token.cancel()
            yield two_cubes(2)

        with pytest.raises(TrackingCancelled) as excinfo:
            segment_and_track(frames(), config, QUIET, cancel_token=token)

        assert excinfo.value.frame_index == 2
        assert len(excinfo.value.completed) == 2

    def test_keep_segmentations_and_timing(self, config):
        """Intermediate results and stage timings are collected on request."""
        timer = Timer()

        result = segment_and_track(
            [two_cubes(0), two_cubes(1)], config, QUIET, keep_segmentations=True, timer=timer
        )

        assert len(result.segmentations) == 2
        assert result.segmentations[0].distance.max() == 9.0
        assert timer.counts["Thresholding"] == 2
        assert timer.counts["Tracking"] == 2
        assert "Watershed Segmentation" in timer.get_summary()

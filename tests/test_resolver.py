import numpy as np
import pytest

from capture_guidance.checkpoints import CheckpointStore
from capture_guidance.models import (
    CameraPose,
    CaptureError,
    GuidanceThresholds,
    InvalidConfiguration,
    Resolution,
)
from capture_guidance.resolver import GuidanceResolver, bucket_azimuth, nearest_ring

from conftest import ring_pose


@pytest.fixture
def resolver():
    return GuidanceResolver(GuidanceThresholds())


class TestResolve:
    def test_camera_on_ring_facing_center_resolves_first_checkpoint(self, resolver, single_ring_store):
        result = resolver.resolve(ring_pose(0.0), single_ring_store)
        assert result == Resolution(0, CaptureError.NONE)
        assert result.capturable

    def test_camera_beyond_distance_threshold_is_too_far(self, resolver, single_ring_store):
        result = resolver.resolve(ring_pose(0.0, radius=0.5), single_ring_store)
        assert result == Resolution(None, CaptureError.TOO_FAR)
        assert not result.capturable

    def test_resolution_is_idempotent(self, resolver, single_ring_store):
        pose = ring_pose(40.0)
        first = resolver.resolve(pose, single_ring_store)
        second = resolver.resolve(pose, single_ring_store)
        assert first == second == Resolution(2, CaptureError.NONE)

    def test_resolution_does_not_depend_on_statuses(self, resolver, single_ring_store):
        pose = ring_pose(36.0)
        before = resolver.resolve(pose, single_ring_store)
        single_ring_store.mark_captured(2)
        assert resolver.resolve(pose, single_ring_store) == before

    def test_store_not_ready_returns_uncapturable_none(self, resolver, single_ring_geometry):
        store = CheckpointStore.from_geometry(single_ring_geometry)
        result = resolver.resolve(ring_pose(0.0), store)
        assert result == Resolution(None, CaptureError.NONE)
        assert not result.capturable

    def test_azimuth_just_below_360_wraps_to_first_checkpoint(self, resolver, single_ring_store):
        result = resolver.resolve(ring_pose(359.0), single_ring_store)
        assert result == Resolution(0, CaptureError.NONE)

    @pytest.mark.parametrize("azimuth, expected", [(8.9, 0), (9.1, 1), (180.0, 10), (351.5, 0)])
    def test_nearest_checkpoint_by_azimuth(self, resolver, single_ring_store, azimuth, expected):
        assert resolver.resolve(ring_pose(azimuth), single_ring_store).index == expected

    def test_camera_height_tie_picks_lower_ring(self, resolver, two_ring_store):
        result = resolver.resolve(ring_pose(0.0, height=0.01), two_ring_store)
        assert result == Resolution(0, CaptureError.NONE)

    def test_camera_nearer_second_ring_resolves_on_it(self, resolver, two_ring_store):
        result = resolver.resolve(ring_pose(18.0, radius=0.18, height=0.02), two_ring_store)
        assert result == Resolution(21, CaptureError.NONE)

    def test_steep_elevation_is_rejected(self, resolver, single_ring_store):
        result = resolver.resolve(ring_pose(0.0, height=0.1), single_ring_store)
        assert result == Resolution(None, CaptureError.BAD_ELEVATION)

    def test_camera_turned_away_is_not_aligned(self, resolver, single_ring_store):
        result = resolver.resolve(ring_pose(0.0, yaw_offset_deg=20.0), single_ring_store)
        assert result == Resolution(None, CaptureError.NOT_ALIGNED)

    def test_small_turn_stays_aligned(self, resolver, single_ring_store):
        result = resolver.resolve(ring_pose(0.0, yaw_offset_deg=5.0), single_ring_store)
        assert result == Resolution(0, CaptureError.NONE)

    def test_elevation_is_checked_before_alignment(self, resolver, single_ring_store):
        result = resolver.resolve(
            ring_pose(0.0, height=0.1, yaw_offset_deg=45.0), single_ring_store
        )
        assert result.error is CaptureError.BAD_ELEVATION

    def test_distance_is_checked_first(self, resolver, single_ring_store):
        result = resolver.resolve(
            ring_pose(0.0, radius=1.0, height=0.5, yaw_offset_deg=90.0), single_ring_store
        )
        assert result.error is CaptureError.TOO_FAR

    def test_nan_pose_is_too_far(self, resolver, single_ring_store):
        pose = CameraPose(position=[float("nan"), 0.0, 0.0], forward=[-1.0, 0.0, 0.0])
        assert resolver.resolve(pose, single_ring_store) == Resolution(None, CaptureError.TOO_FAR)

    def test_zero_forward_is_too_far(self, resolver, single_ring_store):
        pose = CameraPose(position=[0.21, 0.0, 0.0], forward=[0.0, 0.0, 0.0])
        assert resolver.resolve(pose, single_ring_store) == Resolution(None, CaptureError.TOO_FAR)

    def test_from_arkit_transform(self, resolver, single_ring_store):
        # Camera at +X looking towards -X: local -Z maps to world -X
        transform = np.array([
            [0.0, 0.0, 1.0, 0.21],
            [0.0, 1.0, 0.0, 0.0],
            [-1.0, 0.0, 0.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])
        pose = CameraPose.from_transform(transform)
        assert resolver.resolve(pose, single_ring_store) == Resolution(0, CaptureError.NONE)

    def test_custom_thresholds(self, single_ring_store):
        strict = GuidanceResolver(GuidanceThresholds(alignment_angle_threshold=2.0))
        result = strict.resolve(ring_pose(0.0, yaw_offset_deg=5.0), single_ring_store)
        assert result.error is CaptureError.NOT_ALIGNED

    def test_invalid_thresholds_rejected(self):
        with pytest.raises(InvalidConfiguration):
            GuidanceResolver(GuidanceThresholds(distance_threshold=0.0))


class TestHelpers:
    @pytest.mark.parametrize("height, expected", [(-1.0, 1), (0.0, 1), (0.01, 1), (0.011, 2), (5.0, 2)])
    def test_nearest_ring(self, height, expected):
        assert nearest_ring(height, (0.0, 0.02)) == expected

    def test_nearest_ring_three_rings(self):
        assert nearest_ring(0.19, (0.0, 0.1, 0.2)) == 3

    @pytest.mark.parametrize(
        "azimuth, expected",
        [(0.0, 0), (8.99, 0), (9.0, 1), (17.0, 1), (350.99, 19), (351.0, 0), (359.99, 0)],
    )
    def test_bucket_azimuth(self, azimuth, expected):
        assert bucket_azimuth(azimuth, 20) == expected


@pytest.mark.parametrize("scale", [1e-200, 1e-320, 1e200])
def test_extreme_forward_magnitudes_resolve_without_error(resolver, single_ring_store, scale):
    pose = CameraPose(position=[0.21, 0.0, 0.0], forward=[-scale, 0.0, 0.0])
    assert resolver.resolve(pose, single_ring_store) == Resolution(0, CaptureError.NONE)


@pytest.mark.parametrize("scale", [1e-200, 1e200])
def test_extreme_forward_magnitudes_still_gate_alignment(resolver, single_ring_store, scale):
    pose = CameraPose(position=[0.21, 0.0, 0.0], forward=[0.0, 0.0, scale])
    assert resolver.resolve(pose, single_ring_store) == Resolution(None, CaptureError.NOT_ALIGNED)

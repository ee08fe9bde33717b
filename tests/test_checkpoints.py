import pytest

from capture_guidance.checkpoints import CheckpointStore
from capture_guidance.geometry import build_checkpoints
from capture_guidance.models import CheckpointStatus, InvalidConfiguration


def test_new_store_is_uninitialized_and_not_ready(single_ring_geometry):
    store = CheckpointStore.from_geometry(single_ring_geometry)

    assert len(store) == 20
    assert not store.ready
    assert store.pointed_index is None
    assert all(status is CheckpointStatus.UNINITIALIZED for _, status in store.statuses())


def test_mark_ready_is_idempotent(single_ring_geometry):
    store = CheckpointStore.from_geometry(single_ring_geometry)
    store.mark_ready()
    store.mark_ready()
    assert store.ready


def test_checkpoint_count_must_match_geometry(single_ring_geometry):
    checkpoints = build_checkpoints(single_ring_geometry)[:-1]
    with pytest.raises(InvalidConfiguration):
        CheckpointStore(single_ring_geometry, checkpoints)


def test_get_returns_pose_and_status(single_ring_store):
    pose, status = single_ring_store.get(3)
    assert pose.index == 3
    assert status is CheckpointStatus.UNINITIALIZED


@pytest.mark.parametrize("index", [-1, 20, 100])
def test_unknown_index_raises(single_ring_store, index):
    with pytest.raises(IndexError):
        single_ring_store.get(index)
    with pytest.raises(IndexError):
        single_ring_store.set_status(index, CheckpointStatus.POINTED)


def test_captured_is_terminal(single_ring_store):
    assert single_ring_store.mark_captured(4)

    assert not single_ring_store.set_status(4, CheckpointStatus.POINTED)
    assert not single_ring_store.set_status(4, CheckpointStatus.UNINITIALIZED)
    assert not single_ring_store.point_at(4)
    assert single_ring_store.status(4) is CheckpointStatus.CAPTURED


def test_point_at_keeps_a_single_pointed_checkpoint(single_ring_store):
    assert single_ring_store.point_at(2)
    assert single_ring_store.point_at(7)

    pointed = [i for i, s in single_ring_store.statuses() if s is CheckpointStatus.POINTED]
    assert pointed == [7]
    assert single_ring_store.status(2) is CheckpointStatus.UNINITIALIZED
    assert single_ring_store.pointed_index == 7


def test_point_at_same_index_reports_no_change(single_ring_store):
    single_ring_store.point_at(5)
    assert not single_ring_store.point_at(5)


def test_point_at_none_clears_pointer(single_ring_store):
    single_ring_store.point_at(5)
    assert single_ring_store.point_at(None)
    assert single_ring_store.pointed_index is None
    assert single_ring_store.status(5) is CheckpointStatus.UNINITIALIZED
    assert not single_ring_store.point_at(None)


def test_set_status_pointed_demotes_previous(single_ring_store):
    single_ring_store.set_status(1, CheckpointStatus.POINTED)
    single_ring_store.set_status(9, CheckpointStatus.POINTED)

    assert single_ring_store.status(1) is CheckpointStatus.UNINITIALIZED
    assert single_ring_store.pointed_index == 9


def test_capturing_pointed_checkpoint_clears_pointer(single_ring_store):
    single_ring_store.point_at(6)
    single_ring_store.mark_captured(6)

    assert single_ring_store.pointed_index is None
    # Moving on leaves the captured checkpoint alone
    single_ring_store.point_at(7)
    assert single_ring_store.status(6) is CheckpointStatus.CAPTURED


def test_statuses_snapshot_is_not_affected_by_later_writes(single_ring_store):
    snapshot = single_ring_store.statuses()
    single_ring_store.mark_captured(0)
    assert snapshot[0] == (0, CheckpointStatus.UNINITIALIZED)


def test_for_each_visits_every_checkpoint_in_order(two_ring_store):
    seen = []
    two_ring_store.mark_captured(21)
    two_ring_store.for_each(lambda pose, status: seen.append((pose.index, pose.ring, status)))

    assert [i for i, _, _ in seen] == list(range(40))
    assert seen[21] == (21, 2, CheckpointStatus.CAPTURED)


def test_ring_ranges_and_summary(two_ring_store):
    assert two_ring_store.ring_range(1) == range(0, 20)
    assert two_ring_store.ring_range(2) == range(20, 40)
    with pytest.raises(IndexError):
        two_ring_store.ring_range(3)

    two_ring_store.mark_captured(0)
    two_ring_store.mark_captured(25)
    two_ring_store.mark_captured(26)

    assert two_ring_store.ring_summary() == {
        1: {"total": 20, "captured": 1},
        2: {"total": 20, "captured": 2},
    }
    assert two_ring_store.captured_count == 3
    assert two_ring_store.coverage() == pytest.approx(3 / 40)


def test_reset_clears_captured(single_ring_store):
    single_ring_store.mark_captured(0)
    single_ring_store.point_at(1)
    single_ring_store.reset()

    assert single_ring_store.captured_count == 0
    assert single_ring_store.pointed_index is None

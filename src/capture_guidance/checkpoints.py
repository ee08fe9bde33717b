"""Checkpoint collection and per-checkpoint status tracking."""
from __future__ import annotations

import threading
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .geometry import build_checkpoints
from .models import CheckpointPose, CheckpointStatus, InvalidConfiguration, RingGeometry
from .utils.logging import get_logger

logger = get_logger(__name__)


class CheckpointStore:
    """Owns the checkpoint poses and their statuses.

    Poses are immutable for the life of the store. Statuses are written by a
    single writer (the session applying resolutions and capture results) and
    read by any number of readers (marker re-colouring); every access goes
    through one lock and readers receive copies.

    ``CAPTURED`` is terminal: requests to move a captured checkpoint to any
    other status are ignored.
    """

    def __init__(self, geometry: RingGeometry, checkpoints: Sequence[CheckpointPose]):
        expected = geometry.point_count * geometry.ring_count
        if len(checkpoints) != expected:
            raise InvalidConfiguration(
                f"Expected {expected} checkpoints for {geometry.ring_count} ring(s), "
                f"got {len(checkpoints)}"
            )
        self.geometry = geometry
        self._checkpoints: Tuple[CheckpointPose, ...] = tuple(checkpoints)
        self._statuses: List[CheckpointStatus] = [CheckpointStatus.UNINITIALIZED] * expected
        self._pointed: Optional[int] = None
        self._lock = threading.Lock()
        self._ready = threading.Event()

    @classmethod
    def from_geometry(cls, geometry: RingGeometry) -> "CheckpointStore":
        """Lay out every ring of ``geometry`` and wrap it in a store."""
        return cls(geometry, build_checkpoints(geometry))

    # ------------------------------------------------------------------
    # Geometry (immutable, lock-free)
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._checkpoints)

    def __iter__(self) -> Iterator[CheckpointPose]:
        return iter(self._checkpoints)

    @property
    def center(self) -> np.ndarray:
        return self.geometry.center

    @property
    def ring_heights(self) -> Tuple[float, ...]:
        return self.geometry.heights

    @property
    def ring_count(self) -> int:
        return self.geometry.ring_count

    @property
    def points_per_ring(self) -> int:
        return self.geometry.point_count

    def ring_range(self, ring: int) -> range:
        """Global index range of a 1-based ring."""
        if not 1 <= ring <= self.ring_count:
            raise IndexError(f"Ring {ring} out of range 1..{self.ring_count}")
        start = (ring - 1) * self.points_per_ring
        return range(start, start + self.points_per_ring)

    def pose(self, index: int) -> CheckpointPose:
        self._check_index(index)
        return self._checkpoints[index]

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    @property
    def ready(self) -> bool:
        """True once every checkpoint marker is available to the operator."""
        return self._ready.is_set()

    def mark_ready(self) -> None:
        if not self._ready.is_set():
            self._ready.set()
            logger.info(f"Checkpoint store ready ({len(self)} checkpoints)")

    # ------------------------------------------------------------------
    # Status access
    # ------------------------------------------------------------------

    def get(self, index: int) -> Tuple[CheckpointPose, CheckpointStatus]:
        self._check_index(index)
        with self._lock:
            return self._checkpoints[index], self._statuses[index]

    def status(self, index: int) -> CheckpointStatus:
        return self.get(index)[1]

    def set_status(self, index: int, status: CheckpointStatus) -> bool:
        """Set one checkpoint's status.

        Returns:
            True if the status changed. Demoting a captured checkpoint is a
            no-op and returns False.
        """
        self._check_index(index)
        with self._lock:
            return self._set_locked(index, status)

    def point_at(self, index: Optional[int]) -> bool:
        """Make ``index`` the only pointed checkpoint.

        Any other pointed checkpoint returns to ``UNINITIALIZED``. Passing
        None clears the pointer. Captured checkpoints are never touched.

        Returns:
            True if any status changed.
        """
        if index is not None:
            self._check_index(index)
        with self._lock:
            changed = False
            previous = self._pointed
            if previous is not None and previous != index:
                changed |= self._set_locked(previous, CheckpointStatus.UNINITIALIZED)
            if index is not None:
                changed |= self._set_locked(index, CheckpointStatus.POINTED)
            return changed

    def mark_captured(self, index: int) -> bool:
        return self.set_status(index, CheckpointStatus.CAPTURED)

    def statuses(self) -> List[Tuple[int, CheckpointStatus]]:
        """Snapshot of ``(index, status)`` pairs ordered by index."""
        with self._lock:
            return list(enumerate(self._statuses))

    def for_each(self, fn: Callable[[CheckpointPose, CheckpointStatus], None]) -> None:
        """Call ``fn(pose, status)`` for every checkpoint over one snapshot."""
        with self._lock:
            snapshot = list(self._statuses)
        for pose, status in zip(self._checkpoints, snapshot):
            fn(pose, status)

    @property
    def pointed_index(self) -> Optional[int]:
        with self._lock:
            return self._pointed

    @property
    def captured_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._statuses if s is CheckpointStatus.CAPTURED)

    def coverage(self) -> float:
        """Fraction of checkpoints captured, in [0, 1]."""
        return self.captured_count / len(self) if len(self) else 0.0

    def ring_summary(self) -> Dict[int, Dict[str, int]]:
        """Captured/total counts per ring."""
        with self._lock:
            snapshot = list(self._statuses)
        summary = {}
        for ring in range(1, self.ring_count + 1):
            ring_statuses = [snapshot[i] for i in self.ring_range(ring)]
            summary[ring] = {
                "total": len(ring_statuses),
                "captured": sum(1 for s in ring_statuses if s is CheckpointStatus.CAPTURED),
            }
        return summary

    def reset(self) -> None:
        """Return every checkpoint to ``UNINITIALIZED``, captured ones included."""
        with self._lock:
            self._statuses = [CheckpointStatus.UNINITIALIZED] * len(self._checkpoints)
            self._pointed = None
        logger.info("Checkpoint statuses reset")

    def _set_locked(self, index: int, status: CheckpointStatus) -> bool:
        current = self._statuses[index]
        if current is status:
            return False
        if current is CheckpointStatus.CAPTURED:
            logger.debug(f"Ignoring {status.value} for captured checkpoint {index}")
            return False

        # Swap in a new list so snapshots handed out earlier never change
        statuses = list(self._statuses)
        statuses[index] = status
        self._statuses = statuses

        if status is CheckpointStatus.POINTED:
            if self._pointed is not None and self._pointed != index:
                self._set_locked(self._pointed, CheckpointStatus.UNINITIALIZED)
            self._pointed = index
        elif self._pointed == index:
            self._pointed = None
        return True

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._checkpoints):
            raise IndexError(f"Checkpoint index {index} out of range 0..{len(self._checkpoints) - 1}")

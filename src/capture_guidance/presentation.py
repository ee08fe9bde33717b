"""Presentation-side mapping from checkpoint index to renderable markers.

The guidance core never holds renderer objects. Renderers bind whatever
handle they use (scene entity, widget id) to a checkpoint index here and get
the colour each marker should show for its current status.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional, Tuple

from .checkpoints import CheckpointStore
from .models import CheckpointPose, CheckpointStatus
from .utils.logging import get_logger

logger = get_logger(__name__)

RGBA = Tuple[float, float, float, float]

MARKER_ALPHA = 0.7

MARKER_COLORS: Dict[CheckpointStatus, RGBA] = {
    CheckpointStatus.UNINITIALIZED: (1.0, 0.0, 0.0, MARKER_ALPHA),  # red
    CheckpointStatus.POINTED: (1.0, 1.0, 0.0, MARKER_ALPHA),  # yellow
    CheckpointStatus.CAPTURED: (0.0, 1.0, 0.0, MARKER_ALPHA),  # green
}


def marker_color(status: CheckpointStatus) -> RGBA:
    return MARKER_COLORS[status]


class MarkerRegistry:
    """Index -> marker handle mapping with a completion signal.

    Markers usually load asynchronously. Once every checkpoint has a bound
    handle, ``on_complete`` fires exactly once; the session uses it to mark
    the checkpoint store ready.
    """

    def __init__(self, total: int, on_complete: Optional[Callable[[], None]] = None):
        self.total = total
        self.on_complete = on_complete
        self._handles: Dict[int, Any] = {}
        self._lock = threading.Lock()
        self._completed = False

    def bind(self, index: int, handle: Any) -> None:
        if not 0 <= index < self.total:
            raise IndexError(f"Marker index {index} out of range 0..{self.total - 1}")
        with self._lock:
            self._handles[index] = handle
            fire = not self._completed and len(self._handles) == self.total
            if fire:
                self._completed = True
        if fire:
            logger.info(f"All {self.total} checkpoint markers bound")
            if self.on_complete is not None:
                self.on_complete()

    def handle(self, index: int) -> Optional[Any]:
        with self._lock:
            return self._handles.get(index)

    @property
    def bound_count(self) -> int:
        with self._lock:
            return len(self._handles)

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return self._completed

    def refresh(self, store: CheckpointStore, apply: Callable[[Any, RGBA], None]) -> int:
        """Re-colour every bound marker from the store's current statuses.

        Args:
            store: Checkpoint store to read statuses from.
            apply: Called as ``apply(handle, rgba)`` per bound marker.

        Returns:
            Number of markers updated.
        """
        with self._lock:
            handles = dict(self._handles)
        updated = 0

        def _apply(pose: CheckpointPose, status: CheckpointStatus) -> None:
            nonlocal updated
            handle = handles.get(pose.index)
            if handle is not None:
                apply(handle, marker_color(status))
                updated += 1

        store.for_each(_apply)
        return updated

"""Guidance session: the surface exposed to the UI and tracking layers.

A session wires the components together:

    pose source ──resolve(pose)──> GuidanceResolver ──> CheckpointStore.point_at
    capture button ──toggle_capture_trigger()──> CaptureModeController
    CaptureModeController / button ──capture_now()──> executor ──> CaptureSink
    CaptureSink success ──> CheckpointStore.mark_captured

Subscribers receive a :class:`GuidanceUpdate` whenever the resolution or any
checkpoint status changes, so a UI can refresh without polling. The resolver
and store themselves stay notification-agnostic.
"""

from __future__ import annotations

import dataclasses
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .capture import CaptureModeController, CaptureRegistry, CaptureSink, InFlightCapture
from .checkpoints import CheckpointStore
from .models import (
    CameraPose,
    CaptureMode,
    CheckpointStatus,
    GuidanceConfig,
    Resolution,
)
from .pose_track import MotionSample
from .presentation import MarkerRegistry
from .resolver import GuidanceResolver
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuidanceUpdate:
    """Change notification published to session subscribers."""
    resolution: Resolution
    pointed_index: Optional[int]
    captured_count: int
    total: int
    statuses_changed: bool

    @property
    def message(self) -> str:
        """Guidance text to show the operator."""
        return self.resolution.error.message


class GuidanceSession:
    """One capture session around a single target object."""

    def __init__(
        self,
        config: GuidanceConfig,
        capture_sink: CaptureSink,
        executor: Optional[Executor] = None,
    ):
        """Set up the checkpoint rings and capture machinery.

        Args:
            config: Session configuration.
            capture_sink: Takes the actual photos.
            executor: Runs capture requests. A private thread pool is created
                (and shut down by :meth:`close`) when omitted.

        Raises:
            InvalidConfiguration: If the rings cannot be laid out.
        """
        geometry = config.ring_geometry()

        self.config = config
        self.sink = capture_sink
        self.resolver = GuidanceResolver(config.thresholds())
        self.registry = CaptureRegistry()

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.max_in_flight_captures,
            thread_name_prefix="capture",
        )

        self._lock = threading.Lock()
        self._last_resolution = Resolution()
        self._latest_acceleration: Optional[float] = None
        self._subscribers: List[Callable[[GuidanceUpdate], None]] = []
        self._closed = False

        self.controller = CaptureModeController(
            capture_fn=self.capture_now,
            default_interval_seconds=config.auto_capture_interval_seconds,
            update_interval_seconds=config.update_interval_seconds,
        )

        self.store, self.markers = self._build_store(geometry)
        logger.info(
            f"Session {config.session_id}: {len(self.store)} checkpoints on "
            f"{self.store.ring_count} ring(s), radius {geometry.radius:.3f}m"
        )

    def __enter__(self) -> "GuidanceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @staticmethod
    def _build_store(geometry) -> Tuple[CheckpointStore, MarkerRegistry]:
        store = CheckpointStore.from_geometry(geometry)
        markers = MarkerRegistry(len(store), on_complete=store.mark_ready)
        return store, markers

    @property
    def ready(self) -> bool:
        return self.store.ready

    def mark_ready(self) -> None:
        """Declare every checkpoint marker visible; guidance starts resolving."""
        self.store.mark_ready()

    def bind_marker(self, index: int, handle: Any) -> None:
        """Register the renderer's handle for a checkpoint marker.

        The session becomes ready once every checkpoint has a marker.
        """
        self.markers.bind(index, handle)

    def update_capture_settings(
        self,
        point_count: int,
        ring_count: int,
        heights: Optional[List[float]] = None,
    ) -> None:
        """Rebuild the checkpoint collection for a new ring layout.

        Stops automatic capture and discards all statuses. Explicit heights
        from the current config are kept only when they still match the ring
        count; otherwise heights are derived from the anchor.

        Raises:
            InvalidConfiguration: If the new layout is invalid. The current
                layout stays in place.
        """
        if heights is None and self.config.heights is not None:
            if len(self.config.heights) == ring_count:
                heights = list(self.config.heights)

        config = dataclasses.replace(
            self.config,
            point_count=point_count,
            ring_count=ring_count,
            heights=heights,
        )
        store, markers = self._build_store(config.ring_geometry())

        self.controller.shutdown()
        with self._lock:
            self.config = config
            self.store = store
            self.markers = markers
            self._last_resolution = Resolution()

        logger.info(f"Capture settings updated: {point_count} checkpoints x {ring_count} ring(s)")
        self._publish(statuses_changed=True)

    # ------------------------------------------------------------------
    # Per-frame guidance
    # ------------------------------------------------------------------

    @property
    def last_resolution(self) -> Resolution:
        with self._lock:
            return self._last_resolution

    def resolve(self, pose: CameraPose) -> Resolution:
        """Resolve the current camera pose and update the pointed checkpoint.

        Called once per tracking update.
        """
        with self._lock:
            store = self.store
        resolution = self.resolver.resolve(pose, store)
        statuses_changed = store.point_at(resolution.index)

        with self._lock:
            if store is not self.store:
                # Layout was rebuilt mid-resolve; the index belongs to the old rings
                logger.debug("Dropping resolution for a replaced checkpoint layout")
                return resolution
            previous = self._last_resolution
            self._last_resolution = resolution

        if statuses_changed or resolution != previous:
            self._publish(statuses_changed=statuses_changed)
        return resolution

    def checkpoint_statuses(self) -> List[Tuple[int, CheckpointStatus]]:
        return self.store.statuses()

    def update_motion(self, sample: Union[MotionSample, float, None]) -> None:
        """Record the latest device acceleration (g) for the motion gate."""
        if isinstance(sample, MotionSample):
            sample = sample.acceleration_g
        with self._lock:
            self._latest_acceleration = sample

    # ------------------------------------------------------------------
    # Capture control
    # ------------------------------------------------------------------

    @property
    def capture_mode(self) -> CaptureMode:
        return self.controller.mode

    def set_capture_mode(self, mode: CaptureMode) -> bool:
        return self.controller.set_capture_mode(mode)

    def toggle_capture_trigger(self) -> Any:
        return self.controller.toggle_capture_trigger()

    def advance_capture_mode(self) -> CaptureMode:
        return self.controller.advance_capture_mode()

    def set_interval_seconds(self, seconds: float) -> None:
        self.controller.set_interval_seconds(seconds)

    @property
    def ready_to_capture(self) -> bool:
        """True if a capture request would be accepted right now."""
        return (
            not self._closed
            and self.last_resolution.capturable
            and self.registry.can_accept(self.config.max_in_flight_captures)
            and not self._moving_too_fast()
        )

    def capture_now(self) -> Optional[int]:
        """Capture a photo for the checkpoint satisfied by the last pose.

        The photo is taken on the session executor; this call never blocks
        on the sink.

        Returns:
            Request id of the dispatched capture, or None if no checkpoint
            is satisfied, the camera is moving too fast, or too many
            captures are already in flight.
        """
        with self._lock:
            resolution = self._last_resolution
            store = self.store

        if self._closed:
            logger.warning("Session closed, ignoring capture request")
            return None
        if not resolution.capturable:
            logger.info(f"No checkpoint satisfied ({resolution.error.value}), skipping capture")
            return None
        if self._moving_too_fast():
            logger.info(f"Camera moving too fast ({self._latest_acceleration:.3f}g), skipping capture")
            return None

        record = self.registry.register(
            resolution.index,
            limit=self.config.max_in_flight_captures,
        )
        if record is None:
            logger.warning(f"{self.registry.in_flight} captures in flight, skipping capture")
            return None

        try:
            record.future = self._executor.submit(self._run_capture, store, record)
        except RuntimeError as e:
            self.registry.complete(record.request_id)
            logger.error(f"Could not dispatch capture {record.request_id}: {e}")
            return None

        logger.info(
            f"Capture {record.request_id} dispatched for checkpoint {record.checkpoint_index} "
            f"(in flight: {self.registry.in_flight})"
        )
        return record.request_id

    def wait_for_captures(self, timeout: Optional[float] = None) -> bool:
        """Block until every in-flight capture has completed.

        Returns:
            True if nothing is left in flight.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            records = self.registry.records()
            if not records:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            futures = [r.future for r in records if r.future is not None]
            if futures:
                wait(futures, timeout=remaining)
            else:
                # Record registered but not yet handed to the executor
                time.sleep(0.001)

    def _run_capture(self, store: CheckpointStore, record: InFlightCapture) -> bool:
        index = record.checkpoint_index
        success = False
        try:
            success = bool(self.sink.capture(index))
        except Exception as e:
            logger.error(f"Capture {record.request_id} for checkpoint {index} failed: {e}", exc_info=True)

        try:
            if success:
                changed = store.mark_captured(index)
                logger.info(
                    f"Checkpoint {index} captured ({store.captured_count}/{len(store)}) "
                    f"in {record.age_seconds:.2f}s"
                )
                if changed and store is self.store:
                    self._publish(statuses_changed=True)
            else:
                logger.warning(f"Capture {record.request_id} for checkpoint {index} did not succeed")
        except IndexError as e:
            logger.error(f"Capture {record.request_id} could not be recorded: {e}")
            success = False
        finally:
            self.registry.complete(record.request_id)
        return success

    def _moving_too_fast(self) -> bool:
        threshold = self.config.max_acceleration_g
        acceleration = self._latest_acceleration
        return threshold is not None and acceleration is not None and acceleration >= threshold

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[GuidanceUpdate], None]) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            A function that removes the listener.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, statuses_changed: bool) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
            resolution = self._last_resolution
            store = self.store
        if not subscribers:
            return

        update = GuidanceUpdate(
            resolution=resolution,
            pointed_index=store.pointed_index,
            captured_count=store.captured_count,
            total=len(store),
            statuses_changed=statuses_changed,
        )
        for callback in subscribers:
            try:
                callback(update)
            except Exception as e:
                logger.error(f"Guidance subscriber failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Reporting / teardown
    # ------------------------------------------------------------------

    def summary(self) -> Dict[str, Any]:
        """Coverage summary for reports."""
        store = self.store
        return {
            "session_id": self.config.session_id,
            "total_checkpoints": len(store),
            "captured": store.captured_count,
            "coverage": store.coverage(),
            "rings": {str(ring): counts for ring, counts in store.ring_summary().items()},
            "capture_mode": self.controller.mode.to_dict(),
            "in_flight": self.registry.in_flight,
            "last_resolution": self.last_resolution.to_dict(),
        }

    def close(self) -> None:
        """Stop automatic capture and release the capture executor."""
        if self._closed:
            return
        self._closed = True
        self.controller.shutdown()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
        logger.info(
            f"Session {self.config.session_id} closed: "
            f"{self.store.captured_count}/{len(self.store)} checkpoints captured"
        )

"""Capture triggering: sink interface, in-flight registry and mode control."""
from __future__ import annotations

import itertools
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .models import (
    DEFAULT_AUTO_CAPTURE_INTERVAL_SECS,
    DEFAULT_UPDATE_INTERVAL_SECS,
    CaptureMode,
)
from .timer import CaptureTriggerTimer
from .utils.logging import get_logger

logger = get_logger(__name__)


class CaptureSink(ABC):
    """Takes and stores a photo for a checkpoint.

    Implementations live outside the guidance engine (camera session, dataset
    writer). The engine only needs to know whether the checkpoint can be
    marked captured.
    """

    @abstractmethod
    def capture(self, checkpoint_index: int) -> bool:
        """Capture a photo for ``checkpoint_index``.

        Returns:
            True if the photo was taken and stored.
        """
        pass


@dataclass
class InFlightCapture:
    """A capture request that has been dispatched but not completed."""
    request_id: int
    checkpoint_index: int
    started_at: float = field(default_factory=time.time)
    future: Optional[Future] = None

    @property
    def age_seconds(self) -> float:
        return time.time() - self.started_at


class CaptureRegistry:
    """Owns in-flight capture records keyed by request id.

    Request ids increase monotonically for the life of the registry. A record
    stays registered until :meth:`complete` removes it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._records: Dict[int, InFlightCapture] = {}

    def register(
        self,
        checkpoint_index: int,
        limit: Optional[int] = None,
    ) -> Optional[InFlightCapture]:
        """Record a new capture request.

        Args:
            checkpoint_index: Checkpoint the photo is for.
            limit: Maximum number of concurrent requests, if any.

        Returns:
            The new record, or None if ``limit`` requests are already in flight.
        """
        with self._lock:
            if limit is not None and len(self._records) >= limit:
                return None
            record = InFlightCapture(request_id=next(self._ids), checkpoint_index=checkpoint_index)
            self._records[record.request_id] = record
            return record

    def complete(self, request_id: int) -> Optional[InFlightCapture]:
        with self._lock:
            return self._records.pop(request_id, None)

    def get(self, request_id: int) -> Optional[InFlightCapture]:
        with self._lock:
            return self._records.get(request_id)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._records)

    def can_accept(self, limit: int) -> bool:
        return self.in_flight < limit

    def records(self) -> List[InFlightCapture]:
        with self._lock:
            return list(self._records.values())


class CaptureModeController:
    """Manual/automatic capture state machine.

    In manual mode each toggle of the capture button takes one photo. In
    automatic mode a :class:`CaptureTriggerTimer` calls the same capture
    function every interval, and the capture button pauses or resumes the
    timer. Leaving automatic mode always stops and discards the timer before
    the new mode is committed, so two timers never overlap.
    """

    def __init__(
        self,
        capture_fn: Callable[[], Any],
        default_interval_seconds: float = DEFAULT_AUTO_CAPTURE_INTERVAL_SECS,
        update_interval_seconds: float = DEFAULT_UPDATE_INTERVAL_SECS,
        on_time_update: Optional[Callable[[float], None]] = None,
        timer_factory: Callable[[], CaptureTriggerTimer] = CaptureTriggerTimer,
    ):
        self._capture_fn = capture_fn
        self.default_interval_seconds = default_interval_seconds
        self.update_interval_seconds = update_interval_seconds
        self.on_time_update = on_time_update
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._mode = CaptureMode.manual()
        self._timer: Optional[CaptureTriggerTimer] = None
        self._time_until_capture = 0.0

    @property
    def mode(self) -> CaptureMode:
        return self._mode

    @property
    def timer(self) -> Optional[CaptureTriggerTimer]:
        return self._timer

    @property
    def is_auto_capture_active(self) -> bool:
        """True while the automatic capture timer is running."""
        timer = self.timer
        return timer is not None and timer.is_running

    @property
    def time_until_capture(self) -> float:
        """Seconds until the next automatic capture, 0 when inactive."""
        return self._time_until_capture if self.is_auto_capture_active else 0.0

    def set_capture_mode(self, mode: CaptureMode) -> bool:
        """Switch capture mode.

        Entering automatic mode creates and starts a timer for the mode's
        interval. Re-selecting the current mode changes nothing.

        Returns:
            True if the mode changed.
        """
        with self._lock:
            if mode == self._mode:
                logger.debug(f"Capture mode already {mode}")
                return False

            previous = self._mode
            self._discard_timer()
            self._mode = mode

            if mode.is_automatic:
                self._timer = self._timer_factory()
                self._start_timer()

        logger.info(f"Capture mode: {previous} -> {mode}")
        return True

    def advance_capture_mode(self) -> CaptureMode:
        """Cycle manual -> automatic(default interval) -> manual."""
        with self._lock:
            if self._mode.is_automatic:
                self.set_capture_mode(CaptureMode.manual())
            else:
                self.set_capture_mode(CaptureMode.automatic(self.default_interval_seconds))
            return self._mode

    def set_interval_seconds(self, seconds: float) -> None:
        """Make ``seconds`` the default interval and switch to automatic with it."""
        mode = CaptureMode.automatic(seconds)
        with self._lock:
            self.default_interval_seconds = mode.interval_seconds
            self.set_capture_mode(mode)

    def toggle_capture_trigger(self) -> Any:
        """Handle a capture button press.

        Returns:
            The capture function's result in manual mode, None in automatic
            mode.
        """
        with self._lock:
            mode = self._mode
            if mode.is_automatic:
                if self._timer is None:
                    return None
                if self._timer.is_running:
                    logger.info("Pausing automatic capture")
                    self._timer.stop()
                    self._time_until_capture = 0.0
                else:
                    logger.info("Resuming automatic capture")
                    self._start_timer()
                return None

        return self._capture_fn()

    def shutdown(self) -> None:
        """Stop any running timer. The controller stays in its current mode."""
        with self._lock:
            if self._timer is not None:
                self._timer.stop()
            self._time_until_capture = 0.0

    def _start_timer(self) -> None:
        self._timer.start(
            trigger_every=self._mode.interval_seconds,
            on_trigger=self._on_trigger,
            update_every=self.update_interval_seconds,
            on_update=self._on_update,
        )

    def _discard_timer(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
        self._time_until_capture = 0.0

    def _on_trigger(self) -> None:
        self._capture_fn()

    def _on_update(self, time_remaining: float) -> None:
        self._time_until_capture = time_remaining
        if self.on_time_update is not None:
            self.on_time_update(time_remaining)

"""Periodic capture trigger used in automatic capture mode.

The timer runs two cadences on one background thread:

- a trigger cadence calling ``on_trigger()`` once per ``trigger_every`` seconds
- an update cadence (30 Hz by default) calling ``on_update(time_remaining)``
  so a UI can draw a countdown

Both cadences share a single stop event, so ``stop()`` cancels them together.
A callback already running when ``stop()`` is called finishes normally, but
no trigger starts after ``stop()`` returns. Callbacks run on the timer thread
and must hand slow work (taking and writing a photo) to another executor.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .models import DEFAULT_UPDATE_INTERVAL_SECS
from .utils.logging import get_logger

logger = get_logger(__name__)


class CaptureTriggerTimer:
    """Two-cadence periodic scheduler."""

    def __init__(self, name: str = "capture-trigger"):
        self.name = name
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._next_trigger_time: Optional[float] = None
        self.trigger_count = 0

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._stop_event is not None and not self._stop_event.is_set()

    @property
    def time_remaining(self) -> float:
        """Seconds until the next trigger, 0 when stopped."""
        with self._lock:
            if self._stop_event is None or self._next_trigger_time is None:
                return 0.0
            return max(0.0, self._next_trigger_time - time.perf_counter())

    def start(
        self,
        trigger_every: float,
        on_trigger: Callable[[], None],
        update_every: float = DEFAULT_UPDATE_INTERVAL_SECS,
        on_update: Optional[Callable[[float], None]] = None,
    ) -> bool:
        """Start both cadences.

        Args:
            trigger_every: Seconds between ``on_trigger`` calls.
            on_trigger: Called once per trigger interval.
            update_every: Seconds between ``on_update`` calls.
            on_update: Called with the seconds left until the next trigger.

        Returns:
            True if the timer started, False if it was already running.

        Raises:
            ValueError: If either interval is not positive.
        """
        if not trigger_every > 0:
            raise ValueError(f"trigger_every must be positive, got {trigger_every}")
        if not update_every > 0:
            raise ValueError(f"update_every must be positive, got {update_every}")

        with self._lock:
            if self._stop_event is not None and not self._stop_event.is_set():
                logger.warning(f"Timer {self.name} already running, not starting again")
                return False

            stop_event = threading.Event()
            self._stop_event = stop_event
            self._next_trigger_time = time.perf_counter() + trigger_every
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event, trigger_every, on_trigger, update_every, on_update),
                name=self.name,
                daemon=True,
            )
            self._thread.start()

        logger.info(f"Timer {self.name} started: trigger every {trigger_every:.2f}s")
        return True

    def stop(self, timeout: float = 2.0) -> bool:
        """Cancel both cadences.

        Returns:
            True if the timer was running.
        """
        with self._lock:
            stop_event = self._stop_event
            thread = self._thread
            if stop_event is None or stop_event.is_set():
                return False
            stop_event.set()
            self._next_trigger_time = None

        # A callback may stop its own timer; it cannot join itself
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Timer {self.name} thread still finishing a callback")

        logger.info(f"Timer {self.name} stopped after {self.trigger_count} trigger(s)")
        return True

    def _run(
        self,
        stop_event: threading.Event,
        trigger_every: float,
        on_trigger: Callable[[], None],
        update_every: float,
        on_update: Optional[Callable[[float], None]],
    ) -> None:
        now = time.perf_counter()
        next_trigger = now + trigger_every
        next_update = now

        while not stop_event.is_set():
            now = time.perf_counter()
            wait = min(next_trigger, next_update) - now
            if wait > 0 and stop_event.wait(wait):
                break
            now = time.perf_counter()

            if now >= next_trigger:
                # Skip missed ticks instead of firing a burst after a stall
                missed = int((now - next_trigger) // trigger_every)
                next_trigger += (missed + 1) * trigger_every
                with self._lock:
                    if stop_event.is_set():
                        break
                    self._next_trigger_time = next_trigger
                    self.trigger_count += 1
                self._invoke("on_trigger", on_trigger)

            if on_update is not None and now >= next_update:
                next_update = now + update_every
                if stop_event.is_set():
                    break
                self._invoke("on_update", on_update, max(0.0, next_trigger - now))
            elif on_update is None:
                next_update = next_trigger

    def _invoke(self, label: str, callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Timer {self.name} {label} callback failed: {e}", exc_info=True)

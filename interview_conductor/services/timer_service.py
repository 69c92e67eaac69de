"""Countdown timers for the preparation and recording phases.

Timers are built on a small scheduler interface (``every`` / ``call_later``
returning a cancellable job) so the same countdown logic runs on top of
Socket.IO background tasks in production and on a manual clock in tests.
"""
import logging
import threading
from typing import Callable, Optional

from interview_conductor.config.settings import PREPARE_SECONDS, RECORD_SECONDS

logger = logging.getLogger(__name__)

PREPARING = "preparing"
RECORDING = "recording"


class Job:
    """Handle for a scheduled callback. ``cancel`` may be called any number of times."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True


class SocketIOScheduler:
    """Runs jobs as Socket.IO background tasks."""

    def __init__(self, socketio):
        self.socketio = socketio

    def every(self, interval: float, callback: Callable[[], None]) -> Job:
        job = Job()

        def loop():
            while True:
                self.socketio.sleep(interval)
                if job.cancelled:
                    return
                try:
                    callback()
                except Exception:
                    logger.exception("periodic job failed; stopping it")
                    job.cancel()
                    return

        self.socketio.start_background_task(loop)
        return job

    def call_later(self, delay: float, callback: Callable, *args) -> Job:
        job = Job()

        def run():
            self.socketio.sleep(delay)
            if job.cancelled:
                return
            try:
                callback(*args)
            except Exception:
                logger.exception("delayed job failed")

        self.socketio.start_background_task(run)
        return job


class Countdown:
    """Decrements once per second and fires ``on_expire`` when it reaches zero."""

    def __init__(
        self,
        phase: str,
        seconds: int,
        scheduler,
        on_expire: Callable[["Countdown"], None],
        on_tick: Optional[Callable[["Countdown"], None]] = None,
        lock=None,
    ):
        self.phase = phase
        self.duration = int(seconds)
        self.remaining = int(seconds)
        self.scheduler = scheduler
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._lock = lock or threading.RLock()
        self._job: Optional[Job] = None
        self._done = False

    @property
    def active(self) -> bool:
        return self._job is not None and not self._done

    def start(self) -> "Countdown":
        with self._lock:
            if self._job is None and not self._done:
                self._job = self.scheduler.every(1, self._tick)
        return self

    def cancel(self):
        with self._lock:
            self._done = True
            if self._job is not None:
                self._job.cancel()

    def _tick(self):
        with self._lock:
            if self._done:
                return
            self.remaining = max(0, self.remaining - 1)
            if self._on_tick:
                # a failed tick notification must not stop the countdown
                try:
                    self._on_tick(self)
                except Exception:
                    logger.exception("%s tick handler failed (remaining=%d)", self.phase, self.remaining)
            if self.remaining == 0:
                self.cancel()
                self._on_expire(self)


class TimerEngine:
    """Owns at most one running countdown."""

    def __init__(self, scheduler, lock=None):
        self.scheduler = scheduler
        self._lock = lock or threading.RLock()
        self._active: Optional[Countdown] = None

    @property
    def active(self) -> Optional[Countdown]:
        if self._active is not None and self._active.active:
            return self._active
        return None

    def start_preparation(self, on_expire, on_tick=None) -> Countdown:
        return self._start(PREPARING, PREPARE_SECONDS, on_expire, on_tick)

    def start_recording(self, on_expire, on_tick=None) -> Countdown:
        return self._start(RECORDING, RECORD_SECONDS, on_expire, on_tick)

    def cancel(self):
        with self._lock:
            if self._active is not None:
                self._active.cancel()
                self._active = None

    def _start(self, phase, seconds, on_expire, on_tick) -> Countdown:
        with self._lock:
            self.cancel()
            countdown = Countdown(phase, seconds, self.scheduler, on_expire, on_tick, lock=self._lock)
            self._active = countdown
            return countdown.start()

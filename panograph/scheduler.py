"""Debounced, cancellable rebuild scheduling."""

import threading
from enum import Enum
from typing import Callable, Optional


class RebuildState(Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    REBUILDING = "rebuilding"


class CancellationToken:
    """Set once; a cancelled rebuild must not publish anything"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class RebuildScheduler:
    """State machine IDLE -> SCHEDULED -> REBUILDING -> IDLE.

    request() while SCHEDULED restarts the debounce window against a fresh
    token; request() while REBUILDING is remembered and starts a new cycle
    once the running rebuild finishes. A zero delay runs the rebuild in the
    calling thread.
    """

    def __init__(self, rebuild: Callable[[CancellationToken], None], delay_ms: float = 300,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self._rebuild = rebuild
        self.delay = max(0.0, delay_ms) / 1000.0
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()  # one rebuild at a time
        self._state = RebuildState.IDLE
        self._timer: Optional[threading.Timer] = None
        self._token: Optional[CancellationToken] = None
        self._pending = False
        self.runs = 0

    @property
    def state(self) -> RebuildState:
        with self._lock:
            return self._state

    def request(self):
        """Ask for a rebuild after the debounce window"""
        run_now = None
        with self._lock:
            if self._state is RebuildState.REBUILDING:
                self._pending = True
                return
            self._cancel_scheduled_locked()
            token = self._schedule_locked()
            if self.delay == 0:
                run_now = token
        if run_now is not None:
            self._run(run_now)

    def flush(self):
        """Run a rebuild immediately, replacing any scheduled one"""
        with self._lock:
            self._cancel_scheduled_locked()
            token = CancellationToken()
            self._token = token
            if self._state is not RebuildState.REBUILDING:
                self._state = RebuildState.SCHEDULED
        self._run(token)

    def cancel(self):
        """Drop a scheduled rebuild and any rebuild queued behind a running one"""
        with self._lock:
            self._pending = False
            self._cancel_scheduled_locked()
            if self._state is RebuildState.SCHEDULED:
                self._state = RebuildState.IDLE

    def _cancel_scheduled_locked(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._token is not None and self._state is RebuildState.SCHEDULED:
            self._token.cancel()

    def _schedule_locked(self) -> CancellationToken:
        token = CancellationToken()
        self._token = token
        self._state = RebuildState.SCHEDULED
        if self.delay > 0:
            timer = self._timer_factory(self.delay, self._run, args=(token,))
            timer.daemon = True
            self._timer = timer
            timer.start()
        return token

    def _run(self, token: CancellationToken):
        with self._run_lock:
            with self._lock:
                if token.cancelled:
                    return
                self._state = RebuildState.REBUILDING
                if self._token is token:
                    self._timer = None
            rerun = None
            try:
                self._rebuild(token)
                self.runs += 1
            finally:
                with self._lock:
                    if self._pending:
                        self._pending = False
                        rerun = self._schedule_locked()
                        if self.delay > 0:
                            rerun = None
                    else:
                        self._state = RebuildState.IDLE
        if rerun is not None:
            self._run(rerun)

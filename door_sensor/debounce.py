"""
Debounce state machine turning noisy raw samples into confirmed transitions.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Iterator, Optional

from .status import SharedStatus, Status, StatusEvent


class DebounceState(Enum):
    IDLE = "idle"
    CONFIRMING_CLOSED = "confirming_closed"
    CLOSED = "closed"
    CONFIRMING_OPEN = "confirming_open"


class DebounceEngine:
    """
    Samples a signal source every ``poll_interval`` seconds and confirms a
    new level once it has been seen continuously for ``debounce_delay``
    seconds.

    Idle/Closed are the stable states; the two Confirming states hold a
    candidate together with the monotonic time it was first observed. A
    flip back before the window ends drops the candidate silently.

    The engine state belongs to whichever thread iterates ``events()``;
    only ``stop()`` may be called from elsewhere.
    """

    def __init__(self,
                 source,
                 shared_status: SharedStatus,
                 poll_interval: float,
                 debounce_delay: float,
                 notify_on_startup: bool = False,
                 clock: Callable[[], float] = time.monotonic,
                 logger: logging.Logger = None):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be greater than 0")
        if debounce_delay <= 0:
            raise ValueError("debounce_delay must be greater than 0")

        self.source = source
        self.shared_status = shared_status
        self.poll_interval = poll_interval
        self.debounce_delay = debounce_delay
        self.logger = logger or logging.getLogger("door_sensor.debounce")
        self._clock = clock
        self._stop = threading.Event()
        self._candidate_since: Optional[float] = None

        # Startup: adopt the first sample as the confirmed state
        initial = Status.from_level(self.source.read())
        self._state = DebounceState.CLOSED if initial is Status.CLOSED else DebounceState.IDLE
        self.shared_status.set(initial)
        self.logger.info(f"Initial circuit state: {initial.value.upper()}")

        self._startup_event = StatusEvent(initial, event_type="initial_state") if notify_on_startup else None

    @property
    def state(self) -> DebounceState:
        return self._state

    @property
    def confirmed(self) -> Status:
        """Last confirmed status as seen by the engine."""
        if self._state in (DebounceState.CLOSED, DebounceState.CONFIRMING_OPEN):
            return Status.CLOSED
        return Status.OPEN

    def step(self, level: bool, now: float = None) -> Optional[Status]:
        """Feed one raw sample; return the newly confirmed status, if any."""
        now = self._clock() if now is None else now
        state = self._state

        if state is DebounceState.IDLE:
            if level:
                self._start_candidate(DebounceState.CONFIRMING_CLOSED, now)

        elif state is DebounceState.CONFIRMING_CLOSED:
            if not level:
                self._reject(DebounceState.IDLE)
            elif now - self._candidate_since >= self.debounce_delay:
                return self._confirm(DebounceState.CLOSED, Status.CLOSED)

        elif state is DebounceState.CLOSED:
            if not level:
                self._start_candidate(DebounceState.CONFIRMING_OPEN, now)

        elif state is DebounceState.CONFIRMING_OPEN:
            if level:
                self._reject(DebounceState.CLOSED)
            elif now - self._candidate_since >= self.debounce_delay:
                return self._confirm(DebounceState.IDLE, Status.OPEN)

        return None

    def events(self) -> Iterator[StatusEvent]:
        """
        Yield confirmed events until ``stop()`` is called.

        Blocks between samples. Sources that support ``wait_for_sample``
        are re-read as soon as a value is pushed, and at least once per
        poll interval so a pending candidate can still mature. Errors from
        the source propagate to the caller.
        """
        if self._startup_event is not None:
            event, self._startup_event = self._startup_event, None
            yield event

        wait_for_sample = getattr(self.source, "wait_for_sample", None)

        while not self._stop.is_set():
            status = self.step(self.source.read())
            if status is not None:
                yield StatusEvent(status)

            if wait_for_sample is not None:
                wait_for_sample(self.poll_interval)
            else:
                self._stop.wait(self.poll_interval)

        self.logger.info("Debounce loop stopped")

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _start_candidate(self, state: DebounceState, now: float) -> None:
        self._state = state
        self._candidate_since = now
        self.logger.debug(f"Candidate transition started: {state.value}")

    def _reject(self, state: DebounceState) -> None:
        self.logger.debug(f"Glitch rejected after {self._state.value}, back to {state.value}")
        self._state = state
        self._candidate_since = None

    def _confirm(self, state: DebounceState, status: Status) -> Status:
        self._state = state
        self._candidate_since = None
        self.shared_status.set(status)
        log_level = logging.WARNING if status is Status.OPEN else logging.INFO
        self.logger.log(log_level, f"Circuit state changed: {status.value.upper()}")
        return status

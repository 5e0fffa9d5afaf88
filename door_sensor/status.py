"""
Confirmed circuit status and the shared, thread-safe holder for it.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List


class Status(str, Enum):
    """Confirmed state of the circuit."""

    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def from_level(cls, closed: bool) -> "Status":
        return cls.CLOSED if closed else cls.OPEN

    @classmethod
    def parse(cls, value: str) -> "Status":
        """Parse 'open' / 'closed' (case-insensitive)."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown state '{value}', expected 'open' or 'closed'") from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StatusEvent:
    """A confirmed transition produced by the debounce engine."""

    status: Status
    event_type: str = "state_change"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SharedStatus:
    """
    Last confirmed status, written by the sampling loop and read by anyone.

    The lock is only held for the assignment or the copy, so readers never
    make the writer wait for more than that. Subscribers get their own
    bounded queue; a full queue loses its oldest value instead of blocking
    the writer.
    """

    def __init__(self, initial: Status = Status.OPEN):
        self._lock = threading.Lock()
        self._status = initial
        self._subscribers: List[queue.Queue] = []
        self.logger = logging.getLogger("door_sensor.status")

    def get(self) -> Status:
        with self._lock:
            return self._status

    def set(self, status: Status) -> None:
        with self._lock:
            changed = status != self._status
            self._status = status
            subscribers = list(self._subscribers)

        if changed:
            self.logger.debug(f"Shared status set to {status}")
            self._broadcast(status, subscribers)

    def subscribe(self, maxsize: int = 16) -> queue.Queue:
        """Register a subscriber queue that receives every status change."""
        q = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _broadcast(self, status: Status, subscribers: List[queue.Queue]) -> None:
        for q in subscribers:
            try:
                q.put_nowait(status)
            except queue.Full:
                # Drop the oldest pending value and retry once
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
                try:
                    q.put_nowait(status)
                except queue.Full:
                    self.logger.debug("Subscriber queue still full, dropping update")

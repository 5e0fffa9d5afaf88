"""
Webhook fan-out for confirmed state changes.

Every endpoint gets its own delivery unit on a thread pool, with its own
timeout and retry loop, so one slow or failing endpoint never holds up the
others or the sampling loop.
"""

import functools
import http.client
import json
import logging
import threading
import urllib.error
import urllib.request
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
    wait_fixed,
)

from . import __version__
from .endpoints import Endpoint, EndpointRegistry
from .errors import DeliveryError
from .status import Status, StatusEvent

BACKOFF_FIXED = "fixed"
BACKOFF_EXPONENTIAL = "exponential"


@dataclass
class DispatchResult:
    """Outcome of one event's fan-out once every delivery settled."""

    status: Status
    event_type: str
    success_count: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + len(self.failed)


class NotificationDispatcher:
    def __init__(self,
                 registry: EndpointRegistry,
                 timeout: float = 10.0,
                 max_attempts: int = 3,
                 backoff: str = BACKOFF_FIXED,
                 retry_delay: float = 1.0,
                 backoff_base: float = 2.0,
                 source_tag: str = "door_sensor",
                 max_workers: int = 32,
                 urlopen: Callable[..., Any] = None,
                 sleep: Callable[[float], Any] = None,
                 logger: logging.Logger = None):
        if backoff not in (BACKOFF_FIXED, BACKOFF_EXPONENTIAL):
            raise ValueError(f"Unknown backoff policy: {backoff}")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.registry = registry
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.retry_delay = retry_delay
        self.backoff_base = backoff_base
        self.source_tag = source_tag
        self.logger = logger or logging.getLogger("door_sensor.notifier")

        self._shutdown = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="webhook")
        self._urlopen = urlopen or urllib.request.urlopen
        # Backoff waits end early on shutdown
        self._sleep = sleep or self._shutdown.wait

    @classmethod
    def from_config(cls, config: Dict[str, Any], registry: EndpointRegistry, **kwargs) -> "NotificationDispatcher":
        return cls(
            registry,
            timeout=config['webhook_timeout'],
            max_attempts=config['max_attempts'],
            backoff=config['backoff'],
            retry_delay=config['retry_delay'],
            backoff_base=config['backoff_base'],
            source_tag=config['source_tag'],
            max_workers=config['max_workers'],
            **kwargs,
        )

    def build_payload(self, event: StatusEvent) -> Dict[str, Any]:
        payload = {
            'state': event.status.value,
            'timestamp': event.timestamp.isoformat(),
            'event_type': event.event_type,
        }
        if self.source_tag:
            payload['source'] = self.source_tag
        return payload

    def dispatch(self, event: StatusEvent, endpoints: Iterable[Endpoint] = None) -> "Future[DispatchResult]":
        """
        Start delivering ``event`` to every endpoint and return immediately.

        ``endpoints`` defaults to a snapshot of the registry. The returned
        future resolves to a DispatchResult once all deliveries settled; it
        never raises.
        """
        endpoints = self.registry.list() if endpoints is None else list(endpoints)
        result = DispatchResult(status=event.status, event_type=event.event_type)
        result_future: "Future[DispatchResult]" = Future()

        if not endpoints:
            self.logger.info("No webhooks configured, skipping notification")
            result_future.set_result(result)
            return result_future

        payload = self.build_payload(event)
        self.logger.info(f"Sending {event.status.value} notification to {len(endpoints)} webhook(s)")

        lock = threading.Lock()
        pending = [len(endpoints)]

        def settled(endpoint: Endpoint, future: Future) -> None:
            ok = not future.cancelled() and future.exception() is None
            with lock:
                if ok:
                    result.success_count += 1
                else:
                    result.failed.append(endpoint.url)
                pending[0] -= 1
                done = pending[0] == 0
            if done:
                self._report(result)
                result_future.set_result(result)

        for endpoint in endpoints:
            try:
                future = self._executor.submit(self._deliver, endpoint, payload)
            except RuntimeError:
                # Executor already shut down
                future = Future()
                future.set_exception(DeliveryError("Dispatcher is shut down", endpoint.url))
            future.add_done_callback(functools.partial(settled, endpoint))

        return result_future

    def shutdown(self, wait: bool = True) -> None:
        """Stop retrying, drop queued deliveries and wait for in-flight ones."""
        self._shutdown.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        self.logger.info("Notification dispatcher shut down")

    def _wait_strategy(self):
        if self.backoff == BACKOFF_EXPONENTIAL:
            return wait_exponential(multiplier=1, exp_base=self.backoff_base)
        return wait_fixed(self.retry_delay)

    def _deliver(self, endpoint: Endpoint, payload: Dict[str, Any]) -> None:
        """Deliver to one endpoint, retrying; raises the last DeliveryError."""
        attempts = endpoint.retries or self.max_attempts
        timeout = endpoint.timeout or self.timeout

        retrying = Retrying(
            stop=stop_after_attempt(attempts) | stop_when_event_set(self._shutdown),
            wait=self._wait_strategy(),
            retry=retry_if_exception_type(DeliveryError),
            sleep=self._sleep,
            before_sleep=functools.partial(self._log_retry, endpoint),
            reraise=True,
        )

        try:
            retrying(self._send, endpoint, payload, timeout)
        except DeliveryError as e:
            self.logger.error(f"Failed to notify endpoint '{endpoint.name}' after "
                              f"{retrying.statistics.get('attempt_number', attempts)} attempt(s): {e}")
            raise

        self.logger.info(f"Successfully notified endpoint '{endpoint.name}'")

    def _send(self, endpoint: Endpoint, payload: Dict[str, Any], timeout: float) -> None:
        if self._shutdown.is_set():
            raise DeliveryError("Dispatcher is shutting down", endpoint.url)

        request = urllib.request.Request(
            endpoint.url,
            data=json.dumps(payload).encode('utf-8'),
            headers={'Content-Type': 'application/json', 'User-Agent': f"door-sensor/{__version__}"},
            method='POST',
        )

        try:
            with self._urlopen(request, timeout=timeout) as response:
                status_code = response.getcode()
        except urllib.error.HTTPError as e:
            raise DeliveryError(f"HTTP {e.code}: {e.reason}", endpoint.url, status_code=e.code) from e
        except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
            # Socket timeouts raise OSError, malformed replies HTTPException
            raise DeliveryError(f"Request failed: {e}", endpoint.url) from e

        if not 200 <= status_code < 300:
            raise DeliveryError(f"HTTP {status_code}", endpoint.url, status_code=status_code)

    def _log_retry(self, endpoint: Endpoint, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        self.logger.warning(f"Attempt {retry_state.attempt_number} failed for endpoint '{endpoint.name}': "
                            f"{retry_state.outcome.exception()}. Retrying in {delay:.1f}s")

    def _report(self, result: DispatchResult) -> None:
        self.logger.info(f"Webhook sending completed for {result.status.value}: "
                         f"{result.success_count} successful, {len(result.failed)} failed")
        if result.failed:
            self.logger.error(f"{len(result.failed)} webhook(s) failed: {', '.join(result.failed)}")

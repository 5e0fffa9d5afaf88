# tests/conftest.py
from __future__ import annotations

import io
import json
import threading
import urllib.error
from collections import defaultdict

import pytest

from door_sensor.endpoints import EndpointRegistry
from door_sensor.status import SharedStatus


class FakeGPIO:
    BCM = "BCM"
    IN = "IN"
    PUD_UP = "PUD_UP"
    PUD_DOWN = "PUD_DOWN"
    LOW = 0
    HIGH = 1

    def __init__(self, level=1, fail_setup=False, fail_read=False):
        self.level = level
        self.fail_setup = fail_setup
        self.fail_read = fail_read
        self.setup_calls = []
        self.cleaned = []

    def setmode(self, mode):
        pass

    def setup(self, pin, direction, pull_up_down=None):
        if self.fail_setup:
            raise RuntimeError("No access to /dev/mem")
        self.setup_calls.append((pin, direction, pull_up_down))

    def input(self, pin):
        if self.fail_read:
            raise RuntimeError("read failed")
        return self.level

    def cleanup(self, pin=None):
        self.cleaned.append(pin)


class StubResponse:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code

    def getcode(self) -> int:
        return self.status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class StubOpener:
    """Stands in for urllib.request.urlopen; handlers return a status code per URL."""

    def __init__(self, handlers=None, default_status: int = 200):
        self.handlers = handlers or {}
        self.default_status = default_status
        self.calls = defaultdict(list)
        self._lock = threading.Lock()

    def __call__(self, request, timeout=None):
        url = request.full_url
        with self._lock:
            self.calls[url].append({
                "json": json.loads(request.data),
                "headers": dict(request.header_items()),
                "method": request.get_method(),
                "timeout": timeout,
            })

        handler = self.handlers.get(url)
        status = handler() if handler is not None else self.default_status
        if status >= 400:
            raise urllib.error.HTTPError(url, status, "stub error", None, io.BytesIO())
        return StubResponse(status)

    def call_count(self, url) -> int:
        with self._lock:
            return len(self.calls[url])


@pytest.fixture
def shared_status():
    return SharedStatus()


@pytest.fixture
def registry():
    return EndpointRegistry()


@pytest.fixture
def stub_opener():
    return StubOpener()

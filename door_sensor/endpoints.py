"""
Registry of webhook endpoints notified on every confirmed state change.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from .errors import DuplicateUrlError, EndpointValidationError, InvalidUrlError


@dataclass(frozen=True)
class Endpoint:
    url: str
    label: Optional[str] = None
    timeout: Optional[float] = None
    retries: Optional[int] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def name(self) -> str:
        """Label if set, otherwise the URL."""
        return self.label or self.url

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_url(url: Any) -> str:
    """Return the URL stripped of whitespace, or raise InvalidUrlError."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrlError(f"Invalid URL: {url!r}", url=url)

    url = url.strip()
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        raise InvalidUrlError(f"Invalid URL: {url}", url=url) from None

    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise InvalidUrlError(f"Invalid URL: {url} (expected absolute http(s) URL)", url=url)
    return url


def validate_overrides(url: str, timeout: Any = None, retries: Any = None) -> None:
    """Raise EndpointValidationError unless timeout > 0 and retries >= 1 (when given)."""
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        raise EndpointValidationError(f"Invalid timeout for {url}: {timeout!r}", url=url)
    if retries is not None and (isinstance(retries, bool) or not isinstance(retries, int) or retries < 1):
        raise EndpointValidationError(f"Invalid retries for {url}: {retries!r}", url=url)


class EndpointRegistry:
    """
    Insertion-ordered set of endpoints keyed by URL.

    When ``path`` is given the registry is persisted there as JSON after
    every successful add or remove; ``load()`` must be called explicitly.
    """

    def __init__(self, path: str = None, logger: logging.Logger = None):
        self.path = Path(path) if path else None
        self.logger = logger or logging.getLogger("door_sensor.endpoints")
        self._lock = threading.Lock()
        self._endpoints: List[Endpoint] = []

    def list(self) -> List[Endpoint]:
        with self._lock:
            return list(self._endpoints)

    def get(self, url: str) -> Optional[Endpoint]:
        with self._lock:
            return self._find(url)

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)

    def add(self, url: str, label: str = None, timeout: float = None, retries: int = None) -> Endpoint:
        """Register an endpoint; never replaces an existing one."""
        url = validate_url(url)
        validate_overrides(url, timeout, retries)

        endpoint = Endpoint(url=url, label=label, timeout=timeout, retries=retries)

        with self._lock:
            if self._find(url) is not None:
                raise DuplicateUrlError(f"Endpoint already registered: {url}", url=url)
            self._endpoints.append(endpoint)
            self._save_locked()

        self.logger.info(f"Registered webhook endpoint: {endpoint.name}")
        return endpoint

    def remove(self, url: str) -> bool:
        """Remove the endpoint with ``url``; a no-op if it is not registered."""
        if isinstance(url, str):
            url = url.strip()

        with self._lock:
            endpoint = self._find(url)
            if endpoint is None:
                return False
            self._endpoints.remove(endpoint)
            self._save_locked()

        self.logger.info(f"Removed webhook endpoint: {endpoint.name}")
        return True

    def load(self) -> int:
        """Load endpoints from ``path``, replacing the current contents."""
        if self.path is None or not self.path.exists():
            return 0

        try:
            with self.path.open('r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            self.logger.warning(f"Could not load endpoints file {self.path}: {e}")
            return 0

        loaded: List[Endpoint] = []
        seen = set()
        for entry in data.get('endpoints', []) if isinstance(data, dict) else []:
            try:
                url = validate_url(entry.get('url'))
                if url in seen:
                    raise DuplicateUrlError(f"Duplicate endpoint {url}", url=url)
                validate_overrides(url, entry.get('timeout'), entry.get('retries'))
                loaded.append(Endpoint(
                    url=url,
                    label=entry.get('label'),
                    timeout=entry.get('timeout'),
                    retries=entry.get('retries'),
                    created_at=entry.get('created_at') or datetime.now(timezone.utc).isoformat(),
                ))
                seen.add(url)
            except (EndpointValidationError, AttributeError) as e:
                self.logger.warning(f"Skipping endpoint entry {entry!r}: {e}")

        with self._lock:
            self._endpoints = loaded

        self.logger.info(f"Loaded {len(loaded)} webhook endpoint(s) from {self.path}")
        return len(loaded)

    def save(self) -> None:
        with self._lock:
            self._save_locked()

    def _find(self, url: str) -> Optional[Endpoint]:
        for endpoint in self._endpoints:
            if endpoint.url == url:
                return endpoint
        return None

    def _save_locked(self) -> None:
        if self.path is None:
            return

        data = {'endpoints': [e.to_dict() for e in self._endpoints]}
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
            with tmp_path.open('w') as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)
        except OSError as e:
            self.logger.error(f"Couldn't save endpoints to {self.path}: {e}")

"""Sliding-window submission throttle.

Advisory only: the ledger lives in storage the client controls, so it
reduces duplicate submissions but is no protection against abuse.
"""

from __future__ import annotations

import json
import logging
import math
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from eventcraft.constants import (
    MAX_REQUESTS_PER_WINDOW,
    RATE_LIMIT_KEY_PREFIX,
    RATE_LIMIT_WINDOW_MS,
)

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Durable key-value storage for one client context, one JSON file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except Exception:
            os.unlink(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


def storage_key(key: str) -> str:
    return f"{RATE_LIMIT_KEY_PREFIX}{key}"


class RateLimiter:
    """At most ``max_requests`` attempts per rolling ``window_ms`` per key.

    A denial sets a "limited until" mark so ``is_limited``/``remaining_time``
    can be shown to the user; it expires by itself. ``check_and_record``
    always recomputes from the stored timestamps and never relies on it.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        window_ms: int = RATE_LIMIT_WINDOW_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        self.storage = storage
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.clock = clock
        self._limited_until: Dict[str, int] = {}
        # one ledger read-modify-write at a time
        self._lock = threading.Lock()

    # ---------------- ledger ----------------

    def _load(self, key: str) -> List[int]:
        try:
            raw = self.storage.get_item(storage_key(key))
            if raw:
                state = json.loads(raw)
                return [int(ts) for ts in state.get("requests", [])]
        except (OSError, ValueError, TypeError, AttributeError):
            logger.exception("error reading rate limit state for %s", key)
        return []

    def _save(self, key: str, requests: List[int]) -> None:
        try:
            self.storage.set_item(storage_key(key), json.dumps({"requests": requests}))
        except (OSError, TypeError):
            logger.exception("error saving rate limit state for %s", key)

    def _retained(self, key: str, now: int) -> List[int]:
        return [ts for ts in self._load(key) if now - ts < self.window_ms]

    # ---------------- public ----------------

    def check_and_record(self, key: str) -> bool:
        with self._lock:
            now = self.clock()
            retained = self._retained(key, now)

            if len(retained) >= self.max_requests:
                oldest = min(retained)
                wait_ms = self.window_ms - (now - oldest)
                self._limited_until[key] = now + wait_ms
                logger.info("rate limited key=%s wait_ms=%s", key, wait_ms)
                return False

            retained.append(now)
            self._save(key, retained)
            self._limited_until.pop(key, None)
            return True

    def remaining_quota(self, key: str) -> int:
        with self._lock:
            return max(0, self.max_requests - len(self._retained(key, self.clock())))

    def remaining_time(self, key: str) -> int:
        """Seconds (rounded up) until the last denial for ``key`` expires."""
        until = self._limited_until.get(key)
        if until is None:
            return 0
        left = until - self.clock()
        if left <= 0:
            self._limited_until.pop(key, None)
            return 0
        return math.ceil(left / 1000)

    def is_limited(self, key: str) -> bool:
        return self.remaining_time(key) > 0

    def clear(self, key: str) -> None:
        with self._lock:
            try:
                self.storage.remove_item(storage_key(key))
            except (OSError, ValueError):
                logger.exception("error clearing rate limit state for %s", key)
            self._limited_until.pop(key, None)

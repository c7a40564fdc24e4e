from __future__ import annotations

import logging
import os
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
from uuid import uuid4

from eventcraft.config import get_settings
from eventcraft.exceptions import SessionNotFound
from eventcraft.services.calculator import SelectionStore
from eventcraft.services.catalog import CatalogSnapshot, ItemsFetcher
from eventcraft.services.rate_limit import JsonFileStorage, KeyValueStorage, RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class CalculatorSession:
    session_id: str
    catalog: CatalogSnapshot
    store: SelectionStore
    limiter: RateLimiter


StorageFactory = Callable[[str], KeyValueStorage]

SESSION_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def file_storage_for(session_id: str) -> KeyValueStorage:
    return JsonFileStorage(os.path.join(get_settings().storage_dir, f"{session_id}.json"))


class SessionRegistry:
    """One calculator per visitor session; created on first use, dropped on
    ``discard``, after ``idle_seconds`` without use, or least recently used
    first once ``max_sessions`` is reached.

    Evicting a session keeps its limiter file, so a returning visitor gets
    a fresh selection but the same submission quota.
    """

    def __init__(
        self,
        fetch_all_items: ItemsFetcher,
        storage_factory: StorageFactory = file_storage_for,
        max_sessions: Optional[int] = None,
        idle_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetch_all_items = fetch_all_items
        self.storage_factory = storage_factory
        self.max_sessions = max_sessions
        self.idle_seconds = idle_seconds
        self.clock = clock
        self._sessions: "OrderedDict[str, CalculatorSession]" = OrderedDict()
        self._last_used: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _limits(self) -> Tuple[int, int]:
        s = get_settings()
        return (
            self.max_sessions if self.max_sessions is not None else s.session_max,
            self.idle_seconds if self.idle_seconds is not None else s.session_idle_seconds,
        )

    def _touch(self, sid: str) -> None:
        self._sessions.move_to_end(sid)
        self._last_used[sid] = self.clock()

    def _evict(self, max_sessions: int, idle_seconds: int) -> None:
        now = self.clock()
        # oldest first; stop at the first session still in use
        while self._sessions:
            sid = next(iter(self._sessions))
            if len(self._sessions) < max_sessions and now - self._last_used[sid] < idle_seconds:
                break
            self._drop(sid)
            logger.info("session %s evicted", sid)

    def _drop(self, sid: str) -> None:
        self._sessions.pop(sid, None)
        self._last_used.pop(sid, None)

    def _build(self, sid: str) -> CalculatorSession:
        s = get_settings()
        catalog = CatalogSnapshot()
        catalog.load(self.fetch_all_items)
        return CalculatorSession(
            session_id=sid,
            catalog=catalog,
            store=SelectionStore(catalog),
            limiter=RateLimiter(
                self.storage_factory(sid),
                max_requests=s.rate_limit_max,
                window_ms=s.rate_limit_window_ms,
            ),
        )

    def create(self, session_id: Optional[str] = None) -> CalculatorSession:
        sid = session_id if session_id and SESSION_ID_RE.match(session_id) else uuid4().hex
        max_sessions, idle_seconds = self._limits()
        sess = self._build(sid)
        with self._lock:
            if sid in self._sessions:
                # another request for the same cookie got here first
                self._touch(sid)
                return self._sessions[sid]
            self._evict(max_sessions, idle_seconds)
            self._sessions[sid] = sess
            self._touch(sid)
            return sess

    def get(self, session_id: str) -> CalculatorSession:
        with self._lock:
            try:
                sess = self._sessions[session_id]
            except KeyError:
                raise SessionNotFound(session_id) from None
            self._touch(session_id)
            return sess

    def get_or_create(self, session_id: Optional[str]) -> CalculatorSession:
        if session_id:
            try:
                return self.get(session_id)
            except SessionNotFound:
                pass
        return self.create(session_id)

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._drop(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

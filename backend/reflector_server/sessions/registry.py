from __future__ import annotations
"""In-memory registry of reflection sessions held on behalf of API clients.

Sessions are mutable cursors and not thread-safe, so every entry carries
its own lock; request handlers hold it for the whole step.
"""
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from reflector_server.core.config import settings
from reflector_server.core.errors import ReflectorError
from reflector_server.runtime.session import ReflectionSession

_log = logging.getLogger(__name__)


class SessionLimitError(ReflectorError):
    code = 'SESSION_LIMIT'


@dataclass
class SessionEntry:
    id: str
    session: ReflectionSession
    created_at: float = field(default_factory=time.time)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionRegistry:
    def __init__(self, max_sessions: int = 64):
        self.max_sessions = max_sessions
        self._entries: Dict[str, SessionEntry] = {}
        self._lock = threading.Lock()

    def create(self) -> SessionEntry:
        with self._lock:
            if len(self._entries) >= self.max_sessions:
                raise SessionLimitError(f"session limit reached ({self.max_sessions})")
            entry = SessionEntry(id=uuid.uuid4().hex, session=ReflectionSession())
            self._entries[entry.id] = entry
        _log.debug("created session id=%s", entry.id)
        return entry

    def get(self, session_id: str) -> Optional[SessionEntry]:
        with self._lock:
            return self._entries.get(session_id)

    def list(self) -> List[SessionEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.created_at)

    def discard(self, session_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry is None:
            return False
        with entry.lock:
            entry.session.close()
        _log.debug("discarded session id=%s", session_id)
        return True

    def clear(self) -> None:
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            with entry.lock:
                entry.session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


registry = SessionRegistry(max_sessions=settings.max_sessions)

"""In-memory chat session registry.

Sessions live only in this process: each one maps an opaque id to an upstream
chat handle and is dropped by a timer once its TTL elapses. Nothing survives a
restart and there is no coordination between workers.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    """Epoch milliseconds followed by nine random base-36 characters."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}{suffix}"


@dataclass
class SessionEntry:
    chat: Any
    created_at: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    timer: Optional[asyncio.TimerHandle] = None


class SessionStore:
    def __init__(self, ttl_sec: float = 1800.0) -> None:
        self.ttl_sec = ttl_sec
        self._sessions: Dict[str, SessionEntry] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self, chat: Any) -> str:
        """Register ``chat`` and schedule its expiry. Must run inside the event loop."""
        session_id = new_session_id()
        while session_id in self._sessions:
            session_id = new_session_id()

        entry = SessionEntry(chat=chat)
        loop = asyncio.get_running_loop()
        entry.timer = loop.call_later(self.ttl_sec, self._expire, session_id)
        self._sessions[session_id] = entry
        logger.info("Session %s created (ttl=%ss, active=%d)", session_id, self.ttl_sec, len(self._sessions))
        return session_id

    def get(self, session_id: str) -> Optional[SessionEntry]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        entry = self._sessions.pop(session_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()

    def close(self) -> None:
        for entry in self._sessions.values():
            if entry.timer is not None:
                entry.timer.cancel()
        self._sessions.clear()

    def _expire(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Session %s expired", session_id)

# =============================================
# File: shopassist/services/sessions.py
# Purpose: In-memory conversation sessions (history, shown products, expiry sweep)
# =============================================
from __future__ import annotations

import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Literal, Set

from loguru import logger

from shopassist.utils.sanitize import is_valid_session_id

Role = Literal["user", "assistant"]

DEFAULT_HISTORY_LIMIT = int(os.getenv("MAX_CONVERSATION_HISTORY", "6"))


@dataclass(frozen=True)
class Turn:
    role: Role
    text: str


@dataclass
class Session:
    session_id: str
    created_at: float
    last_activity: float
    turns: List[Turn] = field(default_factory=list)
    shown_ids: Set[str] = field(default_factory=set)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class SessionStore:
    """
    Process-local session table.

    Turns are kept up to 2 x history_limit (oldest dropped first); the shown
    product set survives truncation. One table lock guards the dict, a
    per-session lock serializes whole turns of the same conversation.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT, clock: Callable[[], float] = time.time) -> None:
        self.history_limit = max(1, int(history_limit))
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _new_session(self, token: str) -> Session:
        now = self._clock()
        sess = Session(session_id=token, created_at=now, last_activity=now)
        self._sessions[token] = sess
        return sess

    def create(self) -> str:
        token = str(uuid.uuid4())
        with self._lock:
            self._new_session(token)
        logger.debug(f"[sessions] created {token}")
        return token

    def exists(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions

    def turn_lock(self, token: str) -> threading.Lock:
        with self._lock:
            sess = self._sessions.get(token) or self._new_session(token)
            return sess.lock

    def get_history(self, token: str) -> List[Turn]:
        with self._lock:
            sess = self._sessions.get(token)
            if sess is None:
                return []
            return list(sess.turns[-self.history_limit:])

    def append(self, token: str, role: Role, text: str) -> None:
        with self._lock:
            sess = self._sessions.get(token) or self._new_session(token)
            sess.turns.append(Turn(role=role, text=text))
            cap = 2 * self.history_limit
            if len(sess.turns) > cap:
                del sess.turns[: len(sess.turns) - cap]
            sess.last_activity = self._clock()

    def mark_shown(self, token: str, ids: Iterable[str]) -> None:
        with self._lock:
            sess = self._sessions.get(token)
            if sess is None:
                return
            sess.shown_ids.update(str(i) for i in ids if i)

    def shown_ids(self, token: str) -> Set[str]:
        with self._lock:
            sess = self._sessions.get(token)
            return set(sess.shown_ids) if sess else set()

    def delete(self, token: str) -> bool:
        if not is_valid_session_id(token or ""):
            return False
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def sweep(self, max_age_seconds: float) -> int:
        """Drop sessions idle for longer than max_age_seconds. Returns how many went."""
        with self._lock:
            snapshot = [(sid, s.last_activity) for sid, s in self._sessions.items()]
        cutoff = self._clock() - max_age_seconds
        removed = 0
        for sid, seen in snapshot:
            if seen >= cutoff:
                continue
            with self._lock:
                sess = self._sessions.get(sid)
                # may have been touched since the snapshot
                if sess is not None and sess.last_activity < cutoff:
                    del self._sessions[sid]
                    removed += 1
        if removed:
            logger.info(f"[sessions] swept {removed} expired session(s)")
        return removed

    def stats(self) -> Dict[str, object]:
        with self._lock:
            sessions = [
                {
                    "sessionId": s.session_id,
                    "messageCount": len(s.turns),
                    "shownProducts": len(s.shown_ids),
                    "createdAt": _iso(s.created_at),
                    "lastUpdatedAt": _iso(s.last_activity),
                }
                for s in self._sessions.values()
            ]
        return {"totalSessions": len(sessions), "sessions": sessions}

"""In-memory session registry keyed by the sender's phone number."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from loanbot.models import Session, SessionState, SessionStats, UploadRecord

logger = logging.getLogger(__name__)


class SessionStore:
    """Owns every live Session and the per-sender lock that guards it.

    Every mutator is get-or-create: an unknown id gets a fresh INITIAL
    session instead of an error. Mutators are synchronous, so on a single
    event loop each call is atomic.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ── lookup / lifecycle ──────────────────────────────────────────

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._create(session_id)
        session.last_activity_at = self._clock()
        return session

    def peek(self, session_id: str) -> Optional[Session]:
        """Return the session without creating it or refreshing its activity."""
        return self._sessions.get(session_id)

    def _create(self, session_id: str) -> Session:
        now = self._clock()
        session = Session(id=session_id, created_at=now, last_activity_at=now)
        self._sessions[session_id] = session
        logger.info("New session created for %s", session_id)
        return session

    def reset(self, session_id: str) -> Session:
        session = self._create(session_id)
        logger.info("Session reset for %s", session_id)
        return session

    def remove(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        if removed:
            logger.info("Session deleted for %s", session_id)
        return removed

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-sender lock; hold it for the whole handling of one event."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ── mutations ───────────────────────────────────────────────────

    def set_state(self, session_id: str, state: SessionState | str) -> Session:
        session = self.get(session_id)
        session.state = state.value if isinstance(state, SessionState) else state
        logger.debug("Session %s → %s", session_id, session.state)
        return session

    def set_selection(
        self,
        session_id: str,
        category: str,
        sub_category: Optional[str] = None,
    ) -> Session:
        session = self.get(session_id)
        session.category = category
        if sub_category:
            session.sub_category = sub_category
        return session

    def set_required_items(self, session_id: str, items: Sequence[str]) -> Session:
        session = self.get(session_id)
        session.required_items = tuple(items)
        session.cursor = 0
        session.uploaded_items = []
        return session

    def append_upload(self, session_id: str, record: UploadRecord) -> Session:
        session = self.get(session_id)
        session.uploaded_items.append(record)
        logger.info("Document uploaded for %s: %s", session_id, record.item_name)
        return session

    def advance_cursor(self, session_id: str) -> Session:
        session = self.get(session_id)
        session.cursor += 1
        return session

    # ── progress queries ────────────────────────────────────────────

    def current_required_item(self, session_id: str) -> Optional[str]:
        session = self.get(session_id)
        if session.cursor >= len(session.required_items):
            return None
        return session.required_items[session.cursor]

    def remaining_items(self, session_id: str) -> list[str]:
        session = self.get(session_id)
        return list(session.required_items[session.cursor:])

    def is_complete(self, session_id: str) -> bool:
        session = self.get(session_id)
        return session.cursor >= len(session.required_items)

    # ── housekeeping ────────────────────────────────────────────────

    def sweep_expired(
        self, now: Optional[datetime] = None, timeout: timedelta = timedelta(minutes=30)
    ) -> int:
        """Drop sessions idle for longer than *timeout*; returns how many went."""
        now = now or self._clock()
        expired = [
            sid
            for sid, session in self._sessions.items()
            if now - session.last_activity_at > timeout
            and not (sid in self._locks and self._locks[sid].locked())
        ]
        for sid in expired:
            del self._sessions[sid]
            self._locks.pop(sid, None)
        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def stats(self) -> SessionStats:
        now = self._clock()
        sessions = list(self._sessions.values())
        return SessionStats(
            total_sessions=len(sessions),
            active_last_hour=sum(
                1 for s in sessions if now - s.last_activity_at < timedelta(hours=1)
            ),
            by_state=dict(Counter(s.state for s in sessions)),
            by_category=dict(Counter(s.category for s in sessions if s.category)),
        )

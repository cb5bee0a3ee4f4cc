from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

from src.application.use_cases.session import LoyaltySession
from src.infrastructure.config import LoyaltySettings
from src.infrastructure.database.document_store import DocumentStore
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.repositories.summary_repository import SummaryRepository
from src.infrastructure.database.supabase_client import SupabaseIdentityProvider

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Client sessions hosted by this process, keyed by an opaque session id.

    All sessions share one document store so writes made by one are pushed to
    the subscriptions of the others. Sessions idle for longer than
    ``settings.session_idle_ttl`` are closed, and opening a session beyond
    ``settings.max_sessions`` closes the least recently used one, so clients
    that never sign out do not keep listeners on the store.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: LoyaltySettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock
        # Insertion order doubles as recency order; get() moves a session to the end
        self._sessions: dict[str, LoyaltySession] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self) -> tuple[str, LoyaltySession]:
        self.expire()
        while self._sessions and len(self._sessions) >= self.settings.max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Session cap %s reached, closing %s", self.settings.max_sessions, oldest)
            self.close(oldest)

        session_id = uuid.uuid4().hex
        session = LoyaltySession(
            provider=SupabaseIdentityProvider(),
            profiles=ProfileRepository(self.store, self.settings.app_id),
            summaries=SummaryRepository(self.store, self.settings.app_id),
            settings=self.settings,
        )
        self._sessions[session_id] = session
        self._last_seen[session_id] = self.clock()
        return session_id, session

    def get(self, session_id: str) -> LoyaltySession | None:
        self.expire()
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        self._sessions[session_id] = session
        self._last_seen[session_id] = self.clock()
        return session

    def expire(self) -> list[str]:
        """Close every session idle past the TTL. Returns the closed ids."""
        cutoff = self.clock() - self.settings.session_idle_ttl
        stale = [sid for sid, seen in self._last_seen.items() if seen <= cutoff]
        for session_id in stale:
            logger.info("Closing idle session %s", session_id)
            self.close(session_id)
        return stale

    def close(self, session_id: str) -> None:
        self._last_seen.pop(session_id, None)
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
            logger.debug("Closed session %s", session_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

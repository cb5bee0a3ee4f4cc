from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from src.domain.entities.profile import RosterEntry
from src.domain.entities.session import SessionContext
from src.domain.errors import SubscriptionError
from src.infrastructure.database.document_store import Subscription
from src.infrastructure.database.repositories.summary_repository import SummaryRepository

logger = logging.getLogger(__name__)


@dataclass
class AdminRosterView:
    """Live list of every public summary, held only while the session is admin."""

    summaries: SummaryRepository
    _sub: Subscription | None = None
    _owner: str | None = None
    # Identity whose roster subscription errored; not retried for that identity
    _failed_for: str | None = None

    @property
    def active(self) -> bool:
        return self._sub is not None and self._sub.active

    def refresh(
        self,
        context: SessionContext,
        on_update: Callable[[SessionContext], None] | None = None,
    ) -> bool:
        """Start or stop the roster subscription to match ``context``. Returns whether it runs."""
        wanted = bool(context.identity) and context.is_admin
        if self._sub is not None and (not wanted or self._owner != context.identity):
            self.stop(context)
        if wanted and self._sub is None and self._failed_for != context.identity:
            self._start(context, on_update)
        return self.active

    def stop(self, context: SessionContext | None = None) -> None:
        if self._sub is not None:
            logger.info("Stopping roster subscription for %s", self._owner)
            self._sub.cancel()
        self._sub = None
        self._owner = None
        if context is not None:
            context.roster = []

    def _start(self, context: SessionContext, on_update: Callable[[SessionContext], None] | None) -> None:
        owner = context.identity
        self._owner = owner

        def handle(entries: list[RosterEntry]) -> None:
            if context.identity != owner:
                return
            context.roster = entries
            if on_update is not None:
                on_update(context)

        def fail(error: SubscriptionError) -> None:
            if context.identity != owner:
                return
            logger.error("Roster subscription for %s ended: %s", owner, error)
            self._sub = None
            self._owner = None
            self._failed_for = owner
            context.roster = []
            context.errors["roster"] = error
            if on_update is not None:
                on_update(context)

        logger.info("Starting roster subscription for admin %s", owner)
        self._sub = self.summaries.subscribe_all(handle, fail)

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from src.domain.entities.profile import PublicSummary, Tier, tier_value
from src.domain.entities.session import SessionContext
from src.domain.errors import WriteError
from src.domain.services.ledger_service import LedgerService
from src.infrastructure.database.repositories.summary_repository import SummaryRepository

logger = logging.getLogger(__name__)


@dataclass
class PublicMirrorSynchronizer:
    """
    Projects the private profile into the public summary with a merge write.

    Writes only when name, points or tier differ from the last projection
    that went through. There is no read-before-write; concurrent writers are
    ordered by the store.
    """

    summaries: SummaryRepository
    _last: dict[str, tuple[str, int, Tier | str]] = field(default_factory=dict)

    def sync(self, context: SessionContext) -> bool:
        """Mirror ``context``'s profile if it changed. Returns True when a write was issued."""
        identity = context.identity
        profile = context.current_profile
        if not identity or profile is None:
            return False
        key = LedgerService.mirror_key(profile)
        if self._last.get(identity) == key:
            return False
        summary = PublicSummary(
            identity=identity,
            display_name=profile.display_name,
            points=profile.points,
            tier=profile.tier,
        )
        try:
            self.summaries.merge_projection(summary)
        except WriteError as exc:
            # Local state stays authoritative; the next sync re-attempts
            logger.warning("Public mirror write for %s failed: %s", identity, exc)
            context.errors["mirror"] = exc
            return False
        self._last[identity] = key
        context.errors.pop("mirror", None)
        logger.debug("Mirrored %s: points=%s tier=%s", identity, profile.points, tier_value(profile.tier))
        return True

    def forget(self, identity: str) -> None:
        self._last.pop(identity, None)

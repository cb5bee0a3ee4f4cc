from __future__ import annotations

import logging
from dataclasses import dataclass

from src.domain.entities.profile import PublicSummary
from src.domain.errors import PartialLedgerWriteError, WriteError
from src.domain.services.ledger_service import LedgerService
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.repositories.summary_repository import SummaryRepository

logger = logging.getLogger(__name__)


@dataclass
class LedgerMutator:
    """
    Point adjustments against both records of a target identity.

    The two writes are independent, not a transaction. The private record
    goes first since it is authoritative; if the public write then fails the
    public record is re-derived from the private one by the owner's next
    mirror sync or by ``reconcile``.
    """

    profiles: ProfileRepository
    summaries: SummaryRepository

    def adjust(self, target_identity: str, current_points: int, delta: int) -> int:
        """
        Set the target's balance to ``max(0, current_points + delta)``.

        ``current_points`` is whatever the caller last observed; this is not
        an atomic increment, so two adjustments computed from the same stale
        value race and the last write wins.

        Returns:
            The balance written

        Raises:
            ValueError: If the inputs are not integers or current_points < 0
            WriteError: If the private write failed (nothing changed)
            PartialLedgerWriteError: If only the private write went through
        """
        new_points = LedgerService.apply_delta(current_points, delta)

        self.profiles.set_points(target_identity, new_points)
        try:
            self.summaries.set_points(target_identity, new_points)
        except WriteError as exc:
            logger.error(
                "Ledger for %s diverged: private=%s, public write failed: %s",
                target_identity,
                new_points,
                exc,
            )
            raise PartialLedgerWriteError(
                f"Public summary for {target_identity} not updated: {exc}",
                identity=target_identity,
                committed_points=new_points,
                path=exc.path,
            ) from exc

        logger.info("Adjusted %s: %s %+d -> %s", target_identity, current_points, delta, new_points)
        return new_points

    def reconcile(self, target_identity: str) -> int:
        """Rewrite the public summary from the private record. Returns the mirrored balance."""
        profile = self.profiles.get(target_identity)
        if profile is None:
            raise LookupError(f"No profile for {target_identity}")
        self.summaries.merge_projection(PublicSummary.project(profile))
        logger.info("Reconciled public summary of %s at %s points", target_identity, profile.points)
        return profile.points

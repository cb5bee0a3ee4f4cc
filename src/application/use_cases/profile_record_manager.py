from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from src.domain.entities.profile import PrivateProfile
from src.domain.entities.session import Confirmed, Pending, SessionContext, SessionState
from src.domain.errors import SubscriptionError, WriteError
from src.domain.services.ledger_service import LedgerService
from src.infrastructure.database.document_store import Subscription
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass
class ProfileRecordManager:
    """
    Keeps ``context.profile`` equal to the identity's private record.

    The first time an identity is seen without a record, a default profile is
    written with a create-if-absent and adopted as ``Pending`` right away.
    Every snapshot delivered afterwards replaces the local value verbatim as
    ``Confirmed``.
    """

    profiles: ProfileRepository
    default_display_name: str = "Invitée Privilège"

    def attach(
        self,
        context: SessionContext,
        on_update: Callable[[SessionContext], None] | None = None,
    ) -> Subscription:
        """
        Subscribe to the private record of ``context.identity``.

        Args:
            context: Session context bound to a signed-in identity
            on_update: Called after every change applied to the context

        Returns:
            Subscription the caller must cancel when the identity goes away
        """
        identity = context.identity
        if not identity:
            raise ValueError("Cannot attach a profile without an identity")
        context.state = SessionState.PROFILE_LOADING

        def handle(profile: PrivateProfile | None) -> None:
            if context.identity != identity:
                return
            if profile is None:
                if isinstance(context.profile, Pending):
                    # Our own create has not been echoed back yet
                    return
                self._adopt_default(context, identity)
            else:
                context.profile = Confirmed(profile)
                context.errors.pop("create", None)
            context.state = SessionState.PROFILE_READY
            if on_update is not None:
                on_update(context)

        def fail(error: SubscriptionError) -> None:
            if context.identity != identity:
                return
            logger.error("Profile subscription for %s ended: %s", identity, error)
            context.profile = None
            context.state = SessionState.PROFILE_UNAVAILABLE
            if on_update is not None:
                on_update(context)

        return self.profiles.subscribe(identity, handle, fail)

    def retry_create(self, context: SessionContext) -> bool:
        """Re-issue the create of a still pending default profile. Returns True if it went through."""
        if not isinstance(context.profile, Pending):
            return False
        try:
            self.profiles.create_if_absent(context.profile.value)
        except WriteError as exc:
            context.errors["create"] = exc
            return False
        context.errors.pop("create", None)
        return True

    def _adopt_default(self, context: SessionContext, identity: str) -> None:
        default = LedgerService.default_profile(identity, self.default_display_name)
        context.profile = Pending(default)
        logger.info("Creating default profile for %s", identity)
        try:
            self.profiles.create_if_absent(default)
        except WriteError as exc:
            logger.warning("Default profile write for %s failed: %s", identity, exc)
            context.errors["create"] = exc

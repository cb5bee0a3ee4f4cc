from __future__ import annotations

import logging
from dataclasses import dataclass

from src.application.use_cases.admin_roster import AdminRosterView
from src.application.use_cases.adjust_points import LedgerMutator
from src.application.use_cases.mirror_sync import PublicMirrorSynchronizer
from src.application.use_cases.profile_record_manager import ProfileRecordManager
from src.domain.entities.session import SessionContext, SessionState
from src.domain.errors import IdentityError
from src.infrastructure.config import LoyaltySettings
from src.infrastructure.database.document_store import Subscription
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.repositories.summary_repository import SummaryRepository
from src.infrastructure.database.supabase_client import SupabaseIdentityProvider, UserInfo

logger = logging.getLogger(__name__)


@dataclass
class LoyaltySession:
    """
    One client session: identity lifecycle plus the sync components.

    Identity changes rebuild ``context`` from scratch after every subscription
    tied to the previous identity has been cancelled, so a late callback can
    only ever touch a context nobody reads anymore.
    """

    provider: SupabaseIdentityProvider
    profiles: ProfileRepository
    summaries: SummaryRepository
    settings: LoyaltySettings

    def __post_init__(self) -> None:
        self.context = SessionContext()
        self.manager = ProfileRecordManager(self.profiles, self.settings.default_display_name)
        self.mirror = PublicMirrorSynchronizer(self.summaries)
        self.roster_view = AdminRosterView(self.summaries)
        self.ledger = LedgerMutator(self.profiles, self.summaries)
        self._profile_sub: Subscription | None = None
        self._auth_sub = self.provider.on_identity_changed(self._on_identity_changed)

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------

    def sign_in(self, token: str | None = None) -> SessionContext:
        """
        Authenticate with ``token`` (or the configured pre-issued token, or anonymously).

        Raises:
            IdentityError: The provider rejected the attempt; state is AUTH_FAILED
        """
        if token is None:
            token = self.settings.initial_auth_token
        previous, previous_state = self.context, self.context.state
        previous.state = SessionState.AUTHENTICATING
        try:
            user = self.provider.sign_in(token)
        except IdentityError:
            logger.warning("Sign-in failed; session left signed out")
            self.provider.sign_out()
            self._release()
            self.context = SessionContext(state=SessionState.AUTH_FAILED)
            raise
        if self.context is previous and user.id == previous.identity:
            # Same identity again: nothing was rebuilt
            previous.state = previous_state
        return self.context

    def sign_out(self) -> None:
        self.provider.sign_out()

    def close(self) -> None:
        """Release every subscription, including the identity listener."""
        self._release()
        self._auth_sub.cancel()
        self.context = SessionContext()

    def _on_identity_changed(self, user: UserInfo | None) -> None:
        if user is None:
            if self.context.identity is not None:
                logger.info("Identity %s signed out", self.context.identity)
            self._release()
            self.context = SessionContext()
            return
        if user.id == self.context.identity:
            return
        self._release()
        self.context = SessionContext(identity=user.id, state=SessionState.AUTHENTICATED)
        logger.info("Identity %s signed in", user.id)
        self._profile_sub = self.manager.attach(self.context, self._on_profile_update)

    def _release(self) -> None:
        if self._profile_sub is not None:
            self._profile_sub.cancel()
            self._profile_sub = None
        self.roster_view.stop()
        if self.context.identity:
            self.mirror.forget(self.context.identity)

    def _on_profile_update(self, context: SessionContext) -> None:
        if context is not self.context:
            return
        if context.state is SessionState.PROFILE_UNAVAILABLE:
            self.roster_view.stop(context)
            return
        self.mirror.sync(context)
        self.roster_view.refresh(context, self._on_roster_update)
        self._on_roster_update(context)

    def _on_roster_update(self, context: SessionContext) -> None:
        if context is not self.context:
            return
        if context.state in (SessionState.PROFILE_READY, SessionState.ROSTER_SYNCING):
            context.state = SessionState.ROSTER_SYNCING if self.roster_view.active else SessionState.PROFILE_READY

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def rename(self, name: str) -> None:
        """Change the signed-in identity's display name; the mirror follows on the echo."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Display name cannot be empty")
        identity = self._require_profile()
        self.profiles.set_display_name(identity, name)

    def adjust_points(self, target_identity: str, current_points: int, delta: int) -> int:
        self._require_admin()
        return self.ledger.adjust(target_identity, current_points, delta)

    def reconcile(self, target_identity: str) -> int:
        self._require_admin()
        return self.ledger.reconcile(target_identity)

    def retry(self) -> dict[str, bool]:
        """Re-attempt writes that failed earlier in this session."""
        done: dict[str, bool] = {}
        if "create" in self.context.errors:
            done["create"] = self.manager.retry_create(self.context)
        if "mirror" in self.context.errors:
            done["mirror"] = self.mirror.sync(self.context)
        return done

    def _require_profile(self) -> str:
        if self.context.identity is None or self.context.current_profile is None:
            raise LookupError("No profile loaded for this session")
        return self.context.identity

    def _require_admin(self) -> None:
        self._require_profile()
        if not self.context.is_admin:
            raise PermissionError("Admin rights required")

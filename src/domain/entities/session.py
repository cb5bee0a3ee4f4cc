from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from src.domain.entities.profile import PrivateProfile, RosterEntry


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTH_FAILED = "auth_failed"
    AUTHENTICATED = "authenticated"
    PROFILE_LOADING = "profile_loading"
    PROFILE_READY = "profile_ready"
    PROFILE_UNAVAILABLE = "profile_unavailable"
    ROSTER_SYNCING = "roster_syncing"


@dataclass(frozen=True)
class Pending:
    """Locally synthesized profile that the store has not echoed back yet."""

    value: PrivateProfile
    phase = "pending"


@dataclass(frozen=True)
class Confirmed:
    """Profile exactly as last delivered by the store."""

    value: PrivateProfile
    phase = "confirmed"


ProfileValue = Pending | Confirmed


@dataclass
class SessionContext:
    """Everything a session knows, threaded through the sync components.

    A context is bound to one identity; signing in as someone else builds a
    new one.
    """

    identity: str | None = None
    state: SessionState = SessionState.UNAUTHENTICATED
    profile: ProfileValue | None = None
    roster: list[RosterEntry] = field(default_factory=list)
    # Failed writes kept around so the caller can offer a retry
    errors: dict[str, Exception] = field(default_factory=dict)

    @property
    def current_profile(self) -> PrivateProfile | None:
        return self.profile.value if self.profile is not None else None

    @property
    def is_admin(self) -> bool:
        prof = self.current_profile
        return bool(prof and prof.is_admin)

    @property
    def scan_token(self) -> str | None:
        # The scannable card encodes the bare identity
        return self.identity

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.domain.entities.profile import PrivateProfile, RosterEntry, tier_value
from src.domain.entities.session import SessionContext


class ProfileOut(BaseModel):
    """Private profile of the signed-in identity."""
    identity: str = Field(..., description="Subject id issued by the identity provider")
    display_name: str = Field(..., description="Name shown on the loyalty card", examples=["Invitée Privilège"])
    points: int = Field(..., description="Redeemable balance", ge=0, examples=[25])
    referral_pool: int = Field(..., description="Ambassador pool, accrues independently of points", ge=0)
    tier: str = Field(..., description="Membership rank", examples=["Silver"])
    is_admin: bool = Field(..., description="Grants roster visibility and point adjustments")
    created_at: datetime | None = Field(None, description="When the profile was first created")
    phase: str = Field(..., description="'pending' until the store echoes the record back, then 'confirmed'")

    @classmethod
    def from_entity(cls, profile: PrivateProfile, phase: str) -> ProfileOut:
        return cls(
            identity=profile.identity,
            display_name=profile.display_name,
            points=profile.points,
            referral_pool=profile.referral_pool,
            tier=tier_value(profile.tier),
            is_admin=profile.is_admin,
            created_at=profile.created_at,
            phase=phase,
        )


class SessionOut(BaseModel):
    """Current state of a client session."""
    session_id: str = Field(..., description="Send back as the X-Session-Id header")
    state: str = Field(..., description="Session state machine position", examples=["profile_ready"])
    identity: str | None = Field(None, description="Signed-in subject id, if any")
    scan_token: str | None = Field(None, description="Value encoded by the scannable member card")
    profile: ProfileOut | None = Field(None, description="Profile, absent while loading or unavailable")
    pending_errors: dict[str, str] = Field(
        default_factory=dict, description="Writes that failed and can be retried, by kind"
    )

    @classmethod
    def from_context(cls, session_id: str, context: SessionContext) -> SessionOut:
        profile = None
        if context.profile is not None:
            profile = ProfileOut.from_entity(context.profile.value, context.profile.phase)
        return cls(
            session_id=session_id,
            state=context.state.value,
            identity=context.identity,
            scan_token=context.scan_token,
            profile=profile,
            pending_errors={kind: str(err) for kind, err in context.errors.items()},
        )


class SignInRequest(BaseModel):
    """Sign-in request; without a token the session signs in anonymously."""
    token: str | None = Field(None, description="Pre-issued access token")


class RenameRequest(BaseModel):
    """Request model for changing the display name."""
    name: str = Field(..., min_length=1, max_length=100, description="New display name", examples=["Camille"])


class RetryResponse(BaseModel):
    """Outcome of re-attempting failed writes."""
    retried: dict[str, bool] = Field(..., description="Write kind -> whether it went through this time")


class RosterEntryOut(BaseModel):
    """One public summary as seen by an admin."""
    id: str = Field(..., description="Document key inside the public collection")
    identity: str = Field(..., description="Subject id the summary mirrors")
    name: str = Field(..., description="Mirrored display name")
    points: int = Field(..., description="Mirrored balance", ge=0)
    tier: str = Field(..., description="Mirrored membership rank")
    fields: dict[str, Any] = Field(default_factory=dict, description="Raw stored fields")

    @classmethod
    def from_entity(cls, entry: RosterEntry) -> RosterEntryOut:
        return cls(
            id=entry.key,
            identity=entry.summary.identity,
            name=entry.summary.display_name,
            points=entry.summary.points,
            tier=tier_value(entry.summary.tier),
            fields=entry.fields,
        )


class RosterResponse(BaseModel):
    """Full roster in store delivery order."""
    clients: list[RosterEntryOut] = Field(..., description="Every public summary")


class AdjustPointsRequest(BaseModel):
    """Point adjustment computed from the balance the admin last saw."""
    target_identity: str = Field(..., min_length=1, description="Identity whose balance changes")
    current_points: int = Field(..., ge=0, description="Balance the caller last observed", examples=[10])
    delta: int = Field(..., description="Signed change; the result is floored at zero", examples=[5, -5])


class AdjustPointsResponse(BaseModel):
    """Balance written to both records."""
    target_identity: str = Field(..., description="Identity whose balance changed")
    points: int = Field(..., ge=0, description="New balance")

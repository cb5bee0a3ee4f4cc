from __future__ import annotations

from datetime import UTC, datetime

from src.domain.entities.profile import PrivateProfile, Tier


class LedgerService:
    """Pure balance rules. No I/O; repositories and use cases call into this."""

    # Adjustment: P_out = max(0, P_in + delta)
    @staticmethod
    def apply_delta(current_points: int, delta: int) -> int:
        if isinstance(current_points, bool) or not isinstance(current_points, int):
            raise ValueError("current_points must be an integer")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValueError("delta must be an integer")
        if current_points < 0:
            raise ValueError("current_points cannot be negative")
        return max(0, current_points + delta)

    @staticmethod
    def default_profile(identity: str, display_name: str, now: datetime | None = None) -> PrivateProfile:
        return PrivateProfile(
            identity=identity,
            display_name=display_name,
            points=0,
            referral_pool=0,
            tier=Tier.SILVER,
            is_admin=False,
            created_at=now or datetime.now(UTC),
        )

    # The triple whose change makes the public mirror stale
    @staticmethod
    def mirror_key(profile: PrivateProfile) -> tuple[str, int, Tier | str]:
        return (profile.display_name, profile.points, profile.tier)

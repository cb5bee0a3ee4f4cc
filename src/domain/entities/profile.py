from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Tier(str, Enum):
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    @classmethod
    def parse(cls, value: str | None) -> Tier | str:
        """Known ranks become members; ranks added by newer writers are kept as raw strings."""
        if not value:
            return cls.SILVER
        try:
            return cls(value)
        except ValueError:
            return str(value)


def tier_value(tier: Tier | str) -> str:
    return tier.value if isinstance(tier, Tier) else tier


@dataclass(frozen=True)
class PrivateProfile:
    identity: str  # subject id from the identity provider
    display_name: str
    points: int = 0
    referral_pool: int = 0  # "cagnotte", accrues independently of points
    tier: Tier | str = Tier.SILVER
    is_admin: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class PublicSummary:
    identity: str
    display_name: str
    points: int
    tier: Tier | str

    @classmethod
    def project(cls, profile: PrivateProfile) -> PublicSummary:
        return cls(
            identity=profile.identity,
            display_name=profile.display_name,
            points=profile.points,
            tier=profile.tier,
        )


@dataclass(frozen=True)
class RosterEntry:
    key: str  # document key inside the public collection
    summary: PublicSummary
    # Raw stored fields, including ones this version does not know about
    fields: dict

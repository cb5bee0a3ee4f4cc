from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from src.domain.entities.profile import PrivateProfile, Tier, tier_value
from src.domain.errors import SubscriptionError
from src.infrastructure.database.document_store import DocumentSnapshot, DocumentStore, Subscription
from src.infrastructure.database.paths import private_profile_path


class ProfileRepository:
    """Private profile documents, one per identity."""

    def __init__(self, store: DocumentStore, app_id: str) -> None:
        self.store = store
        self.app_id = app_id

    def path(self, identity: str) -> str:
        return private_profile_path(self.app_id, identity)

    def _row_to_entity(self, row: dict[str, Any], identity: str | None = None) -> PrivateProfile:
        """Convert stored document to PrivateProfile. Records seeded by hand may lack ``uid``."""
        created_at = row.get("memberSince")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return PrivateProfile(
            identity=row.get("uid") or identity,
            display_name=row.get("name") or "",
            points=int(row.get("points") or 0),
            referral_pool=int(row.get("cagnotteAmbassadrice") or 0),
            tier=Tier.parse(row.get("tier")),
            is_admin=bool(row.get("isAdmin", False)),
            created_at=created_at,
        )

    def _entity_to_row(self, profile: PrivateProfile) -> dict[str, Any]:
        return {
            "uid": profile.identity,
            "name": profile.display_name,
            "points": profile.points,
            "cagnotteAmbassadrice": profile.referral_pool,
            "tier": tier_value(profile.tier),
            "isAdmin": profile.is_admin,
            "memberSince": profile.created_at.isoformat() if profile.created_at else None,
        }

    def get(self, identity: str) -> PrivateProfile | None:
        snap = self.store.get(self.path(identity))
        return self._row_to_entity(snap.data, identity) if snap.exists else None

    def create_if_absent(self, profile: PrivateProfile) -> bool:
        """Write ``profile`` unless a record already exists. Existing fields are never touched."""
        return self.store.create(self.path(profile.identity), self._entity_to_row(profile))

    def set_points(self, identity: str, points: int) -> None:
        self.store.update(self.path(identity), {"points": points})

    def set_display_name(self, identity: str, name: str) -> None:
        self.store.update(self.path(identity), {"name": name})

    def subscribe(
        self,
        identity: str,
        on_change: Callable[[PrivateProfile | None], None],
        on_error: Callable[[SubscriptionError], None],
    ) -> Subscription:
        """Listen to one profile. ``on_change`` receives None while no record exists."""

        def handle(snap: DocumentSnapshot) -> None:
            on_change(self._row_to_entity(snap.data, identity) if snap.exists else None)

        return self.store.subscribe(self.path(identity), handle, on_error)

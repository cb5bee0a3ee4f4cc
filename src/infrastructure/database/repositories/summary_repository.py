from __future__ import annotations

from typing import Any, Callable

from src.domain.entities.profile import PublicSummary, RosterEntry, Tier, tier_value
from src.domain.errors import SubscriptionError
from src.infrastructure.database.document_store import DocumentSnapshot, DocumentStore, Subscription
from src.infrastructure.database.paths import public_collection_path, public_summary_path


class SummaryRepository:
    """Public summary documents, listable by everyone with roster access."""

    def __init__(self, store: DocumentStore, app_id: str) -> None:
        self.store = store
        self.app_id = app_id

    def path(self, identity: str) -> str:
        return public_summary_path(self.app_id, identity)

    def _row_to_entity(self, key: str, row: dict[str, Any]) -> PublicSummary:
        return PublicSummary(
            identity=row.get("uid") or key,
            display_name=row.get("name") or "",
            points=int(row.get("points") or 0),
            tier=Tier.parse(row.get("tier")),
        )

    def get(self, identity: str) -> PublicSummary | None:
        snap = self.store.get(self.path(identity))
        return self._row_to_entity(snap.id, snap.data) if snap.exists else None

    def merge_projection(self, summary: PublicSummary) -> None:
        # Merge so fields added by newer writers survive
        self.store.merge(
            self.path(summary.identity),
            {
                "name": summary.display_name,
                "points": summary.points,
                "tier": tier_value(summary.tier),
                "uid": summary.identity,
            },
        )

    def set_points(self, identity: str, points: int) -> None:
        self.store.update(self.path(identity), {"points": points})

    def subscribe_all(
        self,
        on_change: Callable[[list[RosterEntry]], None],
        on_error: Callable[[SubscriptionError], None],
    ) -> Subscription:
        """Listen to the whole collection; every notification carries the full ordered list."""

        def handle(snaps: list[DocumentSnapshot]) -> None:
            on_change(
                [
                    RosterEntry(key=s.id, summary=self._row_to_entity(s.id, s.data), fields=dict(s.data))
                    for s in snaps
                    if s.exists
                ]
            )

        return self.store.subscribe_collection(public_collection_path(self.app_id), handle, on_error)

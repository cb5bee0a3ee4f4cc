"""
Tests for the profile record manager: lazy creation, verbatim replacement and failure states.
"""
from __future__ import annotations

from datetime import UTC, datetime

from src.application.use_cases.profile_record_manager import ProfileRecordManager
from src.domain.entities.profile import PrivateProfile, Tier
from src.domain.entities.session import Confirmed, Pending, SessionContext, SessionState
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

APP_ID = "test-app"


def _attach(store, identity="u1"):
    profiles = ProfileRepository(store, APP_ID)
    manager = ProfileRecordManager(profiles, "Invitée Privilège")
    context = SessionContext(identity=identity, state=SessionState.AUTHENTICATED)
    phases = []
    sub = manager.attach(context, lambda ctx: phases.append(ctx.profile))
    return profiles, manager, context, phases, sub


class TestCreation:
    def test_new_identity_is_adopted_pending_then_confirmed(self, deferred_store):
        profiles, _, context, phases, _ = _attach(deferred_store)
        assert context.state is SessionState.PROFILE_LOADING
        assert context.profile is None

        deferred_store.flush()

        assert [type(p) for p in phases] == [Pending, Confirmed]
        assert phases[0].value == phases[1].value
        prof = context.current_profile
        assert (prof.points, prof.referral_pool, prof.tier, prof.is_admin) == (0, 0, Tier.SILVER, False)
        assert prof.display_name == "Invitée Privilège"
        assert context.state is SessionState.PROFILE_READY
        assert profiles.get("u1") == prof

    def test_existing_record_is_not_overwritten(self, store):
        profiles = ProfileRepository(store, APP_ID)
        existing = PrivateProfile(
            identity="u1",
            display_name="Camille",
            points=42,
            referral_pool=7,
            tier=Tier.GOLD,
            is_admin=True,
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
        profiles.create_if_absent(existing)

        for _ in range(2):
            _, _, context, phases, sub = _attach(store)
            assert [type(p) for p in phases] == [Confirmed]
            assert context.current_profile == existing
            sub.cancel()

        assert profiles.create_if_absent(PrivateProfile(identity="u1", display_name="x")) is False
        assert profiles.get("u1") == existing


class TestUpdates:
    def test_remote_write_replaces_state_verbatim(self, store):
        profiles, _, context, _, _ = _attach(store)
        store.update(profiles.path("u1"), {"points": 30, "name": "Camille"})
        prof = context.current_profile
        assert isinstance(context.profile, Confirmed)
        assert (prof.points, prof.display_name) == (30, "Camille")

    def test_stale_identity_callbacks_are_ignored(self, store):
        profiles, _, context, phases, _ = _attach(store)
        context.identity = "someone-else"
        store.update(profiles.path("u1"), {"points": 99})
        assert context.current_profile.points == 0
        assert len(phases) == 2


class TestFailures:
    def test_subscription_failure_is_terminal_unavailable(self, store):
        profiles, _, context, phases, sub = _attach(store)
        store.fail(profiles.path("u1"), "permission revoked")
        assert context.state is SessionState.PROFILE_UNAVAILABLE
        assert context.profile is None
        assert not sub.active
        store.update(profiles.path("u1"), {"points": 5})
        assert context.profile is None

    def test_failed_create_keeps_pending_and_can_be_retried(self, store, fail_writes, monkeypatch):
        real = fail_writes(store, op="create")
        profiles, manager, context, _, _ = _attach(store)

        assert isinstance(context.profile, Pending)
        assert "create" in context.errors
        assert context.state is SessionState.PROFILE_READY
        assert profiles.get("u1") is None

        monkeypatch.setattr(store, "_apply", real)
        assert manager.retry_create(context) is True
        assert isinstance(context.profile, Confirmed)
        assert "create" not in context.errors

    def test_retry_is_noop_once_confirmed(self, store):
        _, manager, context, _, _ = _attach(store)
        assert manager.retry_create(context) is False

"""
Tests for the in-memory document store and its subscriptions.
"""
from __future__ import annotations

from unittest.mock import patch

import pytest

from src.domain.errors import ReadError, SubscriptionError, WriteError


class TestWrites:
    def test_create_is_conditional(self, store):
        assert store.create("c/a", {"x": 1}) is True
        assert store.create("c/a", {"x": 2}) is False
        assert store.get("c/a").data == {"x": 1}

    def test_merge_keeps_unlisted_fields(self, store):
        store.set("c/a", {"x": 1, "extra": "keep"})
        store.merge("c/a", {"x": 2})
        assert store.get("c/a").data == {"x": 2, "extra": "keep"}

    def test_merge_creates_missing_document(self, store):
        store.merge("c/a", {"x": 1})
        assert store.get("c/a").exists

    def test_update_requires_existing_document(self, store):
        with pytest.raises(WriteError, match="does not exist"):
            store.update("c/missing", {"x": 1})
        assert not store.get("c/missing").exists

    def test_backend_failure_becomes_write_error(self, store):
        with patch.object(store, "_apply", side_effect=RuntimeError("network down")):
            with pytest.raises(WriteError, match="network down") as info:
                store.set("c/a", {"x": 1})
        assert info.value.path == "c/a"
        assert info.value.retryable is True

    def test_snapshots_are_copies(self, store):
        store.set("c/a", {"x": {"y": 1}})
        snap = store.get("c/a")
        snap.data["x"]["y"] = 99
        assert store.get("c/a").data == {"x": {"y": 1}}

    def test_list_only_direct_children_in_insertion_order(self, store):
        store.set("c/b", {"n": 1})
        store.set("c/a", {"n": 2})
        store.set("c/a/deeper", {"n": 3})
        store.set("other/z", {"n": 4})
        assert [s.id for s in store.list("c")] == ["b", "a"]


class TestSubscriptions:
    def test_initial_state_then_changes_in_commit_order(self, store):
        seen = []
        store.subscribe("c/a", lambda snap: seen.append(snap.data))
        store.set("c/a", {"v": 1})
        store.merge("c/a", {"v": 2})
        assert seen == [None, {"v": 1}, {"v": 2}]

    def test_cancel_stops_delivery(self, store):
        seen = []
        sub = store.subscribe("c/a", lambda snap: seen.append(snap.data))
        sub.cancel()
        sub.cancel()  # idempotent
        store.set("c/a", {"v": 1})
        assert seen == [None]
        assert not sub.active

    def test_context_manager_cancels(self, store):
        seen = []
        with store.subscribe("c/a", lambda snap: seen.append(snap.data)):
            store.set("c/a", {"v": 1})
        store.set("c/a", {"v": 2})
        assert seen == [None, {"v": 1}]

    def test_collection_gets_full_list_each_time(self, store):
        seen = []
        store.subscribe_collection("c", lambda snaps: seen.append([s.id for s in snaps]))
        store.set("c/a", {})
        store.set("c/b", {})
        store.set("elsewhere/x", {})
        assert seen == [[], ["a"], ["a", "b"]]

    def test_write_inside_callback_is_delivered_after_it_returns(self, store):
        order = []

        def on_change(snap):
            order.append(("enter", snap.data))
            if snap.data is None:
                store.set("c/a", {"v": 1})
            order.append(("exit", snap.data))

        store.subscribe("c/a", on_change)
        assert order == [("enter", None), ("exit", None), ("enter", {"v": 1}), ("exit", {"v": 1})]

    def test_deferred_mode_waits_for_flush(self, deferred_store):
        seen = []
        deferred_store.subscribe("c/a", lambda snap: seen.append(snap.data))
        deferred_store.set("c/a", {"v": 1})
        assert seen == []
        assert deferred_store.pending == 2
        assert deferred_store.flush() == 2
        assert seen == [None, {"v": 1}]

    def test_cancelled_subscription_drops_queued_notifications(self, deferred_store):
        seen = []
        sub = deferred_store.subscribe("c/a", lambda snap: seen.append(snap.data))
        deferred_store.set("c/a", {"v": 1})
        sub.cancel()
        assert deferred_store.flush() == 0
        assert seen == []

    def test_fail_terminates_listeners(self, store):
        errors = []
        seen = []
        sub = store.subscribe("c/a", lambda snap: seen.append(snap.data), errors.append)
        store.fail("c/a", "permission revoked")
        assert len(errors) == 1 and isinstance(errors[0], SubscriptionError)
        assert not sub.active
        store.set("c/a", {"v": 1})
        assert seen == [None]

    def test_read_failure_surfaces_as_subscription_error(self, store):
        errors = []
        with patch.object(store, "get", side_effect=ReadError("boom")):
            sub = store.subscribe("c/a", lambda snap: None, errors.append)
        assert isinstance(errors[0], SubscriptionError)
        assert isinstance(errors[0].__cause__, ReadError)
        assert not sub.active


class TestListenerFailures:
    def test_raising_listener_does_not_reach_the_writer(self, store):
        errors = []
        seen = []

        def broken(snap):
            if snap.exists:
                raise ValueError("bad record")

        sub = store.subscribe("c/a", broken, errors.append)
        store.subscribe("c/a", lambda snap: seen.append(snap.data))

        store.set("c/a", {"v": 1})

        assert store.get("c/a").data == {"v": 1}
        assert seen == [None, {"v": 1}]
        assert not sub.active
        assert isinstance(errors[0], SubscriptionError)
        assert isinstance(errors[0].__cause__, ValueError)

        store.set("c/a", {"v": 2})
        assert len(errors) == 1
        assert seen[-1] == {"v": 2}

    def test_raising_error_handler_is_only_logged(self, store, caplog):
        def on_error(err):
            raise RuntimeError("handler broke")

        sub = store.subscribe("c/a", lambda snap: None, on_error)
        store.fail("c/a", "permission revoked")

        assert not sub.active
        assert "handler broke" in caplog.text

    def test_collection_listener_failure_is_isolated(self, store):
        errors = []

        def broken(snaps):
            if snaps:
                raise KeyError("tier")

        sub = store.subscribe_collection("c", broken, errors.append)
        store.merge("c/a", {"tier": "Diamond"})
        assert store.get("c/a").exists
        assert not sub.active
        assert len(errors) == 1

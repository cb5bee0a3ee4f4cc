from __future__ import annotations

import copy
import logging
import os
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from src.domain.errors import ReadError, SubscriptionError, WriteError
from src.infrastructure.database.paths import leaf_of, parent_of
from src.infrastructure.database.postgres_client import get_postgres_client

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentSnapshot:
    path: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return leaf_of(self.path)


class Subscription:
    """Cancel handle returned by every subscribe call."""

    def __init__(self, path: str, on_cancel: Callable[[Subscription], None] | None = None) -> None:
        self.path = path
        self.active = True
        self._on_cancel = on_cancel

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_cancel is not None:
            self._on_cancel(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.cancel()


@dataclass
class _Listener:
    subscription: Subscription
    on_change: Callable[[Any], None]
    on_error: Callable[[SubscriptionError], None] | None


class DocumentStore:
    """Key-addressed document store with push subscriptions.

    Backends follow the rest of the infrastructure: an in-memory dict when
    SUPABASE_DISABLED=1 (or no client), a jsonb table when USE_LOCAL_DB=1, and
    a Supabase table otherwise. Change notifications are fanned out to
    listeners of this store instance from a FIFO queue, so a write issued
    inside a callback is delivered after that callback returns. With
    ``deferred=True`` queued notifications wait for ``flush()``.

    Only writes made through this instance are pushed. In the Supabase and
    PostgreSQL modes, writes from other processes reach a listener only on
    its next read, so every session that must observe the others has to be
    served by one process (run a single worker).
    """

    def __init__(self, client: Client | None, *, deferred: bool = False) -> None:
        self.client = client
        self.deferred = deferred
        self.table = os.getenv("SUPABASE_DOCUMENTS_TABLE", "documents")
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None
        # path -> data, insertion ordered
        self._mem: dict[str, dict[str, Any]] = {}
        self._doc_listeners: dict[str, list[_Listener]] = {}
        self._collection_listeners: dict[str, list[_Listener]] = {}
        self._queue: deque[tuple[_Listener, Callable[[Any], None], Any]] = deque()
        self._draining = False

    @property
    def _in_memory(self) -> bool:
        return not (self.use_local_db and self.pg_client) and (self.disabled or self.client is None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str) -> DocumentSnapshot:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                return DocumentSnapshot(path, self.pg_client.fetch_document(path))
            except Exception as exc:
                raise ReadError(f"PostgreSQL read {path} failed: {exc}") from exc

        # In-memory mode
        if self._in_memory:
            data = self._mem.get(path)
            return DocumentSnapshot(path, copy.deepcopy(data) if data is not None else None)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table(self.table).select("data").eq("path", path).limit(1).execute()
            rows = res.data or []
            return DocumentSnapshot(path, dict(rows[0]["data"]) if rows else None)
        except Exception as exc:  # pragma: no cover
            raise ReadError(f"DB read {path} failed: {exc}") from exc

    def list(self, parent: str) -> list[DocumentSnapshot]:
        """Every document directly under ``parent``, in insertion order."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                return [DocumentSnapshot(p, d) for p, d in self.pg_client.fetch_collection(parent)]
            except Exception as exc:
                raise ReadError(f"PostgreSQL list {parent} failed: {exc}") from exc

        # In-memory mode
        if self._in_memory:
            return [
                DocumentSnapshot(p, copy.deepcopy(d))
                for p, d in self._mem.items()
                if parent_of(p) == parent
            ]

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table(self.table)
                .select("path,data")
                .eq("parent", parent)
                .order("created_seq")
                .execute()
            )
            return [DocumentSnapshot(row["path"], dict(row["data"])) for row in res.data or []]
        except Exception as exc:  # pragma: no cover
            raise ReadError(f"DB list {parent} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, path: str, data: dict[str, Any]) -> None:
        """Full replace."""
        self._write(path, "set", data)

    def create(self, path: str, data: dict[str, Any]) -> bool:
        """Write ``data`` only if nothing exists at ``path``. Returns True if written."""
        return self._write(path, "create", data)

    def merge(self, path: str, data: dict[str, Any]) -> None:
        """Upsert the listed fields; fields not listed are left untouched."""
        self._write(path, "merge", data)

    def update(self, path: str, data: dict[str, Any]) -> None:
        """Patch fields of an existing document. Fails if the document is missing."""
        self._write(path, "update", data)

    def _write(self, path: str, op: str, data: dict[str, Any]) -> bool:
        try:
            changed = self._apply(path, op, dict(data))
        except WriteError:
            raise
        except Exception as exc:
            logger.warning("Document %s of %s failed: %s", op, path, exc)
            raise WriteError(f"{op} {path} failed: {exc}", path=path) from exc
        if changed:
            self._publish(path)
        return changed

    def _apply(self, path: str, op: str, data: dict[str, Any]) -> bool:
        parent = parent_of(path)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            if op == "set":
                self.pg_client.replace_document(path, parent, data)
            elif op == "create":
                return self.pg_client.insert_if_absent(path, parent, data)
            elif op == "merge":
                self.pg_client.merge_document(path, parent, data)
            elif self.pg_client.update_document(path, data) == 0:
                raise WriteError(f"update {path} failed: document does not exist", path=path)
            return True

        # In-memory mode
        if self._in_memory:
            current = self._mem.get(path)
            if op == "create" and current is not None:
                return False
            if op == "update" and current is None:
                raise WriteError(f"update {path} failed: document does not exist", path=path)
            if op in ("merge", "update") and current is not None:
                merged = dict(current)
                merged.update(copy.deepcopy(data))
                self._mem[path] = merged
            else:
                self._mem[path] = copy.deepcopy(data)
            return True

        # Supabase mode. PostgREST cannot patch inside a jsonb column, so
        # merge and update read the row first.
        table = self.client.table(self.table)  # pragma: no cover - network
        if op == "set":  # pragma: no cover
            table.upsert({"path": path, "parent": parent, "data": data}, on_conflict="path").execute()
            return True
        if op == "create":  # pragma: no cover
            res = table.upsert(
                {"path": path, "parent": parent, "data": data},
                on_conflict="path",
                ignore_duplicates=True,
            ).execute()
            return bool(res.data)
        current = self.get(path).data  # pragma: no cover
        if current is None:  # pragma: no cover
            if op == "update":
                raise WriteError(f"update {path} failed: document does not exist", path=path)
            table.insert({"path": path, "parent": parent, "data": data}).execute()
            return True
        table.update({"data": {**current, **data}}).eq("path", path).execute()  # pragma: no cover
        return True  # pragma: no cover

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        path: str,
        on_change: Callable[[DocumentSnapshot], None],
        on_error: Callable[[SubscriptionError], None] | None = None,
    ) -> Subscription:
        """Listen to one document. The current state is delivered first."""
        sub = Subscription(path, self._forget)
        listener = _Listener(sub, on_change, on_error)
        self._doc_listeners.setdefault(path, []).append(listener)
        self._deliver(listener, lambda: self.get(path))
        return sub

    def subscribe_collection(
        self,
        parent: str,
        on_change: Callable[[list[DocumentSnapshot]], None],
        on_error: Callable[[SubscriptionError], None] | None = None,
    ) -> Subscription:
        """Listen to every document under ``parent``. Each notification carries the full list."""
        sub = Subscription(parent, self._forget)
        listener = _Listener(sub, on_change, on_error)
        self._collection_listeners.setdefault(parent, []).append(listener)
        self._deliver(listener, lambda: self.list(parent))
        return sub

    def fail(self, path: str, reason: str) -> None:
        """Terminate every listener of ``path`` (document or collection) with an error.

        Backends call this when the server revokes access to a key.
        """
        listeners = list(self._doc_listeners.get(path, [])) + list(self._collection_listeners.get(path, []))
        for listener in listeners:
            self._enqueue_error(listener, SubscriptionError(f"Subscription to {path} failed: {reason}"))
        self._drain_if_eager()

    @property
    def pending(self) -> int:
        return len(self._queue)

    def flush(self) -> int:
        """Deliver queued notifications. Returns how many callbacks ran.

        A callback that raises is logged and its subscription terminated
        through ``on_error``; the exception never reaches the writer whose
        commit triggered the notification.
        """
        if self._draining:
            return 0
        self._draining = True
        delivered = 0
        try:
            while self._queue:
                listener, fn, arg = self._queue.popleft()
                if not listener.subscription.active:
                    continue
                delivered += 1
                try:
                    fn(arg)
                except Exception as exc:
                    logger.exception("Listener of %s raised", listener.subscription.path)
                    if fn is listener.on_change:
                        err = SubscriptionError(
                            f"Subscription to {listener.subscription.path} failed: listener raised {exc!r}"
                        )
                        err.__cause__ = exc
                        self._enqueue_error(listener, err)
        finally:
            self._draining = False
        return delivered

    def _publish(self, path: str) -> None:
        for listener in list(self._doc_listeners.get(path, [])):
            self._deliver(listener, lambda: self.get(path), drain=False)
        parent = parent_of(path)
        for listener in list(self._collection_listeners.get(parent, [])):
            self._deliver(listener, lambda: self.list(parent), drain=False)
        self._drain_if_eager()

    def _deliver(self, listener: _Listener, read: Callable[[], Any], drain: bool = True) -> None:
        # The value is captured now so listeners see states in commit order
        try:
            value = read()
        except ReadError as exc:
            err = SubscriptionError(f"Subscription to {listener.subscription.path} failed: {exc}")
            err.__cause__ = exc
            self._enqueue_error(listener, err)
        else:
            self._queue.append((listener, listener.on_change, value))
        if drain:
            self._drain_if_eager()

    def _enqueue_error(self, listener: _Listener, err: SubscriptionError) -> None:
        def terminate(error: SubscriptionError) -> None:
            listener.subscription.cancel()
            if listener.on_error is not None:
                listener.on_error(error)
            else:
                logger.error("Unhandled subscription error: %s", error)

        self._queue.append((listener, terminate, err))

    def _drain_if_eager(self) -> None:
        if not self.deferred:
            self.flush()

    def _forget(self, sub: Subscription) -> None:
        for registry in (self._doc_listeners, self._collection_listeners):
            listeners = registry.get(sub.path)
            if not listeners:
                continue
            registry[sub.path] = [l for l in listeners if l.subscription is not sub]
            if not registry[sub.path]:
                del registry[sub.path]

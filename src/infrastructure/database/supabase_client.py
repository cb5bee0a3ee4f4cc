from __future__ import annotations

import hashlib
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from src.domain.errors import IdentityError
from src.infrastructure.database.document_store import Subscription

try:
    from supabase import Client, create_client
except Exception:  # pragma: no cover - env without supabase installed
    Client = Any  # type: ignore
    create_client = None  # type: ignore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserInfo:
    id: str
    email: str | None = None
    is_anonymous: bool = False


class SupabaseIdentityProvider:
    """Identity provider for one client session, backed by Supabase Auth.

    A pre-issued access token is validated with ``auth.get_user``; without one
    the session signs in anonymously. When SUPABASE_DISABLED=1 a deterministic
    fake identity is derived from the token (or a random one for anonymous
    sign-in).
    """

    def __init__(self) -> None:
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.url = os.getenv("SUPABASE_URL")
        self.key = os.getenv("SUPABASE_ANON_KEY")
        self._client: Client | None = None
        if not self.disabled and self.url and self.key and create_client is not None:
            self._client = create_client(self.url, self.key)
        self._current: UserInfo | None = None
        self._listeners: list[tuple[Subscription, Callable[[UserInfo | None], None]]] = []

    @property
    def current(self) -> UserInfo | None:
        return self._current

    def sign_in(self, token: str | None = None) -> UserInfo:
        if token is None:
            user = self._sign_in_anonymously()
        else:
            user = self._validate_token(token)
        self._set_current(user)
        return user

    def sign_out(self) -> None:
        if self._client is not None and not self.disabled:
            try:  # pragma: no cover - network
                self._client.auth.sign_out()  # type: ignore[attr-defined]
            except Exception as exc:  # pragma: no cover
                logger.warning("Remote sign-out failed, clearing local session anyway: %s", exc)
        self._set_current(None)

    def on_identity_changed(self, listener: Callable[[UserInfo | None], None]) -> Subscription:
        """Register ``listener``; it is called right away with the current user."""
        sub = Subscription("auth", self._forget)
        self._listeners.append((sub, listener))
        listener(self._current)
        return sub

    def _validate_token(self, token: str) -> UserInfo:
        if not token or not token.strip():
            raise IdentityError("Missing access token")
        if self.disabled or not self._client:
            digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
            return UserInfo(id=f"fake-{digest}")
        # Real validation via Supabase Auth API
        try:  # pragma: no cover - network
            res = self._client.auth.get_user(token)  # type: ignore[attr-defined]
            user = res.user if res else None  # type: ignore[assignment]
        except Exception as exc:  # pragma: no cover - network
            raise IdentityError(f"Invalid access token: {exc}") from exc
        if not user:  # pragma: no cover
            raise IdentityError("Invalid access token")
        return UserInfo(id=user.id, email=user.email)  # pragma: no cover

    def _sign_in_anonymously(self) -> UserInfo:
        if self.disabled or not self._client:
            return UserInfo(id=f"anon-{uuid.uuid4().hex}", is_anonymous=True)
        try:  # pragma: no cover - network
            res = self._client.auth.sign_in_anonymously()  # type: ignore[attr-defined]
            user = res.user
        except Exception as exc:  # pragma: no cover - network
            raise IdentityError(f"Anonymous sign-in rejected: {exc}") from exc
        if not user:  # pragma: no cover
            raise IdentityError("Anonymous sign-in rejected")
        return UserInfo(id=user.id, email=user.email, is_anonymous=True)  # pragma: no cover

    def _set_current(self, user: UserInfo | None) -> None:
        previous = self._current.id if self._current else None
        self._current = user
        if (user.id if user else None) == previous:
            return
        for sub, listener in list(self._listeners):
            if sub.active:
                listener(user)

    def _forget(self, sub: Subscription) -> None:
        self._listeners = [(s, l) for s, l in self._listeners if s is not sub]


# Simple reusable singleton client getter for the document store
_CLIENT_SINGLETON: Client | None = None


def get_supabase_client() -> Client | None:
    global _CLIENT_SINGLETON
    disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")
    if disabled or create_client is None or not url or not key:
        return None
    if _CLIENT_SINGLETON is None:
        _CLIENT_SINGLETON = create_client(url, key)
    return _CLIENT_SINGLETON

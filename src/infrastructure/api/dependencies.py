from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from src.application.use_cases.session import LoyaltySession
from src.infrastructure.api.sessions import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session_id(
    x_session_id: Annotated[str | None, Header(description="Session id returned by POST /session")] = None,
) -> str:
    if not x_session_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Session-Id header")
    return x_session_id


def get_session(
    session_id: Annotated[str, Depends(get_session_id)],
    registry: Annotated[SessionRegistry, Depends(get_registry)],
) -> LoyaltySession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown or closed session")
    return session

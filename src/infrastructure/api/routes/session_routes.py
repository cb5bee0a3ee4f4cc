from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from src.application.dtos.common_dto import ErrorResponse
from src.application.dtos.session_dto import RenameRequest, RetryResponse, SessionOut, SignInRequest
from src.application.use_cases.session import LoyaltySession
from src.infrastructure.api.dependencies import get_registry, get_session, get_session_id
from src.infrastructure.api.sessions import SessionRegistry

# Handlers are async so every session callback runs on the event loop thread
router = APIRouter(
    prefix="/session",
    tags=["Session"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Sign-in rejected or unknown session"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


@router.post(
    "",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Sign In",
    description="""
    Open a client session and sign in.

    - With a `token`, the pre-issued token is validated by the identity provider
    - Without one, the configured initial token is used, or the session signs in anonymously
    - The private profile is loaded, or created with defaults on first sight of the identity
    - The public summary is mirrored and, for admins, the roster subscription starts

    The returned `session_id` must be sent back in the `X-Session-Id` header.
    """,
    response_description="Session state right after sign-in",
)
async def sign_in(
    body: SignInRequest | None = None,
    registry: SessionRegistry = Depends(get_registry),
):
    """Open a session and authenticate it."""
    session_id, session = registry.open()
    try:
        context = session.sign_in(body.token if body else None)
    except Exception:
        registry.close(session_id)
        raise
    return SessionOut.from_context(session_id, context)


@router.get(
    "",
    response_model=SessionOut,
    summary="Get Session State",
    description="""
    Current state of the session: state machine position, identity, scan token,
    profile (with `phase` pending or confirmed) and writes awaiting a retry.
    """,
    response_description="Session state",
)
async def get_state(
    session_id: str = Depends(get_session_id),
    session: LoyaltySession = Depends(get_session),
):
    """Return the session's current state."""
    return SessionOut.from_context(session_id, session.context)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Sign Out",
    description="Sign out and release every subscription held by the session.",
)
async def sign_out(
    session_id: str = Depends(get_session_id),
    session: LoyaltySession = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Sign out and close the session."""
    session.sign_out()
    registry.close(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/profile",
    response_model=SessionOut,
    summary="Rename",
    description="""
    Change the display name of the signed-in identity.

    The public summary follows once the store echoes the private record back.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Empty name"},
        404: {"model": ErrorResponse, "description": "Not Found - No profile loaded"},
        503: {"model": ErrorResponse, "description": "Write failed - retryable"},
    },
)
async def rename(
    body: RenameRequest,
    session_id: str = Depends(get_session_id),
    session: LoyaltySession = Depends(get_session),
):
    """Update the display name."""
    session.rename(body.name)
    return SessionOut.from_context(session_id, session.context)


@router.post(
    "/retry",
    response_model=RetryResponse,
    summary="Retry Failed Writes",
    description="Re-attempt the default-profile create and the public mirror write if they failed earlier.",
)
async def retry(session: LoyaltySession = Depends(get_session)):
    """Retry failed writes."""
    return RetryResponse(retried=session.retry())

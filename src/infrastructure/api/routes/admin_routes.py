from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from src.application.dtos.common_dto import ErrorResponse
from src.application.dtos.session_dto import (
    AdjustPointsRequest,
    AdjustPointsResponse,
    RosterEntryOut,
    RosterResponse,
)
from src.application.use_cases.session import LoyaltySession
from src.infrastructure.api.dependencies import get_session

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Unknown session"},
        403: {"model": ErrorResponse, "description": "Forbidden - Session is not an admin"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


@router.get(
    "/roster",
    response_model=RosterResponse,
    summary="Get Roster",
    description="""
    Every public summary, in the order the store delivers them.

    The list is replaced wholesale on every change notification.
    """,
    response_description="Current roster",
)
async def get_roster(session: LoyaltySession = Depends(get_session)):
    """Return the live roster of an admin session."""
    if not session.context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin rights required")
    return RosterResponse(clients=[RosterEntryOut.from_entity(e) for e in session.context.roster])


@router.post(
    "/ledger/adjust",
    response_model=AdjustPointsResponse,
    summary="Adjust Points",
    description="""
    Set the target's balance to `max(0, current_points + delta)` on both the
    private and the public record.

    `current_points` is the balance the admin last saw. Two adjustments
    computed from the same value race: the last write wins, deltas are not
    accumulated.

    A 503 with `retryable: true` means at least one write failed. If only the
    public write failed, the records are reconciled by the owner's next sync
    or by `POST /admin/ledger/reconcile/{identity}`.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Invalid amounts"},
        503: {"model": ErrorResponse, "description": "Write failed - retryable"},
    },
)
async def adjust_points(body: AdjustPointsRequest, session: LoyaltySession = Depends(get_session)):
    """Adjust a target identity's balance."""
    points = session.adjust_points(body.target_identity, body.current_points, body.delta)
    return AdjustPointsResponse(target_identity=body.target_identity, points=points)


@router.post(
    "/ledger/reconcile/{identity}",
    response_model=AdjustPointsResponse,
    summary="Reconcile Public Summary",
    description="Rewrite the target's public summary from its private profile.",
    responses={404: {"model": ErrorResponse, "description": "Not Found - No such profile"}},
)
async def reconcile(identity: str, session: LoyaltySession = Depends(get_session)):
    """Re-derive a public summary from its private record."""
    points = session.reconcile(identity)
    return AdjustPointsResponse(target_identity=identity, points=points)

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from src.domain.errors import IdentityError, LoyaltyError, ReadError, SubscriptionError, WriteError

logger = logging.getLogger(__name__)


def add_default_middlewares(app: FastAPI) -> None:
    # CORS configuration
    # The card/roster front-ends are served from a dev server locally
    env = os.getenv("ENV", "development")

    if env in ("development", "staging"):
        allowed_origins = [
            "http://localhost:3000",
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    else:
        allowed_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error(status_code: int, exc: Exception, retryable: bool = False) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "retryable": retryable})


def add_exception_handlers(app: FastAPI) -> None:
    """Map core errors to HTTP responses. Failed writes are reported as retryable."""

    @app.exception_handler(IdentityError)
    async def identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        return _error(status.HTTP_401_UNAUTHORIZED, exc)

    @app.exception_handler(WriteError)
    async def write_error(request: Request, exc: WriteError) -> JSONResponse:
        logger.warning("Write failed on %s %s: %s", request.method, request.url.path, exc)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc, retryable=True)

    @app.exception_handler(ReadError)
    async def read_error(request: Request, exc: ReadError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc, retryable=True)

    @app.exception_handler(SubscriptionError)
    async def subscription_error(request: Request, exc: SubscriptionError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)

    @app.exception_handler(LoyaltyError)
    async def loyalty_error(request: Request, exc: LoyaltyError) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc, retryable=exc.retryable)

    @app.exception_handler(PermissionError)
    async def permission_error(request: Request, exc: PermissionError) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, exc)

    @app.exception_handler(LookupError)
    async def lookup_error(request: Request, exc: LookupError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(ValueError)
    async def value_error(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc)

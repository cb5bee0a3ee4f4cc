from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import add_default_middlewares, add_exception_handlers
from src.infrastructure.api.routes.admin_routes import router as admin_router
from src.infrastructure.api.routes.session_routes import router as session_router
from src.infrastructure.api.sessions import SessionRegistry
from src.infrastructure.config import get_settings
from src.infrastructure.database.document_store import DocumentStore
from src.infrastructure.database.supabase_client import get_supabase_client


def create_app(store: DocumentStore | None = None) -> FastAPI:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    settings = get_settings()
    sessions = SessionRegistry(store or DocumentStore(get_supabase_client()), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        sessions.close_all()

    app = FastAPI(
        title="Loyalty Sync",
        version="0.1.0",
        description="""
        ## Loyalty Sync API

        Client core of a loyalty-rewards program: each member has a private
        profile record and a public summary mirrored from it; admins see the
        roster of public summaries and adjust balances.

        ### Sessions
        `POST /session` signs in (pre-issued token or anonymous) and returns a
        `session_id`. Send it back in the `X-Session-Id` header.

        ### Error Responses
        - **400 Bad Request**: Invalid amounts or names
        - **401 Unauthorized**: Sign-in rejected, missing or unknown session
        - **403 Forbidden**: Admin rights required
        - **404 Not Found**: No profile loaded or no such profile
        - **422 Unprocessable Entity**: Validation error in request body
        - **503 Service Unavailable**: A store write failed; `retryable` tells whether to try again
        """,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.sessions = sessions
    app.state.settings = settings
    add_default_middlewares(app)
    add_exception_handlers(app)

    @app.get(
        "/",
        summary="API Root",
        response_model=RootResponse,
        description="Get basic information about the Loyalty Sync API",
        response_description="API information including status and version",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "loyalty-sync", "version": app.version}

    @app.get(
        "/health",
        summary="Health Check",
        response_model=HealthResponse,
        description="Check if the API service is running and healthy",
        response_description="Health status of the API service",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(session_router)
    app.include_router(admin_router)
    return app


app = create_app()

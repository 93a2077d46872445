from __future__ import annotations

from datetime import UTC, datetime

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import (
    add_default_middlewares,
    add_exception_handlers,
    configure_logging,
)
from src.infrastructure.api.routes.auth_routes import router as auth_router
from src.infrastructure.api.routes.meeting_routes import router as meeting_router
from src.infrastructure.api.routes.oauth_routes import router as oauth_router
from src.infrastructure.api.routes.user_routes import router as user_router

SERVICE_NAME = "LinkUp Backend API"


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title=SERVICE_NAME,
        version="1.0.0",
        description="""
        ## LinkUp Backend API

        FastAPI backend for the LinkUp video meeting platform, using Supabase
        for authentication and profile storage.

        ### Features
        - **Authentication**: Email/password registration and login, plus
          Google, GitHub and Facebook sign-in merged into a single account
        - **Profiles**: Each user reads, updates and deletes only their own profile
        - **Meetings**: Owner-managed meetings with participants and public visibility

        ### Authentication
        All `/api/users` and `/api/meetings` endpoints require a Bearer token
        in the Authorization header:
        ```
        Authorization: Bearer your-session-token
        ```

        ### Error Responses
        Errors share one shape: `{"success": false, "error": "<message>"}`
        - **400 Bad Request**: Validation failed or nothing to update
        - **401 Unauthorized**: Missing, empty or invalid token, or bad credentials
        - **403 Forbidden**: The resource belongs to someone else
        - **404 Not Found**: Requested resource does not exist
        - **429 Too Many Requests**: Login attempts exceeded, see `Retry-After`
        - **500 Internal Server Error**: Unexpected server error
        """,
        contact={
            "name": "LinkUp Team",
            "email": "support@linkup.dev",
        },
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    add_default_middlewares(app)
    add_exception_handlers(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the LinkUp API",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "linkup-backend", "version": app.version}

    @app.get(
        "/api/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Liveness check; always answers 200 while the process is up",
    )
    def health():
        """Check API health status."""
        return {
            "status": "OK",
            "timestamp": datetime.now(UTC),
            "service": SERVICE_NAME,
            "version": app.version,
        }

    app.include_router(auth_router)
    app.include_router(oauth_router)
    app.include_router(user_router)
    app.include_router(meeting_router)
    return app


app = create_app()

"""Application factory: REST routers, the live channel and error envelopes."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.core.dispatcher import RealtimeDispatcher, SessionFactory
from app.core.presence import PresenceRegistry
from app.exceptions import MessagingError, PersistenceError
from app.infra.logging_config import LoggingConfig
from app.routers import messages_router, realtime_router, system
from app.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "message": message}
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MessagingError)
    async def messaging_error_handler(request: Request, exc: MessagingError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _envelope(exc.status_code, exc.message)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("%s %s database error: %s", request.method, request.url.path, exc)
        error = PersistenceError()
        return _envelope(error.status_code, error.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _envelope(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return _envelope(exc.status_code, message)


def create_app(session_factory: Optional[SessionFactory] = None) -> FastAPI:
    """
    Build the API. One RealtimeDispatcher is created here and kept on
    `app.state.dispatcher`; `session_factory` overrides how the live channel
    opens database sessions.
    """
    settings = get_settings()
    LoggingConfig(settings.log_level)

    app = FastAPI(title="Listing Chat API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.dispatcher = RealtimeDispatcher(
        PresenceRegistry(), session_factory or db_session
    )

    register_exception_handlers(app)
    app.include_router(system.router)
    app.include_router(messages_router.router)
    app.include_router(realtime_router.router)
    add_pagination(app)
    return app


app = create_app()

# main.py
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import settings
from routers import comments, conversations
from schemas.api import APIResponse
from services.session import SessionRegistry
from utils.exceptions import (
    BackendRejectedError, ConversationError, InputValidationError, NotFoundError,
    PermissionDeniedError, TransportError,
)
from utils.logger import logger
from utils.rate_limiter import limiter


def _status_for(exc: ConversationError) -> int:
    if isinstance(exc, InputValidationError):
        return 422
    if isinstance(exc, PermissionDeniedError):
        return 403
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, TransportError):
        return 502
    if isinstance(exc, BackendRejectedError) and exc.status_code:
        return exc.status_code
    return 400


def create_app(transport: Optional[httpx.AsyncBaseTransport] = None,
               upload_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    app = FastAPI(
        title="Listing Conversations API",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None
    )

    app.state.limiter = limiter
    app.state.sessions = SessionRegistry(transport=transport, upload_transport=upload_transport)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    allowed_origins = []
    if settings.FRONTEND_URL:
        allowed_origins.append(settings.FRONTEND_URL)
    if settings.DEBUG:
        allowed_origins.extend(["http://localhost:3000", "http://127.0.0.1:3000"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            method=str(request.method),
            url=str(request.url),
            exc_info=settings.DEBUG
        )
        return JSONResponse(
            status_code=500,
            content=APIResponse.failure("Internal server error", "INTERNAL_ERROR")
        )

    @app.exception_handler(ConversationError)
    async def conversation_exception_handler(request: Request, exc: ConversationError):
        status_code = _status_for(exc)
        logger.info(
            "Действие отклонено",
            error_code=exc.error_code,
            status_code=status_code,
            method=str(request.method),
            url=str(request.url),
        )
        return JSONResponse(
            status_code=status_code,
            content=APIResponse.failure(exc.message, exc.error_code)
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=APIResponse.failure(exc.detail, f"HTTP_{exc.status_code}"),
            headers=exc.headers,
        )

    app.include_router(conversations.router)
    app.include_router(comments.router)

    @app.get("/")
    async def root():
        return {"message": "Listing Conversations API is running"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint для мониторинга."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()

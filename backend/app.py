"""
FastAPI application entry point for the question bank backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.config import get_settings, validate_settings
from backend.dependencies import close_backends, get_question_store
from backend.routes import router
from backend.schemas import HealthResponse
from shared.errors import NotFoundError, QuestionBankError

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.use_in_memory_backends:
        # Fail at startup rather than on the first request.
        validate_settings(settings)
    if settings.ensure_indexes_on_startup:
        get_question_store().ensure_indexes()
    logger.info(
        "Question bank API starting (environment: %s, secrets source: %s)",
        settings.environment,
        settings.secrets_source,
    )
    yield
    close_backends()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Question Bank Backend (FastAPI)", version="0.1.0", lifespan=lifespan
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(
            success=True,
            message="Question bank API is running",
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=settings.environment,
            secretsSource=settings.secrets_source,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return _error_response(404, "Route not found", path=request.url.path)
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        return _error_response(400, "; ".join(messages) or "Invalid request")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error_response(404, str(exc))

    @app.exception_handler(QuestionBankError)
    async def question_bank_error_handler(request: Request, exc: QuestionBankError):
        logger.error("Request to %s failed: %s", request.url.path, exc)
        return _error_response(500, str(exc) or "Internal Server Error")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return _error_response(500, str(exc) or "Internal Server Error")

    return app


app = create_app()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

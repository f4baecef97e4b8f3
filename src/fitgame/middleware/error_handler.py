"""Global error handlers: domain errors become 404/409/503, the rest 500."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fitgame.errors import ConcurrencyContention, IllegalTransition, NotFound

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(IllegalTransition)
    async def illegal_transition_handler(request: Request, exc: IllegalTransition) -> JSONResponse:
        """Rejected state change: nothing was written."""
        logger.info(
            "illegal_transition",
            path=request.url.path,
            operation=exc.operation,
            current=exc.current,
            reason=exc.reason,
        )
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "operation": exc.operation,
                "current": exc.current,
                "reason": exc.reason,
            },
        )

    @app.exception_handler(NotFound)
    async def not_found_handler(_request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConcurrencyContention)
    async def contention_handler(request: Request, exc: ConcurrencyContention) -> JSONResponse:
        logger.warning("concurrency_contention", path=request.url.path, attempts=exc.attempts)
        return JSONResponse(
            status_code=503,
            content={"detail": "Too much contention, retry the request"},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, including invariant violations."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

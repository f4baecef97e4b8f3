"""Middleware registration."""

from fastapi import FastAPI

from fitgame.config import Settings
from fitgame.middleware.error_handler import setup_error_handlers
from fitgame.middleware.logging import setup_logging
from fitgame.middleware.request_context import RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, register error handlers and add the request-context middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)

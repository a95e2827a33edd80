"""Middleware registration."""

from fastapi import FastAPI

from taskloot.config import Settings
from taskloot.middleware.error_handler import setup_error_handlers
from taskloot.middleware.logging import setup_logging
from taskloot.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and the request-id middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)

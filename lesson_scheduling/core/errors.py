"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; `register_error_handlers`
turns them into a single-line `{"detail": ...}` response.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(SchedulingError):
    status_code = 400


class PermissionDenied(SchedulingError):
    status_code = 403


class NotFound(SchedulingError):
    status_code = 404


class InvalidTransition(SchedulingError):
    status_code = 409


class StaleState(SchedulingError):
    """The record changed under us (concurrent transition or version mismatch)."""

    status_code = 409


class SlotConflict(SchedulingError):
    status_code = 409


class PersistenceFailure(SchedulingError):
    status_code = 503


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code)

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CoachboardError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(CoachboardError):
    """A referenced workout, exercise, athlete or team does not exist."""

    status_code = 404


class InvalidInput(CoachboardError):
    """Rejected before any persistence call."""

    status_code = 400


async def _coachboard_error_handler(request: Request, exc: CoachboardError) -> JSONResponse:
    logger.info("[coachboard] %s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CoachboardError, _coachboard_error_handler)

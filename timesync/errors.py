"""Error responses for the HTTP API.

Every failure leaves the API as an ``ErrorResponse`` body::

    {"error": "not_found", "detail": "Poll not found", "context": {"poll_id": "x1"}}

The scheduling core and the repository never raise these: they return
``None`` or an empty result, and the controllers turn that into one of the
poll-specific errors below.

Usage:
    from timesync.errors import PollNotFoundError

    poll = await repo.get_poll(poll_id)
    if poll is None:
        raise PollNotFoundError(poll_id)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class APIError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "An unexpected error occurred"

    def __init__(self, detail: str | None = None, error_code: str | None = None, **context: Any) -> None:
        self.detail = detail or type(self).detail
        self.error_code = error_code
        self.context = context or None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class NotFoundError(APIError):
    status_code = 404
    error = "not_found"
    detail = "Resource not found"


class BadRequestError(APIError):
    status_code = 400
    error = "bad_request"
    detail = "Invalid request"


class ConflictError(APIError):
    status_code = 409
    error = "conflict"
    detail = "Request conflicts with current state"


class ServiceUnavailableError(APIError):
    status_code = 503
    error = "service_unavailable"
    detail = "Service temporarily unavailable"


class PollNotFoundError(NotFoundError):
    def __init__(self, poll_id: str) -> None:
        super().__init__("Poll not found", "POLL_NOT_FOUND", poll_id=poll_id)


class ParticipantNotFoundError(NotFoundError):
    def __init__(self, participant_id: str) -> None:
        super().__init__("Participant not found", "PARTICIPANT_NOT_FOUND", participant_id=participant_id)


class PollFullError(ConflictError):
    def __init__(self, poll_id: str, max_participants: int) -> None:
        super().__init__("Poll is full", "POLL_FULL", poll_id=poll_id, max_participants=max_participants)


class InvalidSlotError(BadRequestError):
    """A submitted cell key is not part of the poll's grid."""

    def __init__(self, poll_id: str, slot: str) -> None:
        super().__init__(f"Invalid slot: {slot}", "INVALID_SLOT", poll_id=poll_id, slot=slot)


class InvalidTimezoneError(BadRequestError):
    def __init__(self, timezone: str) -> None:
        super().__init__(f"Unknown timezone: {timezone}", "INVALID_TIMEZONE", timezone=timezone)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.warning("API error: %s (status=%d, path=%s)", exc.detail, exc.status_code, request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Unmatched routes and methods get the same body shape as ``APIError``."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=_status_to_error_type(exc.status_code),
            detail=str(exc.detail),
        ).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in e.get("loc", ())], "msg": e.get("msg", "")}
        for e in exc.errors()
    ]
    logger.info("Rejected request body on %s: %d errors", request.url.path, len(errors))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="validation_error",
            detail=errors[0]["msg"] if errors else "Invalid request body",
            context={"errors": errors},
        ).model_dump(exclude_none=True),
    )


def _status_to_error_type(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "validation_error",
        500: "internal_error",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

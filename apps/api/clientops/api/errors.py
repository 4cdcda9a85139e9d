from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from clientops.context import get_correlation_id
from clientops.core.errors import (
    ActionNotApplicable,
    Conflict,
    InvalidTransition,
    LifecycleError,
    NotFound,
    PartialBatchFailure,
    Unavailable,
)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def status_for(exc: LifecycleError) -> int:
    # Subclasses are checked before their bases.
    if isinstance(exc, ActionNotApplicable):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, InvalidTransition):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, Conflict):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, PartialBatchFailure):
        return status.HTTP_207_MULTI_STATUS
    if isinstance(exc, Unavailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


def error_response(request: Request, *, status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(code=code, message=message, details=details, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=payload.__dict__)


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    detail = exc.to_detail()
    detail.pop("code", None)
    detail.pop("message", None)
    return error_response(
        request,
        status_code=status_for(exc),
        code=exc.code,
        message=str(exc),
        details=detail or None,
    )

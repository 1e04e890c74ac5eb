"""Exception → HTTP response mapping.

=====================================  ======  ==============================
Exception                              Status  ``reason``
=====================================  ======  ==============================
``InvalidRequestError`` / validation   400     ``null``
``NotAuthenticatedError``              401     ``null``
``ForbiddenError``                     403     ``null``
``RestrictedError``                    403     ``RESTRICTED``
``TransitionRejectedError``            409     the rejection reason
  (``NOT_PERMITTED``)                  403     ``NOT_PERMITTED``
``ListingNotFoundError``               404     ``null``
``ConcurrentModificationError``        409     ``CONFLICT``
=====================================  ======  ==============================

Every body has the shape ``{"error": <message>, "reason": <reason|null>}``.
Anything else is left to FastAPI's default 500 handling.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from aquamarket.core import events
from aquamarket.core.exceptions import (
    ConcurrentModificationError,
    ForbiddenError,
    InvalidRequestError,
    ListingError,
    ListingNotFoundError,
    NotAuthenticatedError,
    RejectionReason,
    TransitionRejectedError,
)

__all__ = ["register_exception_handlers", "status_for"]

logger = logging.getLogger(__name__)

CONFLICT_REASON = "CONFLICT"


def status_for(exc: ListingError) -> int:
    """HTTP status code for a caller-facing listing error."""
    if isinstance(exc, TransitionRejectedError):
        if exc.reason in (RejectionReason.RESTRICTED, RejectionReason.NOT_PERMITTED):
            return 403
        return 409
    if isinstance(exc, NotAuthenticatedError):
        return 401
    if isinstance(exc, ForbiddenError):
        return 403
    if isinstance(exc, ListingNotFoundError):
        return 404
    if isinstance(exc, InvalidRequestError):
        return 400
    return 400


def _body(message: str, reason: str | None) -> dict[str, str | None]:
    return {"error": message, "reason": reason}


def _log(request: Request, status: int, message: str, reason: str | None) -> None:
    logger.info(
        "%s %s -> %d %s%s",
        request.method,
        request.url.path,
        status,
        message,
        f" ({reason})" if reason else "",
        extra={"event": events.REQUEST_ERROR},
    )


async def _listing_error(request: Request, exc: ListingError) -> JSONResponse:
    status = status_for(exc)
    reason = exc.reason.value if isinstance(exc, TransitionRejectedError) else None
    _log(request, status, exc.message, reason)
    return JSONResponse(status_code=status, content=_body(exc.message, reason))


async def _conflict(request: Request, exc: ConcurrentModificationError) -> JSONResponse:
    message = "Listing was changed by someone else; reload and try again"
    _log(request, 409, message, CONFLICT_REASON)
    return JSONResponse(status_code=409, content=_body(message, CONFLICT_REASON))


async def _invalid_payload(request: Request, exc: RequestValidationError | ValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid payload") if errors else "Invalid payload"
    message = f"Invalid payload: {detail}"
    _log(request, 400, message, None)
    return JSONResponse(status_code=400, content=_body(message, None))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ListingError, _listing_error)
    app.add_exception_handler(ConcurrentModificationError, _conflict)
    app.add_exception_handler(RequestValidationError, _invalid_payload)
    app.add_exception_handler(ValidationError, _invalid_payload)

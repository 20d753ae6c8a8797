"""
Domain error to HTTP response mapping.

Conflict errors become 409, unknown registrations 404, and every other
rejected transition (including expiry) 400. The body always carries the
stable reason code next to the human-readable detail.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from clinic_onboarding.domain.exceptions import (
    ConflictError,
    NotFoundError,
    RegistrationError,
)

logger = logging.getLogger(__name__)


def status_code_for(exc: RegistrationError) -> int:
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.reason, status_code)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "reason": exc.reason},
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistrationError, registration_error_handler)

"""
Exception handlers for consent errors

Error Response Format:
{
    "error": {
        "status_code": 400,
        "message": "Consent value is not valid JSON",
        "type": "Bad Request",
        "details": {...},
        "path": "/consent"
    }
}

ConsentRequiredError is not an error for the visitor: it becomes a
redirect to the consent page.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from cookie_consent.exceptions import ConsentError, ConsentRequiredError

logger = logging.getLogger(__name__)


def get_error_type(status_code: int) -> str:
    error_types = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return error_types.get(status_code, "Error")


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> JSONResponse:
    error_response: dict[str, Any] = {
        "error": {
            "status_code": status_code,
            "message": message,
            "type": get_error_type(status_code),
        }
    }
    if details:
        error_response["error"]["details"] = details
    if path:
        error_response["error"]["path"] = path
    return JSONResponse(status_code=status_code, content=error_response)


async def consent_required_handler(request: Request, exc: ConsentRequiredError) -> RedirectResponse:
    logger.info("Consent required for %s, redirecting to %s", request.url.path, exc.redirect_to)
    return RedirectResponse(url=exc.redirect_to, status_code=status.HTTP_303_SEE_OTHER)


async def consent_exception_handler(request: Request, exc: ConsentError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Consent error on %s: %s", request.url.path, exc.message)
    else:
        logger.warning("Consent error on %s: %s", request.url.path, exc.message)
    return create_error_response(exc.status_code, exc.message, exc.details, request.url.path)


def register_exception_handlers(app: FastAPI) -> None:
    # Starlette resolves handlers through the exception MRO, most specific first
    app.add_exception_handler(ConsentRequiredError, consent_required_handler)
    app.add_exception_handler(ConsentError, consent_exception_handler)

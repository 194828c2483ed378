"""
Problem Details (RFC 7807) Error Responses

Every error returned by the API uses the same body shape:

    {"type": ..., "title": ..., "status": ..., "detail": ..., "code": ...}

plus optional extra members (e.g. ``requirements``, ``paymentOptions``).

Routers raise ``ProblemDetailException`` directly, or convert service-layer
errors with ``problem_from_service_error``. The handlers registered by
``register_problem_handlers`` also reshape FastAPI validation errors and
``HTTPException``s raised by auth and rate limiting.
"""

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_TYPE = "https://tools.ietf.org/html/rfc7807"
PROBLEM_MEDIA_TYPE = "application/problem+json"


def _default_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def problem_body(
    status_code: int,
    detail: str,
    code: str,
    title: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a problem payload dict."""
    body: dict[str, Any] = {
        "type": PROBLEM_TYPE,
        "title": title or _default_title(status_code),
        "status": status_code,
        "detail": detail,
        "code": code,
    }
    body.update(extra)
    return body


class ProblemDetailException(Exception):
    """An error that renders as an RFC 7807 problem response."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: str,
        title: str | None = None,
        headers: dict[str, str] | None = None,
        **extra: Any,
    ):
        self.status_code = status_code
        self.detail = detail
        self.code = code
        self.title = title or _default_title(status_code)
        self.headers = headers
        self.extra = extra
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        return problem_body(self.status_code, self.detail, self.code, self.title, **self.extra)


def problem_from_service_error(e: Any, title: str | None = None) -> ProblemDetailException:
    """
    Convert a service-layer error into a problem exception.

    Service errors carry ``message``, ``error_code``, ``status_code`` and an
    optional ``extra`` dict of additional problem members.
    """
    return ProblemDetailException(
        status_code=e.status_code,
        detail=e.message,
        code=e.error_code,
        title=title or getattr(e, "title", None),
        **getattr(e, "extra", {}),
    )


async def _problem_exception_handler(_request: Request, exc: ProblemDetailException):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=exc.headers,
    )


async def _validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = [
        {
            "loc": list(error.get("loc", ())),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=problem_body(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request data",
            "VALIDATION_ERROR",
            title="Validation Error",
            errors=errors,
        ),
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def _http_exception_handler(_request: Request, exc: HTTPException):
    # Auth, rate limiting and Redis availability raise HTTPException with
    # {"error": CODE, "message": ...} details; keep their code.
    detail = exc.detail
    extra: dict[str, Any] = {}
    if isinstance(detail, dict):
        code = str(detail.get("error", "HTTP_ERROR"))
        message = str(detail.get("message", _default_title(exc.status_code)))
        extra = {k: v for k, v in detail.items() if k not in ("error", "message")}
    else:
        code = "HTTP_ERROR"
        message = str(detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=problem_body(exc.status_code, message, code, **extra),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=getattr(exc, "headers", None),
    )


def register_problem_handlers(app: FastAPI) -> None:
    """Install the problem-details exception handlers on the app."""
    app.add_exception_handler(ProblemDetailException, _problem_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)

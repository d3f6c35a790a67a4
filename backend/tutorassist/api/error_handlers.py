"""Exception handlers that turn failures into the {"error": {...}} envelope.

Invariants:
    - TutorAssistError keeps its own status and to_response() body
    - Request validation failures are 400 VALIDATION_ERROR with per-field details
    - Anything else is 500 INTERNAL_ERROR and the message never reaches the client
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tutorassist.core.errors import ErrorSeverity, TutorAssistError

logger = logging.getLogger(__name__)


def _envelope(code: str, message: str, category: str, severity: ErrorSeverity, **fields) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category,
            "severity": severity.value,
            **fields,
        },
    }


def _field_errors(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        # Drop the leading "body"/"query" segment; clients know where they sent it
        loc = [str(part) for part in err["loc"]]
        if len(loc) > 1 and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        details.append({"field": ".".join(loc), "message": err["msg"], "type": err["type"]})
    return details


async def handle_tutorassist_error(request: Request, exc: TutorAssistError) -> JSONResponse:
    level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
    logger.log(
        level, f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _field_errors(exc)
    logger.warning(
        f"Rejected {request.method} {request.url.path}: {len(details)} invalid field(s)",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    first = details[0] if details else None
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR",
            f"{first['field']}: {first['message']}" if first else "Invalid request data",
            "validation", ErrorSeverity.ERROR,
            field=first["field"] if first else None,
            details=details,
        ),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        extra={"error_code": "INTERNAL_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred", "internal", ErrorSeverity.CRITICAL,
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TutorAssistError, handle_tutorassist_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

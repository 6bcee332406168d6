"""Request guard middleware and error envelope handlers."""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from deviceauth.api.contracts import ApiErrorResponse
from deviceauth.api.errors import ApiErrorCode, to_error_payload
from deviceauth.core.config import AppConfig
from deviceauth.core.logging import set_correlation_id

RESPONSE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Cache-Control": "no-store",
}


def _error_response(status_code: int, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(error_code=error_code, message=message).model_dump(),
    )


def _request_extra(request: Request, status_code: int) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
    }


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _invalid_fields(exc: RequestValidationError) -> list[str]:
    """Return dotted field names named by a request validation error."""
    fields: list[str] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        name = ".".join(loc)
        if name and name not in fields:
            fields.append(name)
    return fields


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach the request guard: body size cap, correlation id, response headers."""
    max_bytes = config.security.request_max_bytes

    @app.middleware("http")
    async def request_guard_middleware(request: Request, call_next):
        correlation_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        set_correlation_id(correlation_id)
        started = time.perf_counter()

        declared = _declared_length(request)
        if declared is not None and declared > max_bytes:
            response = _error_response(
                413,
                ApiErrorCode.REQUEST_TOO_LARGE,
                f"Request body exceeds {max_bytes} bytes",
            )
        else:
            response = await call_next(request)

        response.headers["X-Request-ID"] = correlation_id
        response.headers.update(RESPONSE_HEADERS)
        extra = _request_extra(request, response.status_code)
        extra["duration_ms"] = int((time.perf_counter() - started) * 1000)
        logger.info("request_completed", extra=extra)
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Map every failure onto the ``{error_code, message}`` envelope."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning("http_exception", extra=_request_extra(request, exc.status_code))
        return _error_response(exc.status_code, payload["error_code"], payload["message"])

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = _invalid_fields(exc)
        logger.warning("validation_exception", extra=_request_extra(request, 400))
        message = (
            f"Missing or invalid fields: {', '.join(fields)}"
            if fields
            else "Invalid request body"
        )
        return _error_response(400, ApiErrorCode.VALIDATION_ERROR, message)

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_request_extra(request, 500))
        return _error_response(500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error")

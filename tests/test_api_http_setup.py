from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response

from deviceauth.api.errors import ApiErrorCode, AuthenticationError
from deviceauth.api.http_setup import register_exception_handlers, register_http_middleware
from deviceauth.core.config import (
    AppConfig,
    AuditConfig,
    AuthConfig,
    ChallengeConfig,
    LoggingConfig,
    SecurityConfig,
    StoreConfig,
)

LOGGER = logging.getLogger(__name__)


def _config(max_bytes: int = 8) -> AppConfig:
    return AppConfig(
        environment="development",
        auth=AuthConfig(
            access_secret="access",
            refresh_secret="refresh",
            access_token_ttl_seconds=900,
            refresh_token_ttl_seconds=3600,
            issuer="test",
        ),
        challenge=ChallengeConfig(ttl_seconds=300, allow_raw_message_signatures=False),
        audit=AuditConfig(
            encryption_key="ab" * 32, retention_days=30, queue_max_size=10, admin_token=""
        ),
        store=StoreConfig(sqlite_path="runtime/test.db"),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(cors_allowed_origins=[], request_max_bytes=max_bytes),
    )


def _app() -> FastAPI:
    app = FastAPI()
    register_http_middleware(app, config=_config(), logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _request(path: str, method: str = "GET", headers: dict[str, str] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [(k.encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    return Request(scope)


def _guard(app: FastAPI):
    [middleware] = app.user_middleware
    return middleware.kwargs["dispatch"]


async def _ok(_request: Request) -> Response:
    return Response(content="ok", status_code=200)


def _body(response: Response) -> dict[str, str]:
    return json.loads(response.body)


def test_guard_stamps_request_id_and_no_store() -> None:
    guard = _guard(_app())

    response = asyncio.run(guard(_request("/auth/me", headers={"x-request-id": "req-123"}), _ok))

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_guard_generates_request_id_when_absent() -> None:
    guard = _guard(_app())

    response = asyncio.run(guard(_request("/auth/me"), _ok))

    assert len(response.headers["X-Request-ID"]) == 32


def test_guard_rejects_oversized_body_without_calling_handler() -> None:
    guard = _guard(_app())
    calls: list[str] = []

    async def handler(request: Request) -> Response:
        calls.append(request.url.path)
        return Response(status_code=200)

    response = asyncio.run(
        guard(_request("/auth/register-device", "POST", {"content-length": "20"}), handler)
    )

    assert response.status_code == 413
    assert _body(response)["error_code"] == "REQUEST_TOO_LARGE"
    assert response.headers["Cache-Control"] == "no-store"
    assert calls == []


def test_api_error_keeps_its_envelope() -> None:
    handler = _app().exception_handlers[HTTPException]

    response = asyncio.run(
        handler(
            _request("/auth/verify-device", "POST"),
            AuthenticationError("Invalid signature", ApiErrorCode.AUTH_INVALID_SIGNATURE),
        )
    )

    assert response.status_code == 401
    assert _body(response) == {
        "error_code": "AUTH_INVALID_SIGNATURE",
        "message": "Invalid signature",
    }


def test_plain_http_exception_gets_derived_code() -> None:
    handler = _app().exception_handlers[HTTPException]

    response = asyncio.run(handler(_request("/missing"), HTTPException(status_code=405)))

    assert response.status_code == 405
    assert _body(response)["error_code"] == "HTTP_405"


def test_unexpected_exception_hides_details() -> None:
    handler = _app().exception_handlers[Exception]

    response = asyncio.run(handler(_request("/boom"), RuntimeError("db path /secret")))

    assert response.status_code == 500
    assert _body(response) == {
        "error_code": "INTERNAL_SERVER_ERROR",
        "message": "Internal server error",
    }


def test_validation_error_is_400_and_names_fields() -> None:
    handler = _app().exception_handlers[RequestValidationError]
    error = RequestValidationError(
        [
            {"type": "missing", "loc": ("body", "publicKey"), "msg": "Field required", "input": {}},
            {"type": "missing", "loc": ("body", "deviceId"), "msg": "Field required", "input": {}},
        ]
    )

    response = asyncio.run(handler(_request("/auth/register-device", "POST"), error))

    assert response.status_code == 400
    assert _body(response) == {
        "error_code": "VALIDATION_ERROR",
        "message": "Missing or invalid fields: publicKey, deviceId",
    }


def test_validation_error_without_locations() -> None:
    handler = _app().exception_handlers[RequestValidationError]

    response = asyncio.run(handler(_request("/auth/refresh", "POST"), RequestValidationError([])))

    assert _body(response)["message"] == "Invalid request body"

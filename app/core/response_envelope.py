from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

UNWRAPPED_PATHS = frozenset({"/openapi.json", "/docs", "/redoc"})
_SKIPPED_HEADERS = frozenset({"content-length", "content-type"})


def _success_code(status_code: int) -> str:
    return {200: "ok", 201: "created", 202: "accepted"}.get(status_code, "ok")


def _success_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Success"


def build_success_envelope(data: Any, status_code: int = 200) -> dict[str, Any]:
    return {
        "code": _success_code(status_code),
        "message": _success_message(status_code),
        "data": data,
        "details": {},
    }


def _is_enveloped(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return {"code", "message", "data", "details"} <= payload.keys()


def _rebuild(original: Response, content: dict[str, Any], status_code: int) -> JSONResponse:
    rebuilt = JSONResponse(status_code=status_code, content=content)
    for key, value in original.headers.items():
        if key.lower() not in _SKIPPED_HEADERS:
            rebuilt.headers[key] = value
    return rebuilt


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    """Wrap successful JSON bodies as ``{code, message, data, details}``.

    Error responses already carry the envelope from the exception handlers.
    """

    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if request.url.path in UNWRAPPED_PATHS:
            return response
        if response.status_code < 200 or response.status_code >= 300:
            return response
        if response.status_code == 204:
            return _rebuild(response, build_success_envelope(None), 200)

        # Route responses arrive as streamed bodies once they pass through
        # BaseHTTPMiddleware, so only JSON content types are read back.
        if not response.headers.get("content-type", "").startswith("application/json"):
            return response

        body = b""
        async for chunk in response.body_iterator:
            body += chunk
        payload = json.loads(body) if body else None

        if _is_enveloped(payload):
            return _rebuild(response, payload, response.status_code)
        return _rebuild(response, build_success_envelope(payload, response.status_code), response.status_code)


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)

from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core import context

REQUEST_ID_HEADER = b"x-request-id"
TENANT_HEADERS = (b"x-org-id", b"x-tenant-id")


class RequestContextMiddleware:
    """Bind request/tenant ids for log correlation and echo the request id back."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(REQUEST_ID_HEADER, b"").decode() or str(uuid4())
        tenant_id = next(
            (headers[name].decode() for name in TENANT_HEADERS if headers.get(name)),
            None,
        )
        tokens = context.bind_request_context(request_id, tenant_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers_list = list(message.get("headers", []))
                headers_list.append((REQUEST_ID_HEADER, request_id.encode()))
                message["headers"] = headers_list
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            context.reset_request_context(tokens)

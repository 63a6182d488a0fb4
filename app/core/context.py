import contextvars
from dataclasses import dataclass

_tenant_id: contextvars.ContextVar[str] = contextvars.ContextVar("tenant_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


@dataclass(frozen=True)
class ContextTokens:
    tenant: contextvars.Token
    request: contextvars.Token


def bind_request_context(request_id: str, tenant_id: str | None = None) -> ContextTokens:
    """Bind ids for the current request; pass the result to ``reset_request_context``."""
    return ContextTokens(
        tenant=_tenant_id.set(tenant_id or "-"),
        request=_request_id.set(request_id),
    )


def reset_request_context(tokens: ContextTokens) -> None:
    _tenant_id.reset(tokens.tenant)
    _request_id.reset(tokens.request)


def get_tenant_id() -> str:
    return _tenant_id.get()


def get_request_id() -> str:
    return _request_id.get()

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class RequestContext:
    request_id: str | None = None
    tenant_id: str | None = None
    # Quem disparou a operação atual (vai para `stock_movements.created_by`)
    actor_id: str | None = None


_EMPTY = RequestContext()
_CURRENT: ContextVar[RequestContext] = ContextVar("order_engine_request_context", default=_EMPTY)


def current_context() -> RequestContext:
    return _CURRENT.get()


def set_request_context(
    *, request_id: str | None = None, tenant_id: str | None = None, actor_id: str | None = None
) -> None:
    changes = {
        key: str(value)
        for key, value in (("request_id", request_id), ("tenant_id", tenant_id), ("actor_id", actor_id))
        if value is not None
    }
    if changes:
        _CURRENT.set(replace(_CURRENT.get(), **changes))


def get_request_id() -> str | None:
    return _CURRENT.get().request_id


def get_tenant_id() -> str | None:
    return _CURRENT.get().tenant_id


def get_actor_id() -> str | None:
    return _CURRENT.get().actor_id


def clear_request_context() -> None:
    _CURRENT.set(_EMPTY)

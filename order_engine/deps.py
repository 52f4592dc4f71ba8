# order_engine/deps.py
from __future__ import annotations

import logging

from fastapi import Request

from order_engine.core.errors import ErrorKind, ServiceError
from order_engine.core.request_context import set_request_context

logger = logging.getLogger(__name__)

TENANT_ID_HEADER = "x-tenant-id"
ACTOR_ID_HEADER = "x-actor-id"


def _parse_tenant_id(raw: str | None) -> int | None:
    if raw is None:
        return None
    raw = raw.strip()
    if not raw.isdigit():
        return None
    return int(raw)


def get_request_tenant_id(request: Request) -> int:
    """Tenant das rotas administrativas: header X-Tenant-ID ou query `tenant_id`.

    A autenticação fica fora deste serviço; o gateway já entrega o tenant.
    """
    candidates = [
        request.headers.get(TENANT_ID_HEADER),
        request.query_params.get("tenant_id"),
    ]
    for candidate in candidates:
        tenant_id = _parse_tenant_id(candidate)
        if tenant_id is not None:
            set_request_context(tenant_id=str(tenant_id))
            return tenant_id

    logger.warning("Tenant id missing on %s %s", request.method, request.url.path)
    raise ServiceError("Tenant não identificado", ErrorKind.VALIDATION)


def get_request_actor(request: Request) -> str | None:
    actor = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    if not actor:
        return None
    set_request_context(actor_id=actor)
    return actor

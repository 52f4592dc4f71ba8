from __future__ import annotations

import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_engine.core.errors import ErrorKind, ServiceError, internal_error
from order_engine.models.tenant import Tenant
from order_engine.utils.slug import normalize_slug


logger = logging.getLogger(__name__)

TENANT_SLUG_HEADER = "x-tenant-slug"


def _require_active(tenant: Tenant | None) -> Tenant:
    if tenant is None:
        raise ServiceError("Restaurante não encontrado", ErrorKind.NOT_FOUND)
    if not tenant.is_active:
        raise ServiceError("Este restaurante está temporariamente indisponível", ErrorKind.VALIDATION)
    return tenant


def resolve_active_tenant_by_slug(db: Session, slug: str | None) -> Tenant:
    normalized = normalize_slug(slug or "")
    if not normalized:
        raise ServiceError("Restaurante não identificado", ErrorKind.VALIDATION)
    try:
        tenant = db.query(Tenant).filter(Tenant.slug == normalized).first()
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar o restaurante", exc) from exc
    return _require_active(tenant)


def get_active_tenant(db: Session, tenant_id: int) -> Tenant:
    try:
        tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar o restaurante", exc) from exc
    return _require_active(tenant)


def extract_tenant_slug(request: Request, body_slug: str | None = None) -> str | None:
    header_slug = request.headers.get(TENANT_SLUG_HEADER)
    if header_slug and header_slug.strip():
        return header_slug.strip()
    if body_slug and body_slug.strip():
        return body_slug.strip()
    return None

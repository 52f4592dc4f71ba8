from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from order_engine.core.database import get_db
from order_engine.deps import get_request_actor, get_request_tenant_id
from order_engine.schemas.orders import ConfirmOrderResponse, CreateOrderRequest, CreateOrderResponse
from order_engine.services.orders import confirm_order, submit_order
from order_engine.services.tenant_resolver import extract_tenant_slug

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=CreateOrderResponse, response_model_by_alias=True)
def create_order(
    payload: CreateOrderRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    tenant_slug = extract_tenant_slug(request, payload.tenant_slug)
    created = submit_order(db, payload, tenant_slug)
    return CreateOrderResponse(
        order_id=created.order_id,
        order_number=created.order_number,
        total=created.total,
    )


@router.post("/{order_id}/confirm", response_model=ConfirmOrderResponse, response_model_by_alias=True)
def confirm(
    order_id: int,
    tenant_id: int = Depends(get_request_tenant_id),
    actor: str | None = Depends(get_request_actor),
    db: Session = Depends(get_db),
):
    destocked = confirm_order(db, order_id=order_id, tenant_id=tenant_id, actor=actor)
    return ConfirmOrderResponse(order_id=order_id, status="preparing", destocked=destocked)

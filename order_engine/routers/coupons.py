from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from order_engine.core.database import get_db
from order_engine.deps import get_request_tenant_id
from order_engine.models.coupon import Coupon
from order_engine.schemas.coupons import CouponCreate, CouponRead, ValidateCouponPayload, ValidateCouponResponse
from order_engine.services.coupons import create_coupon, delete_coupon, list_coupons, validate_coupon

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


def _coupon_to_dict(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "tenant_id": coupon.tenant_id,
        "code": coupon.code,
        "discount_type": coupon.discount_type,
        "discount_value": coupon.discount_value,
        "min_order_amount": coupon.min_order_amount,
        "max_discount_amount": coupon.max_discount_amount,
        "valid_from": coupon.valid_from.isoformat() if coupon.valid_from else None,
        "valid_until": coupon.valid_until.isoformat() if coupon.valid_until else None,
        "max_uses": coupon.max_uses,
        "current_uses": int(coupon.current_uses or 0),
        "is_active": coupon.is_active,
    }


@router.post("/validate", response_model=ValidateCouponResponse, response_model_by_alias=True)
def validate(payload: ValidateCouponPayload, db: Session = Depends(get_db)):
    result = validate_coupon(db, payload.code, payload.tenant_id, payload.subtotal)
    return ValidateCouponResponse(
        valid=result.valid,
        discount_amount=result.discount_amount,
        coupon_id=result.coupon.id if result.coupon else None,
        error=result.error,
    )


@router.get("", response_model=List[CouponRead])
def list_tenant_coupons(
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    return [_coupon_to_dict(coupon) for coupon in list_coupons(db, tenant_id)]


@router.post("", response_model=CouponRead, status_code=201)
def create(
    payload: CouponCreate,
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    return _coupon_to_dict(create_coupon(db, tenant_id, payload))


@router.delete("/{coupon_id}", status_code=204)
def delete(
    coupon_id: int,
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    delete_coupon(db, coupon_id=coupon_id, tenant_id=tenant_id)

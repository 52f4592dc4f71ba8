from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ValidateCouponPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str = Field(..., min_length=1, max_length=50)
    tenant_id: int
    subtotal: Decimal = Field(Decimal("0"), ge=0)


class ValidateCouponResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    valid: bool
    discount_amount: Decimal
    coupon_id: Optional[int] = None
    error: Optional[str] = None


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=50)
    discount_type: Literal["percentage", "fixed"]
    discount_value: Decimal = Field(..., gt=0, le=999999)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)


class CouponRead(BaseModel):
    id: int
    tenant_id: int
    code: str
    discount_type: str
    discount_value: Decimal
    min_order_amount: Optional[Decimal]
    max_discount_amount: Optional[Decimal]
    valid_from: Optional[str]
    valid_until: Optional[str]
    max_uses: Optional[int]
    current_uses: int
    is_active: bool

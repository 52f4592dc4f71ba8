from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from order_engine.core.config import MAX_LINE_QUANTITY, MAX_ORDER_LINES


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SelectedVariant(_CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0)


class SelectedOption(_CamelModel):
    name: str = Field(..., min_length=1, max_length=200)


class OrderItemInput(_CamelModel):
    id: int
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1, le=MAX_LINE_QUANTITY)
    selected_variant: Optional[SelectedVariant] = None
    selected_option: Optional[SelectedOption] = None


class CreateOrderRequest(_CamelModel):
    tenant_slug: Optional[str] = None
    items: List[OrderItemInput] = Field(..., min_length=1, max_length=MAX_ORDER_LINES)
    table_number: Optional[str] = Field(None, max_length=10)
    customer_name: Optional[str] = Field(None, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20)
    coupon_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)


class CreateOrderResponse(_CamelModel):
    order_id: int
    order_number: str
    total: Decimal


class ConfirmOrderResponse(_CamelModel):
    order_id: int
    status: str
    destocked: int

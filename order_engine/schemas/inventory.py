from __future__ import annotations

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ManualMovementType = Literal["opening", "manual_add", "manual_remove", "adjustment"]


class IngredientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    unit: str = Field(..., min_length=1, max_length=20)
    current_stock: Decimal = Field(Decimal("0"), ge=0)
    min_stock_alert: Decimal = Field(Decimal("0"), ge=0)
    cost_per_unit: Decimal = Field(Decimal("0"), ge=0)
    category: Optional[str] = None


class IngredientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    min_stock_alert: Optional[Decimal] = Field(None, ge=0)
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = None
    is_active: Optional[bool] = None


class IngredientRead(BaseModel):
    id: int
    tenant_id: int
    name: str
    unit: str
    current_stock: Decimal
    min_stock_alert: Decimal
    cost_per_unit: Decimal
    category: Optional[str]
    is_active: bool


class AdjustStockInput(BaseModel):
    ingredient_id: int
    quantity: Decimal
    movement_type: ManualMovementType
    notes: Optional[str] = Field(None, max_length=500)


class OpeningStockInput(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(..., ge=0)


class StockStatusRead(BaseModel):
    id: int
    name: str
    unit: str
    current_stock: Decimal
    min_stock_alert: Decimal
    cost_per_unit: Decimal
    category: Optional[str]
    is_active: bool
    nb_items_using: int
    is_low: bool


class StockMovementRead(BaseModel):
    id: int
    ingredient_id: int
    ingredient_name: str
    unit: str
    movement_type: str
    quantity: Decimal
    reference_id: Optional[int]
    notes: Optional[str]
    created_by: Optional[str]
    created_at: Optional[str]


class RecipeLineInput(BaseModel):
    ingredient_id: int
    quantity_needed: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=500)


class RecipeLineRead(BaseModel):
    id: int
    menu_item_id: int
    ingredient_id: int
    ingredient_name: str
    unit: str
    quantity_needed: Decimal
    notes: Optional[str]


class RecipeReplace(BaseModel):
    lines: List[RecipeLineInput] = Field(default_factory=list)

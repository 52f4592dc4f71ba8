from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from order_engine.core.database import get_db
from order_engine.core.errors import ErrorKind, ServiceError
from order_engine.deps import get_request_actor, get_request_tenant_id
from order_engine.models.inventory import Ingredient, Recipe, StockMovement
from order_engine.schemas.inventory import (
    AdjustStockInput,
    IngredientCreate,
    IngredientRead,
    IngredientUpdate,
    OpeningStockInput,
    RecipeLineRead,
    RecipeReplace,
    StockMovementRead,
    StockStatusRead,
)
from order_engine.services import inventory as inventory_service
from order_engine.services.recipes import get_recipes_for_item, set_recipe

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


def _parse_datetime(value: str, is_end: bool) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed_date = date.fromisoformat(value)
        except ValueError as exc:
            raise ServiceError("Data inválida", ErrorKind.VALIDATION) from exc
        return datetime.combine(parsed_date, time.max if is_end else time.min)


def _ingredient_to_dict(item: Ingredient) -> dict:
    return {
        "id": item.id,
        "tenant_id": item.tenant_id,
        "name": item.name,
        "unit": item.unit,
        "current_stock": item.current_stock,
        "min_stock_alert": item.min_stock_alert,
        "cost_per_unit": item.cost_per_unit,
        "category": item.category,
        "is_active": item.is_active,
    }


def _movement_to_dict(movement: StockMovement) -> dict:
    ingredient = movement.ingredient
    return {
        "id": movement.id,
        "ingredient_id": movement.ingredient_id,
        "ingredient_name": ingredient.name if ingredient else "",
        "unit": ingredient.unit if ingredient else "",
        "movement_type": movement.movement_type,
        "quantity": movement.quantity,
        "reference_id": movement.reference_id,
        "notes": movement.notes,
        "created_by": movement.created_by,
        "created_at": movement.created_at.isoformat() if movement.created_at else None,
    }


def _recipe_to_dict(line: Recipe) -> dict:
    ingredient = line.ingredient
    return {
        "id": line.id,
        "menu_item_id": line.menu_item_id,
        "ingredient_id": line.ingredient_id,
        "ingredient_name": ingredient.name if ingredient else "",
        "unit": ingredient.unit if ingredient else "",
        "quantity_needed": line.quantity_needed,
        "notes": line.notes,
    }


@router.get("/ingredients", response_model=List[IngredientRead])
def list_ingredients(
    include_inactive: bool = Query(False),
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    items = inventory_service.list_ingredients(db, tenant_id, include_inactive=include_inactive)
    return [_ingredient_to_dict(item) for item in items]


@router.post("/ingredients", response_model=IngredientRead, status_code=201)
def create_ingredient(
    payload: IngredientCreate,
    tenant_id: int = Depends(get_request_tenant_id),
    actor: str | None = Depends(get_request_actor),
    db: Session = Depends(get_db),
):
    ingredient = inventory_service.create_ingredient(db, tenant_id, payload, actor=actor)
    return _ingredient_to_dict(ingredient)


@router.patch("/ingredients/{ingredient_id}", response_model=IngredientRead)
def update_ingredient(
    ingredient_id: int,
    payload: IngredientUpdate,
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    ingredient = inventory_service.update_ingredient(db, tenant_id, ingredient_id, payload)
    return _ingredient_to_dict(ingredient)


@router.post("/adjust", status_code=204)
def adjust_stock(
    payload: AdjustStockInput,
    tenant_id: int = Depends(get_request_tenant_id),
    actor: str | None = Depends(get_request_actor),
    db: Session = Depends(get_db),
):
    inventory_service.adjust_stock(db, tenant_id, payload, actor=actor)


@router.post("/opening", status_code=204)
def set_opening_stock(
    payload: OpeningStockInput,
    tenant_id: int = Depends(get_request_tenant_id),
    actor: str | None = Depends(get_request_actor),
    db: Session = Depends(get_db),
):
    inventory_service.set_opening_stock(db, tenant_id, payload.ingredient_id, payload.quantity, actor=actor)


@router.get("/status", response_model=List[StockStatusRead])
def stock_status(
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    return inventory_service.get_stock_status(db, tenant_id)


@router.get("/movements", response_model=List[StockMovementRead])
def list_movements(
    ingredient_id: Optional[int] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    start = _parse_datetime(start_date, is_end=False) if start_date else None
    end = _parse_datetime(end_date, is_end=True) if end_date else None
    movements = inventory_service.get_stock_movements(
        db,
        tenant_id,
        ingredient_id=ingredient_id,
        start=start,
        end=end,
    )
    return [_movement_to_dict(movement) for movement in movements]


@router.get("/recipes/{menu_item_id}", response_model=List[RecipeLineRead])
def get_recipe(
    menu_item_id: int,
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    return [_recipe_to_dict(line) for line in get_recipes_for_item(db, menu_item_id, tenant_id)]


@router.put("/recipes/{menu_item_id}", response_model=List[RecipeLineRead])
def replace_recipe(
    menu_item_id: int,
    payload: RecipeReplace,
    tenant_id: int = Depends(get_request_tenant_id),
    db: Session = Depends(get_db),
):
    lines = set_recipe(db, tenant_id, menu_item_id, payload.lines)
    return [_recipe_to_dict(line) for line in lines]

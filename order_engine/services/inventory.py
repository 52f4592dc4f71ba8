from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_engine.core.config import MAX_STOCK_MOVEMENTS
from order_engine.core.errors import ErrorKind, ServiceError, internal_error
from order_engine.core.request_context import get_actor_id
from order_engine.models.inventory import POSITIVE_MOVEMENT_TYPES, Ingredient, Recipe, StockMovement
from order_engine.services import stock_procedures


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MANUAL_MOVEMENT_TYPES = frozenset({"opening", "manual_add", "manual_remove", "adjustment"})


def signed_delta(movement_type: str, quantity: Any) -> Decimal:
    magnitude = abs(Decimal(str(quantity)))
    if movement_type in POSITIVE_MOVEMENT_TYPES:
        return magnitude
    return -magnitude


def adjust_stock(db: Session, tenant_id: int, data: Any, actor: str | None = None) -> StockMovement:
    movement_type = (data.movement_type or "").strip().lower()
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ServiceError("Tipo de movimento inválido", ErrorKind.VALIDATION)

    delta = signed_delta(movement_type, data.quantity)
    if delta == ZERO:
        raise ServiceError("Quantidade deve ser maior que zero", ErrorKind.VALIDATION)

    movement = stock_procedures.adjust_ingredient_stock(
        db,
        tenant_id=tenant_id,
        ingredient_id=data.ingredient_id,
        delta=delta,
        movement_type=movement_type,
        notes=data.notes or None,
        created_by=actor or get_actor_id(),
    )
    logger.info(
        "Stock adjusted ingredient_id=%s type=%s delta=%s",
        data.ingredient_id,
        movement_type,
        delta,
        extra={"ingredient_id": data.ingredient_id},
    )
    return movement


def set_opening_stock(
    db: Session,
    tenant_id: int,
    ingredient_id: int,
    quantity: Any,
    actor: str | None = None,
) -> StockMovement:
    quantity = Decimal(str(quantity))
    if quantity < ZERO:
        raise ServiceError("O estoque de abertura não pode ser negativo", ErrorKind.VALIDATION)
    return stock_procedures.set_opening_stock(
        db,
        tenant_id=tenant_id,
        ingredient_id=ingredient_id,
        quantity=quantity,
        created_by=actor or get_actor_id(),
    )


def destock_order(db: Session, order_id: int, tenant_id: int, actor: str | None = None) -> int:
    return stock_procedures.destock_order(
        db,
        order_id=order_id,
        tenant_id=tenant_id,
        created_by=actor or get_actor_id(),
    )


def get_stock_status(db: Session, tenant_id: int) -> list[dict]:
    """Projeção somente leitura; `is_low` quando o saldo está no limite mínimo ou abaixo."""
    usage = (
        db.query(Recipe.ingredient_id, func.count(func.distinct(Recipe.menu_item_id)).label("nb_items"))
        .filter(Recipe.tenant_id == tenant_id)
        .group_by(Recipe.ingredient_id)
        .subquery()
    )
    try:
        rows = (
            db.query(Ingredient, func.coalesce(usage.c.nb_items, 0))
            .outerjoin(usage, usage.c.ingredient_id == Ingredient.id)
            .filter(Ingredient.tenant_id == tenant_id, Ingredient.is_active.is_(True))
            .order_by(Ingredient.name.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar o status do estoque", exc) from exc

    status = []
    for ingredient, nb_items_using in rows:
        current_stock = Decimal(ingredient.current_stock or 0)
        min_stock_alert = Decimal(ingredient.min_stock_alert or 0)
        status.append(
            {
                "id": ingredient.id,
                "name": ingredient.name,
                "unit": ingredient.unit,
                "current_stock": current_stock,
                "min_stock_alert": min_stock_alert,
                "cost_per_unit": Decimal(ingredient.cost_per_unit or 0),
                "category": ingredient.category,
                "is_active": ingredient.is_active,
                "nb_items_using": int(nb_items_using or 0),
                "is_low": current_stock <= min_stock_alert,
            }
        )
    return status


def list_ingredients(db: Session, tenant_id: int, include_inactive: bool = False) -> list[Ingredient]:
    query = db.query(Ingredient).filter(Ingredient.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Ingredient.is_active.is_(True))
    try:
        return query.order_by(Ingredient.name.asc()).all()
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar os ingredientes", exc) from exc


def get_ingredient(db: Session, tenant_id: int, ingredient_id: int) -> Ingredient:
    ingredient = (
        db.query(Ingredient)
        .filter(Ingredient.id == ingredient_id, Ingredient.tenant_id == tenant_id)
        .first()
    )
    if not ingredient:
        raise ServiceError("Ingrediente não encontrado", ErrorKind.NOT_FOUND)
    return ingredient


def create_ingredient(db: Session, tenant_id: int, data: Any, actor: str | None = None) -> Ingredient:
    """Cria o ingrediente; o estoque inicial entra como movimento `opening` na mesma transação."""
    initial_stock = Decimal(str(data.current_stock or 0))
    if initial_stock < ZERO:
        raise ServiceError("O estoque inicial não pode ser negativo", ErrorKind.VALIDATION)

    ingredient = Ingredient(
        tenant_id=tenant_id,
        name=data.name.strip(),
        unit=data.unit.strip(),
        current_stock=initial_stock,
        min_stock_alert=data.min_stock_alert or ZERO,
        cost_per_unit=data.cost_per_unit or ZERO,
        category=data.category or None,
        is_active=True,
    )
    db.add(ingredient)
    try:
        db.flush()
        if initial_stock > ZERO:
            db.add(
                StockMovement(
                    tenant_id=tenant_id,
                    ingredient_id=ingredient.id,
                    movement_type="opening",
                    quantity=initial_stock,
                    notes="Estoque inicial",
                    created_by=actor or get_actor_id(),
                )
            )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error("Erro ao criar o ingrediente", exc) from exc
    db.refresh(ingredient)
    return ingredient


def update_ingredient(db: Session, tenant_id: int, ingredient_id: int, data: Any) -> Ingredient:
    """Atualiza cadastro. O saldo nunca é alterado por aqui."""
    ingredient = get_ingredient(db, tenant_id, ingredient_id)

    changes = data.model_dump(exclude_unset=True)
    changes.pop("current_stock", None)
    for key, value in changes.items():
        setattr(ingredient, key, value)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error("Erro ao atualizar o ingrediente", exc) from exc
    db.refresh(ingredient)
    return ingredient


def get_stock_movements(
    db: Session,
    tenant_id: int,
    ingredient_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = MAX_STOCK_MOVEMENTS,
) -> list[StockMovement]:
    query = db.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if ingredient_id is not None:
        query = query.filter(StockMovement.ingredient_id == ingredient_id)
    if start is not None:
        query = query.filter(StockMovement.created_at >= start)
    if end is not None:
        query = query.filter(StockMovement.created_at <= end)
    try:
        return (
            query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(min(limit, MAX_STOCK_MOVEMENTS))
            .all()
        )
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar o histórico de movimentos", exc) from exc


def find_ledger_drift(db: Session, tenant_id: int) -> list[dict]:
    """Ingredientes cujo saldo difere da soma dos movimentos (deve ser sempre vazio)."""
    totals = (
        db.query(
            StockMovement.ingredient_id,
            func.coalesce(func.sum(StockMovement.quantity), 0).label("ledger_total"),
        )
        .filter(StockMovement.tenant_id == tenant_id)
        .group_by(StockMovement.ingredient_id)
        .subquery()
    )
    rows = (
        db.query(Ingredient.id, Ingredient.current_stock, func.coalesce(totals.c.ledger_total, 0))
        .outerjoin(totals, totals.c.ingredient_id == Ingredient.id)
        .filter(Ingredient.tenant_id == tenant_id)
        .order_by(Ingredient.id.asc())
        .all()
    )
    drift = []
    for ingredient_id, current_stock, ledger_total in rows:
        # Numeric(12, 3): compara na escala da coluna
        stock = Decimal(str(current_stock or 0)).quantize(Decimal("0.001"))
        ledger = Decimal(str(ledger_total or 0)).quantize(Decimal("0.001"))
        if stock != ledger:
            drift.append({"ingredient_id": ingredient_id, "current_stock": stock, "ledger_total": ledger})
    if drift:
        logger.warning("Ledger drift detected tenant_id=%s ingredients=%s", tenant_id, len(drift))
    return drift

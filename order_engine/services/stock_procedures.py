"""Procedimentos atômicos de estoque.

Únicos caminhos de escrita de `ingredients.current_stock`. Cada função
roda em uma única transação: o contador e a linha em `stock_movements`
são confirmados juntos ou nenhum dos dois. O contador é sempre alterado com
aritmética no próprio SQL (`current_stock + :delta`) ou sob `FOR UPDATE`,
então ajustes concorrentes no mesmo ingrediente não perdem atualização.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_engine.core.errors import ErrorKind, ServiceError, internal_error
from order_engine.models.inventory import Ingredient, Recipe, StockMovement
from order_engine.models.order import Order
from order_engine.models.order_item import OrderItem


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _apply_delta(
    db: Session,
    *,
    tenant_id: int,
    ingredient_id: int,
    delta: Decimal,
    movement_type: str,
    notes: str | None,
    created_by: str | None,
    reference_id: int | None = None,
) -> StockMovement:
    updated = (
        db.query(Ingredient)
        .filter(Ingredient.id == ingredient_id, Ingredient.tenant_id == tenant_id)
        .update(
            {Ingredient.current_stock: Ingredient.current_stock + delta},
            synchronize_session=False,
        )
    )
    if not updated:
        raise ServiceError("Ingrediente não encontrado", ErrorKind.NOT_FOUND)

    movement = StockMovement(
        tenant_id=tenant_id,
        ingredient_id=ingredient_id,
        movement_type=movement_type,
        quantity=delta,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    db.add(movement)
    return movement


def _rollback_quietly(db: Session) -> None:
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback failed after stock procedure error")


def adjust_ingredient_stock(
    db: Session,
    tenant_id: int,
    ingredient_id: int,
    delta: Decimal,
    movement_type: str,
    notes: str | None = None,
    created_by: str | None = None,
) -> StockMovement:
    try:
        movement = _apply_delta(
            db,
            tenant_id=tenant_id,
            ingredient_id=ingredient_id,
            delta=delta,
            movement_type=movement_type,
            notes=notes,
            created_by=created_by,
        )
        db.commit()
    except ServiceError:
        _rollback_quietly(db)
        raise
    except SQLAlchemyError as exc:
        _rollback_quietly(db)
        raise internal_error("Erro ao ajustar o estoque", exc) from exc
    return movement


def set_opening_stock(
    db: Session,
    tenant_id: int,
    ingredient_id: int,
    quantity: Decimal,
    created_by: str | None = None,
) -> StockMovement:
    """Define o saldo de abertura registrando a diferença como movimento `opening`."""
    try:
        ingredient = (
            db.query(Ingredient)
            .filter(Ingredient.id == ingredient_id, Ingredient.tenant_id == tenant_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if ingredient is None:
            raise ServiceError("Ingrediente não encontrado", ErrorKind.NOT_FOUND)

        delta = Decimal(quantity) - Decimal(ingredient.current_stock or 0)
        ingredient.current_stock = Decimal(quantity)
        movement = StockMovement(
            tenant_id=tenant_id,
            ingredient_id=ingredient_id,
            movement_type="opening",
            quantity=delta,
            notes="Estoque de abertura",
            created_by=created_by,
        )
        db.add(movement)
        db.commit()
    except ServiceError:
        _rollback_quietly(db)
        raise
    except SQLAlchemyError as exc:
        _rollback_quietly(db)
        raise internal_error("Erro ao definir o estoque de abertura", exc) from exc
    return movement


def compute_order_consumption(db: Session, order_id: int, tenant_id: int) -> dict[int, Decimal]:
    """Soma `quantity_needed × quantidade da linha` por ingrediente."""
    rows = (
        db.query(Recipe.ingredient_id, Recipe.quantity_needed, OrderItem.quantity)
        .join(OrderItem, OrderItem.menu_item_id == Recipe.menu_item_id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.id == order_id,
            Order.tenant_id == tenant_id,
            Recipe.tenant_id == tenant_id,
        )
        .all()
    )
    consumption: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for ingredient_id, quantity_needed, line_quantity in rows:
        consumption[ingredient_id] += Decimal(quantity_needed) * int(line_quantity or 0)
    return {ingredient_id: total for ingredient_id, total in consumption.items() if total > ZERO}


def apply_order_destock(
    db: Session,
    order_id: int,
    tenant_id: int,
    created_by: str | None = None,
) -> int:
    """Registra as baixas do pedido na transação corrente, sem commit."""
    order_exists = (
        db.query(Order.id)
        .filter(Order.id == order_id, Order.tenant_id == tenant_id)
        .first()
    )
    if not order_exists:
        raise ServiceError("Pedido não encontrado", ErrorKind.NOT_FOUND)

    consumption = compute_order_consumption(db, order_id, tenant_id)
    # Ordem fixa por id evita deadlock entre baixas concorrentes
    for ingredient_id in sorted(consumption):
        _apply_delta(
            db,
            tenant_id=tenant_id,
            ingredient_id=ingredient_id,
            delta=-consumption[ingredient_id],
            movement_type="destock",
            notes=f"Pedido {order_id}",
            created_by=created_by,
            reference_id=order_id,
        )
    return len(consumption)


def destock_order(
    db: Session,
    order_id: int,
    tenant_id: int,
    created_by: str | None = None,
) -> int:
    """Baixa os ingredientes de um pedido gravado; retorna quantos foram baixados.

    Não é idempotente: quem chama garante uma única execução por pedido.
    """
    try:
        count = apply_order_destock(db, order_id, tenant_id, created_by=created_by)
        db.commit()
    except ServiceError:
        _rollback_quietly(db)
        raise
    except SQLAlchemyError as exc:
        _rollback_quietly(db)
        raise internal_error("Erro ao baixar o estoque do pedido", exc) from exc

    logger.info(
        "Order destocked order_id=%s ingredients=%s",
        order_id,
        count,
        extra={"order_id": order_id},
    )
    return count

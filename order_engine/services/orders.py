from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_engine.core.config import ORDER_NUMBER_PREFIX
from order_engine.core.errors import ErrorKind, ServiceError, internal_error
from order_engine.core.request_context import get_actor_id, set_request_context
from order_engine.models.order import Order
from order_engine.models.order_item import OrderItem
from order_engine.services import stock_procedures
from order_engine.services.coupons import increment_usage, validate_coupon
from order_engine.services.pricing import ValidatedLine, validate_order_items
from order_engine.services.tenant_resolver import resolve_active_tenant_by_slug


logger = logging.getLogger(__name__)

_BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_TIMESTAMP_WIDTH = 9
_RANDOM_SUFFIX_LENGTH = 4

ZERO = Decimal("0")


@dataclass
class OrderInput:
    tenant_id: int
    lines: list[ValidatedLine]
    total: Decimal
    subtotal: Decimal | None = None
    discount_amount: Decimal = ZERO
    coupon_id: int | None = None
    table_number: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class CreatedOrder:
    order_id: int
    order_number: str
    total: Decimal
    coupon_id: int | None = field(default=None, compare=False)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_order_number(now: float | None = None) -> str:
    """`CMD-<timestamp base36><sufixo aleatório>`; ordenável pelo horário de criação."""
    millis = int((time.time() if now is None else now) * 1000)
    timestamp = _to_base36(millis).rjust(_TIMESTAMP_WIDTH, "0")
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(_RANDOM_SUFFIX_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}-{timestamp}{suffix}"


def build_line_notes(line: ValidatedLine) -> str | None:
    if line.option_name:
        if line.variant_name:
            return f"{line.option_name} - {line.variant_name}"
        return line.option_name
    return line.variant_name or None


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _delete_order_quietly(db: Session, order_id: int) -> None:
    try:
        db.query(Order).filter(Order.id == order_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to roll back order header order_id=%s", order_id, extra={"order_id": order_id})
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed after compensating delete order_id=%s", order_id)
    else:
        logger.warning("Order header removed after item failure order_id=%s", order_id, extra={"order_id": order_id})


def create_order_with_items(db: Session, data: OrderInput) -> CreatedOrder:
    """Grava o cabeçalho e depois os itens em lote.

    Se os itens falharem, o cabeçalho já gravado é apagado antes de propagar
    o erro; um pedido pela metade nunca fica visível.
    """
    order_number = generate_order_number()
    order = Order(
        tenant_id=data.tenant_id,
        order_number=order_number,
        status="pending",
        subtotal=data.subtotal if data.subtotal is not None else data.total,
        discount_amount=data.discount_amount or ZERO,
        total=data.total,
        coupon_id=data.coupon_id,
        table_number=_clean(data.table_number),
        customer_name=_clean(data.customer_name),
        customer_phone=_clean(data.customer_phone),
        notes=_clean(data.notes),
    )

    db.add(order)
    try:
        db.flush()
        order_id = order.id
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error creating order tenant_id=%s", data.tenant_id, exc_info=True)
        raise internal_error("Erro ao criar o pedido", exc) from exc

    order_items = [
        OrderItem(
            order_id=order_id,
            menu_item_id=line.menu_item_id,
            item_name=line.name,
            quantity=line.quantity,
            price_at_order=line.unit_price,
            notes=build_line_notes(line),
        )
        for line in data.lines
    ]
    try:
        db.add_all(order_items)
        db.commit()
    except SQLAlchemyError as exc:
        logger.error("Error creating order items order_id=%s", order_id, exc_info=True, extra={"order_id": order_id})
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed after order items error order_id=%s", order_id)
        _delete_order_quietly(db, order_id)
        raise internal_error("Erro ao registrar os itens do pedido", exc) from exc

    logger.info(
        "Order created order_id=%s order_number=%s items=%s",
        order_id,
        order_number,
        len(order_items),
        extra={"order_id": order_id, "customer_phone": _clean(data.customer_phone)},
    )
    return CreatedOrder(order_id=order_id, order_number=order_number, total=data.total, coupon_id=data.coupon_id)


def submit_order(db: Session, request: Any, tenant_slug: str | None) -> CreatedOrder:
    """Fluxo completo de entrada: tenant, preços, cupom, gravação e uso do cupom."""
    tenant = resolve_active_tenant_by_slug(db, tenant_slug)
    set_request_context(tenant_id=str(tenant.id))

    validated = validate_order_items(db, tenant.id, request.items)

    discount_amount = ZERO
    coupon_id = None
    coupon_code = _clean(getattr(request, "coupon_code", None))
    if coupon_code:
        result = validate_coupon(db, coupon_code, tenant.id, validated.total)
        if not result.valid:
            raise ServiceError(result.error or "Código promocional inválido", ErrorKind.VALIDATION)
        discount_amount = result.discount_amount
        coupon_id = result.coupon.id

    created = create_order_with_items(
        db,
        OrderInput(
            tenant_id=tenant.id,
            lines=validated.lines,
            subtotal=validated.total,
            discount_amount=discount_amount,
            total=validated.total - discount_amount,
            coupon_id=coupon_id,
            table_number=getattr(request, "table_number", None),
            customer_name=getattr(request, "customer_name", None),
            customer_phone=getattr(request, "customer_phone", None),
            notes=getattr(request, "notes", None),
        ),
    )

    if coupon_id is not None:
        increment_usage(db, coupon_id)

    return created


def confirm_order(db: Session, order_id: int, tenant_id: int, actor: str | None = None) -> int:
    """Transição única `pending -> preparing` com baixa de estoque na mesma transação.

    O UPDATE condicional garante que só uma chamada vence; as demais recebem
    CONFLICT e não baixam o estoque de novo.
    """
    try:
        updated = (
            db.query(Order)
            .filter(Order.id == order_id, Order.tenant_id == tenant_id, Order.status == "pending")
            .update({Order.status: "preparing"}, synchronize_session=False)
        )
        if not updated:
            exists = db.query(Order.id).filter(Order.id == order_id, Order.tenant_id == tenant_id).first()
            db.rollback()
            if not exists:
                raise ServiceError("Pedido não encontrado", ErrorKind.NOT_FOUND)
            raise ServiceError("Pedido já confirmado ou encerrado", ErrorKind.CONFLICT)

        destocked = stock_procedures.apply_order_destock(
            db,
            order_id=order_id,
            tenant_id=tenant_id,
            created_by=actor or get_actor_id(),
        )
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error("Erro ao confirmar o pedido", exc) from exc

    logger.info("Order confirmed order_id=%s destocked=%s", order_id, destocked, extra={"order_id": order_id})
    return destocked

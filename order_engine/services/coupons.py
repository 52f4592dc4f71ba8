from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from order_engine.core.errors import ErrorKind, ServiceError, internal_error
from order_engine.models.coupon import COUPON_TYPES, Coupon


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

INVALID_CODE_MESSAGE = "Código promocional inválido"
NOT_YET_VALID_MESSAGE = "Este código ainda não é válido"
EXPIRED_MESSAGE = "Este código expirou"
USAGE_LIMIT_MESSAGE = "Este código atingiu o limite de utilizações"


@dataclass(frozen=True)
class CouponValidationResult:
    valid: bool
    discount_amount: Decimal = ZERO
    coupon: Coupon | None = None
    error: str | None = None


def normalize_coupon_code(code: str | None) -> str:
    return (code or "").strip().upper()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite devolve datetimes sem fuso mesmo com timezone=True
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def _invalid(message: str) -> CouponValidationResult:
    return CouponValidationResult(valid=False, discount_amount=ZERO, error=message)


def compute_discount(coupon: Coupon, order_subtotal: Decimal) -> Decimal:
    discount_value = _to_decimal(coupon.discount_value)
    if (coupon.discount_type or "").strip().lower() == "fixed":
        discount = discount_value
    else:
        discount = order_subtotal * discount_value / Decimal("100")
        max_discount_amount = _to_decimal(coupon.max_discount_amount)
        # Teto zero ou ausente significa sem teto
        if max_discount_amount > ZERO:
            discount = min(discount, max_discount_amount)

    discount = min(discount, order_subtotal)
    discount = max(discount, ZERO)
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_coupon(
    db: Session,
    code: str,
    tenant_id: int,
    order_subtotal: Any,
    now: datetime | None = None,
) -> CouponValidationResult:
    """Valida o cupom e calcula o desconto; cupom inválido não é exceção."""
    normalized_code = normalize_coupon_code(code)
    if not normalized_code:
        return _invalid(INVALID_CODE_MESSAGE)

    subtotal = _to_decimal(order_subtotal)

    try:
        coupon = (
            db.query(Coupon)
            .filter(
                Coupon.tenant_id == tenant_id,
                Coupon.code == normalized_code,
                Coupon.is_active.is_(True),
            )
            .first()
        )
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao validar o cupom", exc) from exc

    if not coupon:
        return _invalid(INVALID_CODE_MESSAGE)

    now = now or utcnow()
    if coupon.valid_from and _as_aware(coupon.valid_from) > now:
        return _invalid(NOT_YET_VALID_MESSAGE)
    if coupon.valid_until and _as_aware(coupon.valid_until) < now:
        return _invalid(EXPIRED_MESSAGE)

    if coupon.max_uses is not None and int(coupon.current_uses or 0) >= int(coupon.max_uses):
        return _invalid(USAGE_LIMIT_MESSAGE)

    if coupon.min_order_amount is not None:
        min_order_amount = _to_decimal(coupon.min_order_amount)
        if subtotal < min_order_amount:
            return _invalid(f"Pedido mínimo de {min_order_amount:.2f} necessário")

    return CouponValidationResult(
        valid=True,
        discount_amount=compute_discount(coupon, subtotal),
        coupon=coupon,
    )


def increment_usage(db: Session, coupon_id: int) -> bool:
    """Incrementa o uso depois que o pedido já foi gravado.

    Falhas são registradas e engolidas: nunca derrubam o pedido.
    """
    try:
        db.query(Coupon).filter(Coupon.id == coupon_id).update(
            {Coupon.current_uses: Coupon.current_uses + 1},
            synchronize_session=False,
        )
        db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to increment coupon usage coupon_id=%s", coupon_id)
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after coupon usage failure also failed coupon_id=%s", coupon_id)
        return False
    return True


def create_coupon(db: Session, tenant_id: int, data: Any) -> Coupon:
    code = normalize_coupon_code(data.code)
    discount_type = (data.discount_type or "").strip().lower()
    if len(code) < 2:
        raise ServiceError("O código deve ter pelo menos 2 caracteres", ErrorKind.VALIDATION)
    if discount_type not in COUPON_TYPES:
        raise ServiceError("Tipo de desconto inválido", ErrorKind.VALIDATION)
    discount_value = _to_decimal(data.discount_value)
    if discount_value <= ZERO:
        raise ServiceError("O valor do desconto deve ser positivo", ErrorKind.VALIDATION)
    if discount_type == "percentage" and discount_value > Decimal("100"):
        raise ServiceError("Percentual de desconto acima de 100", ErrorKind.VALIDATION)
    if data.valid_from and data.valid_until and _as_aware(data.valid_until) < _as_aware(data.valid_from):
        raise ServiceError("Período de validade inválido", ErrorKind.VALIDATION)

    coupon = Coupon(
        tenant_id=tenant_id,
        code=code,
        discount_type=discount_type,
        discount_value=discount_value,
        min_order_amount=data.min_order_amount or None,
        max_discount_amount=data.max_discount_amount or None,
        valid_from=data.valid_from or utcnow(),
        valid_until=data.valid_until,
        max_uses=data.max_uses,
        current_uses=0,
        is_active=True,
    )
    db.add(coupon)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ServiceError("Este código promocional já existe", ErrorKind.CONFLICT) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error("Erro ao criar o cupom", exc) from exc
    db.refresh(coupon)
    logger.info("Coupon created tenant_id=%s coupon_id=%s", tenant_id, coupon.id)
    return coupon


def list_coupons(db: Session, tenant_id: int) -> list[Coupon]:
    try:
        return (
            db.query(Coupon)
            .filter(Coupon.tenant_id == tenant_id)
            .order_by(Coupon.created_at.desc(), Coupon.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise internal_error("Erro ao carregar os cupons", exc) from exc


def delete_coupon(db: Session, coupon_id: int, tenant_id: int) -> None:
    try:
        deleted = (
            db.query(Coupon)
            .filter(Coupon.id == coupon_id, Coupon.tenant_id == tenant_id)
            .delete(synchronize_session=False)
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ServiceError("Cupom já utilizado em pedidos; desative-o", ErrorKind.CONFLICT) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise internal_error("Erro ao excluir o cupom", exc) from exc
    if not deleted:
        raise ServiceError("Cupom não encontrado", ErrorKind.NOT_FOUND)

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy.orm import Session

from order_engine.core.config import PRICE_TOLERANCE
from order_engine.core.errors import ErrorKind, ServiceError
from order_engine.services.catalog import get_menu_items_by_ids
from order_engine.services.tenant_resolver import get_active_tenant


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class ValidatedLine:
    menu_item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    option_name: str | None = None
    variant_name: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ValidatedOrder:
    tenant_id: int
    total: Decimal
    lines: list[ValidatedLine] = field(default_factory=list)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _selected_name(selected: Any) -> str | None:
    if selected is None:
        return None
    name = selected.get("name") if isinstance(selected, dict) else getattr(selected, "name", None)
    name = str(name or "").strip()
    return name or None


def _selected_price(selected: Any) -> Decimal | None:
    if selected is None:
        return None
    price = selected.get("price") if isinstance(selected, dict) else getattr(selected, "price", None)
    if price is None:
        return None
    return _to_decimal(price)


def expected_unit_price(catalog_price: Any, selected_variant: Any = None) -> Decimal:
    variant_price = _selected_price(selected_variant)
    # Variante sem preço (ou com preço zero) cai no preço base do catálogo
    if variant_price is not None and variant_price > 0:
        return variant_price
    return _to_decimal(catalog_price)


def is_within_tolerance(claimed: Decimal, expected: Decimal, tolerance: Decimal = PRICE_TOLERANCE) -> bool:
    """A tolerância absorve arredondamentos do cliente, não concede desconto."""
    return abs(claimed - expected) <= expected * tolerance


def validate_order_items(db: Session, tenant_id: int, items: Sequence[Any]) -> ValidatedOrder:
    """Recalcula o total do pedido a partir do catálogo.

    - o tenant precisa existir (NOT_FOUND) e estar ativo (VALIDATION);
    - cada item precisa existir, estar disponível e ter preço dentro da
      tolerância em relação ao preço esperado (variante ou preço base);
    - todas as violações são coletadas e levantadas de uma vez;
    - o total enviado pelo cliente nunca é lido.

    Não grava nada.
    """
    get_active_tenant(db, tenant_id)

    if not items:
        raise ServiceError("O carrinho está vazio", ErrorKind.VALIDATION)

    menu_items = get_menu_items_by_ids(db, tenant_id, [item.id for item in items])

    violations: list[str] = []
    lines: list[ValidatedLine] = []
    total = ZERO

    for item in items:
        menu_item = menu_items.get(int(item.id))
        if menu_item is None:
            violations.append(f'Item "{item.name}" não encontrado')
            continue

        if menu_item.is_available is False:
            violations.append(f'"{menu_item.name}" não está mais disponível')
            continue

        quantity = int(item.quantity or 0)
        if quantity < 1:
            violations.append(f'Quantidade inválida para "{menu_item.name}"')
            continue

        claimed = _to_decimal(item.price)
        expected = expected_unit_price(menu_item.price, item.selected_variant)
        if not is_within_tolerance(claimed, expected):
            violations.append(f'O preço de "{menu_item.name}" mudou')
            continue

        line = ValidatedLine(
            menu_item_id=menu_item.id,
            name=menu_item.name,
            quantity=quantity,
            unit_price=claimed,
            option_name=_selected_name(item.selected_option),
            variant_name=_selected_name(item.selected_variant),
        )
        lines.append(line)
        total += line.line_total

    if violations:
        logger.info(
            "Order validation rejected tenant_id=%s violations=%s",
            tenant_id,
            len(violations),
        )
        raise ServiceError("Alguns itens não são mais válidos", ErrorKind.VALIDATION, details=violations)

    if total <= ZERO:
        raise ServiceError("O total do pedido deve ser maior que 0", ErrorKind.VALIDATION)

    return ValidatedOrder(tenant_id=tenant_id, total=total, lines=lines)

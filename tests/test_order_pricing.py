from decimal import Decimal

import pytest
from sqlalchemy import event

from order_engine.core.errors import ErrorKind, ServiceError
from order_engine.models.menu_item import MenuItem
from order_engine.schemas.orders import OrderItemInput
from order_engine.services.pricing import expected_unit_price, is_within_tolerance, validate_order_items
from tests.fixtures_data import OTHER_TENANT_ID, TENANT_ID, build_session


def _item(**overrides):
    data = {"id": 1, "name": "X-Burger", "price": Decimal("10.00"), "quantity": 1}
    data.update(overrides)
    return OrderItemInput(**data)


def test_total_is_recomputed_from_catalog_prices():
    db = build_session()

    result = validate_order_items(
        db,
        TENANT_ID,
        [_item(quantity=2), _item(id=2, name="Batata Frita", price=Decimal("12.50"))],
    )

    assert result.total == Decimal("32.50")
    assert [line.menu_item_id for line in result.lines] == [1, 2]
    assert result.lines[0].line_total == Decimal("20.00")


def test_price_drift_above_one_percent_is_rejected():
    db = build_session()

    with pytest.raises(ServiceError) as exc_info:
        validate_order_items(db, TENANT_ID, [_item(price=Decimal("12.00"))])

    assert exc_info.value.kind == ErrorKind.VALIDATION
    assert exc_info.value.details == ['O preço de "X-Burger" mudou']


def test_price_within_one_percent_is_accepted():
    db = build_session()

    result = validate_order_items(db, TENANT_ID, [_item(price=Decimal("10.09"))])

    assert result.total == Decimal("10.09")


def test_all_violations_are_reported_together():
    db = build_session()

    with pytest.raises(ServiceError) as exc_info:
        validate_order_items(
            db,
            TENANT_ID,
            [
                _item(id=999, name="Fantasma"),
                _item(id=3, name="Milkshake", price=Decimal("15.00")),
                _item(price=Decimal("5.00")),
            ],
        )

    assert exc_info.value.message == "Alguns itens não são mais válidos"
    assert exc_info.value.details == [
        'Item "Fantasma" não encontrado',
        '"Milkshake" não está mais disponível',
        'O preço de "X-Burger" mudou',
    ]


def test_items_from_another_tenant_are_not_found():
    db = build_session()

    with pytest.raises(ServiceError) as exc_info:
        validate_order_items(db, TENANT_ID, [_item(id=50, name="Pizza", price=Decimal("40.00"))])

    assert exc_info.value.details == ['Item "Pizza" não encontrado']


def test_zero_total_is_rejected():
    db = build_session()
    db.add(MenuItem(id=4, tenant_id=TENANT_ID, name="Água da casa", price=Decimal("0.00"), is_available=True))
    db.commit()

    with pytest.raises(ServiceError) as exc_info:
        validate_order_items(db, TENANT_ID, [_item(id=4, name="Água da casa", price=Decimal("0"))])

    assert exc_info.value.message == "O total do pedido deve ser maior que 0"


def test_zero_priced_variant_falls_back_to_catalog_price():
    db = build_session()

    with pytest.raises(ServiceError) as exc_info:
        validate_order_items(
            db,
            TENANT_ID,
            [
                _item(price=Decimal("0"), quantity=5, selected_variant={"name": "Grátis", "price": Decimal("0")}),
                _item(id=2, name="Batata Frita", price=Decimal("12.50")),
            ],
        )

    assert exc_info.value.details == ['O preço de "X-Burger" mudou']

    result = validate_order_items(
        db,
        TENANT_ID,
        [_item(price=Decimal("10.00"), selected_variant={"name": "Simples", "price": Decimal("0")})],
    )
    assert result.total == Decimal("10.00")
    assert result.lines[0].variant_name == "Simples"


def test_unknown_tenant_is_not_found_and_inactive_is_validation():
    db = build_session()

    with pytest.raises(ServiceError) as missing:
        validate_order_items(db, 404, [_item()])
    with pytest.raises(ServiceError) as inactive:
        validate_order_items(db, 3, [_item()])

    assert missing.value.kind == ErrorKind.NOT_FOUND
    assert inactive.value.kind == ErrorKind.VALIDATION


def test_empty_cart_is_rejected():
    db = build_session()

    with pytest.raises(ServiceError) as exc_info:
        validate_order_items(db, OTHER_TENANT_ID, [])

    assert exc_info.value.message == "O carrinho está vazio"


def test_variant_price_replaces_catalog_price():
    db = build_session()

    result = validate_order_items(
        db,
        TENANT_ID,
        [_item(price=Decimal("14.00"), selected_variant={"name": "Duplo", "price": Decimal("14.00")})],
    )

    assert result.total == Decimal("14.00")
    assert result.lines[0].variant_name == "Duplo"


def test_catalog_is_read_in_a_single_query():
    db = build_session()
    statements = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        if "FROM menu_items" in statement:
            statements.append(statement)

    event.listen(db.get_bind(), "before_cursor_execute", _record)
    try:
        validate_order_items(
            db,
            TENANT_ID,
            [_item(), _item(id=2, name="Batata Frita", price=Decimal("12.50")), _item(quantity=3)],
        )
    finally:
        event.remove(db.get_bind(), "before_cursor_execute", _record)

    assert len(statements) == 1


def test_tolerance_helpers():
    assert expected_unit_price(Decimal("10.00")) == Decimal("10.00")
    assert expected_unit_price(Decimal("10.00"), {"name": "G", "price": "13.50"}) == Decimal("13.50")
    assert expected_unit_price(Decimal("10.00"), {"name": "G", "price": "0"}) == Decimal("10.00")
    assert is_within_tolerance(Decimal("10.10"), Decimal("10.00"))
    assert not is_within_tolerance(Decimal("10.11"), Decimal("10.00"))

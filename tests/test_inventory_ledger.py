from decimal import Decimal
from types import SimpleNamespace

import pytest

from order_engine.core.errors import ErrorKind, ServiceError
from order_engine.models.inventory import Ingredient, StockMovement
from order_engine.schemas.inventory import AdjustStockInput, IngredientCreate, IngredientUpdate
from order_engine.schemas.orders import CreateOrderRequest
from order_engine.services import inventory as inventory_service
from order_engine.services import stock_procedures
from order_engine.services.orders import confirm_order, submit_order
from tests.fixtures_data import HAPPY_PATH_ORDER_PAYLOAD, OTHER_TENANT_ID, TENANT_ID, build_session


def _stock(db, ingredient_id):
    db.expire_all()
    return db.get(Ingredient, ingredient_id).current_stock


def _movements(db, ingredient_id):
    return (
        db.query(StockMovement)
        .filter(StockMovement.ingredient_id == ingredient_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def test_signed_delta_follows_movement_type():
    assert inventory_service.signed_delta("manual_add", "2") == Decimal("2")
    assert inventory_service.signed_delta("opening", "-2") == Decimal("2")
    assert inventory_service.signed_delta("manual_remove", "3") == Decimal("-3")
    assert inventory_service.signed_delta("adjustment", "1.5") == Decimal("-1.5")


def test_manual_remove_passes_negative_delta_to_procedure(monkeypatch):
    captured = {}

    def _fake_adjust(db, **kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id=1)

    monkeypatch.setattr(stock_procedures, "adjust_ingredient_stock", _fake_adjust)

    inventory_service.adjust_stock(
        db=None,
        tenant_id=TENANT_ID,
        data=AdjustStockInput(ingredient_id=10, quantity=Decimal("3"), movement_type="manual_remove"),
        actor="cozinha",
    )

    assert captured["delta"] == Decimal("-3")
    assert captured["movement_type"] == "manual_remove"
    assert captured["created_by"] == "cozinha"


def test_adjustments_keep_stock_equal_to_ledger():
    db = build_session(with_recipes=True)

    inventory_service.adjust_stock(
        db, TENANT_ID, AdjustStockInput(ingredient_id=10, quantity=Decimal("10"), movement_type="manual_add")
    )
    inventory_service.adjust_stock(
        db, TENANT_ID, AdjustStockInput(ingredient_id=10, quantity=Decimal("3"), movement_type="manual_remove")
    )

    assert _stock(db, 10) == Decimal("7")
    assert [movement.quantity for movement in _movements(db, 10)] == [Decimal("10"), Decimal("-3")]
    assert inventory_service.find_ledger_drift(db, TENANT_ID) == []


def test_opening_stock_records_difference_as_movement():
    db = build_session(with_recipes=True)

    inventory_service.set_opening_stock(db, TENANT_ID, 11, Decimal("1000"))
    inventory_service.set_opening_stock(db, TENANT_ID, 11, Decimal("800"))

    movements = _movements(db, 11)
    assert _stock(db, 11) == Decimal("800")
    assert [movement.movement_type for movement in movements] == ["opening", "opening"]
    assert [movement.quantity for movement in movements] == [Decimal("1000"), Decimal("-200")]
    assert inventory_service.find_ledger_drift(db, TENANT_ID) == []


def test_invalid_adjustments_are_rejected():
    db = build_session(with_recipes=True)

    with pytest.raises(ServiceError) as destock_type:
        inventory_service.adjust_stock(
            db, TENANT_ID, SimpleNamespace(ingredient_id=10, quantity=Decimal("1"), movement_type="destock", notes=None)
        )
    with pytest.raises(ServiceError) as zero:
        inventory_service.adjust_stock(
            db, TENANT_ID, AdjustStockInput(ingredient_id=10, quantity=Decimal("0"), movement_type="manual_add")
        )
    with pytest.raises(ServiceError) as missing:
        inventory_service.adjust_stock(
            db, TENANT_ID, AdjustStockInput(ingredient_id=999, quantity=Decimal("1"), movement_type="manual_add")
        )
    with pytest.raises(ServiceError) as other_tenant:
        inventory_service.adjust_stock(
            db, OTHER_TENANT_ID, AdjustStockInput(ingredient_id=10, quantity=Decimal("1"), movement_type="manual_add")
        )
    with pytest.raises(ServiceError) as negative_opening:
        inventory_service.set_opening_stock(db, TENANT_ID, 10, Decimal("-1"))

    assert destock_type.value.kind == ErrorKind.VALIDATION
    assert zero.value.kind == ErrorKind.VALIDATION
    assert missing.value.kind == ErrorKind.NOT_FOUND
    assert other_tenant.value.kind == ErrorKind.NOT_FOUND
    assert negative_opening.value.kind == ErrorKind.VALIDATION
    assert _movements(db, 10) == []


def test_failed_movement_insert_leaves_stock_unchanged():
    db = build_session(with_recipes=True)
    inventory_service.set_opening_stock(db, TENANT_ID, 10, Decimal("4"))

    with pytest.raises(ServiceError) as exc_info:
        stock_procedures.adjust_ingredient_stock(db, TENANT_ID, 10, Decimal("5"), "bogus")

    assert exc_info.value.kind == ErrorKind.INTERNAL
    assert _stock(db, 10) == Decimal("4")
    assert len(_movements(db, 10)) == 1


def test_confirm_order_destocks_shared_ingredients_once():
    db = build_session(with_recipes=True)
    for ingredient_id, quantity in ((10, "10"), (11, "1000"), (12, "1000")):
        inventory_service.set_opening_stock(db, TENANT_ID, ingredient_id, Decimal(quantity))
    created = submit_order(db, CreateOrderRequest(**HAPPY_PATH_ORDER_PAYLOAD), "burger-house")

    destocked = confirm_order(db, created.order_id, TENANT_ID, actor="caixa")

    assert destocked == 3
    assert _stock(db, 10) == Decimal("8")
    # 2 x 150 do burger + 1 x 20 da batata
    assert _stock(db, 11) == Decimal("680")
    assert _stock(db, 12) == Decimal("800")
    destock_rows = db.query(StockMovement).filter(StockMovement.movement_type == "destock").all()
    assert {row.reference_id for row in destock_rows} == {created.order_id}
    assert {row.created_by for row in destock_rows} == {"caixa"}

    with pytest.raises(ServiceError) as exc_info:
        confirm_order(db, created.order_id, TENANT_ID)

    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert _stock(db, 11) == Decimal("680")
    assert db.query(StockMovement).filter(StockMovement.movement_type == "destock").count() == 3
    assert inventory_service.find_ledger_drift(db, TENANT_ID) == []


def test_confirm_unknown_order_is_not_found():
    db = build_session(with_recipes=True)

    with pytest.raises(ServiceError) as exc_info:
        confirm_order(db, 404, TENANT_ID)

    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_consumption_sums_per_ingredient():
    db = build_session(with_recipes=True)
    created = submit_order(db, CreateOrderRequest(**HAPPY_PATH_ORDER_PAYLOAD), "burger-house")

    consumption = stock_procedures.compute_order_consumption(db, created.order_id, TENANT_ID)

    assert consumption == {10: Decimal("2"), 11: Decimal("320"), 12: Decimal("200")}


def test_stock_status_flags_low_ingredients():
    db = build_session(with_recipes=True)
    inventory_service.set_opening_stock(db, TENANT_ID, 10, Decimal("5"))
    inventory_service.set_opening_stock(db, TENANT_ID, 11, Decimal("500"))
    inventory_service.update_ingredient(db, TENANT_ID, 10, IngredientUpdate(min_stock_alert=Decimal("5")))
    inventory_service.update_ingredient(db, TENANT_ID, 11, IngredientUpdate(min_stock_alert=Decimal("100")))
    inventory_service.update_ingredient(db, TENANT_ID, 12, IngredientUpdate(is_active=False))

    status = {row["id"]: row for row in inventory_service.get_stock_status(db, TENANT_ID)}

    assert set(status) == {10, 11}
    assert status[10]["is_low"] is True
    assert status[11]["is_low"] is False
    assert status[11]["nb_items_using"] == 2


def test_create_ingredient_records_initial_stock_as_opening():
    db = build_session()

    ingredient = inventory_service.create_ingredient(
        db,
        TENANT_ID,
        IngredientCreate(name=" Queijo ", unit="g", current_stock=Decimal("250")),
        actor="estoque",
    )

    movements = _movements(db, ingredient.id)
    assert ingredient.name == "Queijo"
    assert [(m.movement_type, m.quantity, m.created_by) for m in movements] == [
        ("opening", Decimal("250"), "estoque")
    ]
    assert inventory_service.find_ledger_drift(db, TENANT_ID) == []


def test_ledger_drift_reports_stock_changed_outside_procedures():
    db = build_session(with_recipes=True)
    inventory_service.set_opening_stock(db, TENANT_ID, 10, Decimal("5"))
    db.query(Ingredient).filter(Ingredient.id == 10).update({Ingredient.current_stock: Decimal("9")})
    db.commit()

    drift = inventory_service.find_ledger_drift(db, TENANT_ID)

    assert [row["ingredient_id"] for row in drift] == [10]
    assert drift[0]["ledger_total"] == Decimal("5.000")


def test_movement_history_is_filtered_and_newest_first():
    db = build_session(with_recipes=True)
    inventory_service.set_opening_stock(db, TENANT_ID, 10, Decimal("5"))
    inventory_service.set_opening_stock(db, TENANT_ID, 11, Decimal("5"))
    inventory_service.adjust_stock(
        db, TENANT_ID, AdjustStockInput(ingredient_id=10, quantity=Decimal("1"), movement_type="manual_remove")
    )

    movements = inventory_service.get_stock_movements(db, TENANT_ID, ingredient_id=10)

    assert [m.movement_type for m in movements] == ["manual_remove", "opening"]
    assert inventory_service.get_stock_movements(db, OTHER_TENANT_ID) == []

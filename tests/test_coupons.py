import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from order_engine.core.errors import ErrorKind, ServiceError
from order_engine.models.coupon import Coupon
from order_engine.schemas.coupons import CouponCreate
from order_engine.services.coupons import (
    EXPIRED_MESSAGE,
    INVALID_CODE_MESSAGE,
    NOT_YET_VALID_MESSAGE,
    USAGE_LIMIT_MESSAGE,
    compute_discount,
    create_coupon,
    delete_coupon,
    increment_usage,
    validate_coupon,
)
from tests.fixtures_data import OTHER_TENANT_ID, TENANT_ID, build_session

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _add_coupon(db, **overrides):
    data = {
        "tenant_id": TENANT_ID,
        "code": "SUMMER10",
        "discount_type": "percentage",
        "discount_value": Decimal("20"),
        "max_discount_amount": Decimal("50"),
        "valid_from": NOW - timedelta(days=1),
        "current_uses": 0,
        "is_active": True,
    }
    data.update(overrides)
    coupon = Coupon(**data)
    db.add(coupon)
    db.commit()
    return coupon


def test_fixed_coupon_is_capped_at_subtotal():
    db = build_session()
    _add_coupon(db, code="FIXED25", discount_type="fixed", discount_value=Decimal("25"), max_discount_amount=None)

    full = validate_coupon(db, "FIXED25", TENANT_ID, Decimal("100"), now=NOW)
    capped = validate_coupon(db, "FIXED25", TENANT_ID, Decimal("20"), now=NOW)

    assert full.valid is True
    assert full.discount_amount == Decimal("25.00")
    assert capped.discount_amount == Decimal("20.00")


def test_percentage_coupon_respects_max_discount():
    db = build_session()
    _add_coupon(db)

    result = validate_coupon(db, "SUMMER10", TENANT_ID, Decimal("1000"), now=NOW)
    small = validate_coupon(db, "SUMMER10", TENANT_ID, Decimal("100"), now=NOW)

    assert result.discount_amount == Decimal("50.00")
    assert small.discount_amount == Decimal("20.00")


def test_code_is_trimmed_and_case_insensitive():
    db = build_session()
    coupon = _add_coupon(db)

    result = validate_coupon(db, "  summer10  ", TENANT_ID, Decimal("100"), now=NOW)

    assert result.valid is True
    assert result.coupon.id == coupon.id


def test_window_and_usage_failures_return_specific_messages():
    db = build_session()
    _add_coupon(db, code="OLD", valid_until=NOW - timedelta(hours=1))
    _add_coupon(db, code="SOON", valid_from=NOW + timedelta(days=2))
    _add_coupon(db, code="USED", max_uses=3, current_uses=3)

    assert validate_coupon(db, "OLD", TENANT_ID, Decimal("100"), now=NOW).error == EXPIRED_MESSAGE
    assert validate_coupon(db, "SOON", TENANT_ID, Decimal("100"), now=NOW).error == NOT_YET_VALID_MESSAGE
    assert validate_coupon(db, "USED", TENANT_ID, Decimal("100"), now=NOW).error == USAGE_LIMIT_MESSAGE


def test_minimum_order_amount_is_enforced():
    db = build_session()
    _add_coupon(db, code="MIN30", min_order_amount=Decimal("30"))

    result = validate_coupon(db, "MIN30", TENANT_ID, Decimal("29.99"), now=NOW)

    assert result.valid is False
    assert result.discount_amount == Decimal("0")
    assert result.error == "Pedido mínimo de 30.00 necessário"


def test_coupon_of_another_tenant_or_inactive_is_invalid():
    db = build_session()
    _add_coupon(db, tenant_id=OTHER_TENANT_ID, code="PIZZA")
    _add_coupon(db, code="OFF", is_active=False)

    assert validate_coupon(db, "PIZZA", TENANT_ID, Decimal("100"), now=NOW).error == INVALID_CODE_MESSAGE
    assert validate_coupon(db, "OFF", TENANT_ID, Decimal("100"), now=NOW).error == INVALID_CODE_MESSAGE
    assert validate_coupon(db, "   ", TENANT_ID, Decimal("100"), now=NOW).error == INVALID_CODE_MESSAGE


def test_discount_is_rounded_half_up_to_cents():
    coupon = SimpleNamespace(discount_type="percentage", discount_value=Decimal("15"), max_discount_amount=None)

    assert compute_discount(coupon, Decimal("10.10")) == Decimal("1.52")


def test_increment_usage_updates_counter():
    db = build_session()
    coupon = _add_coupon(db)

    assert increment_usage(db, coupon.id) is True

    db.expire_all()
    assert db.get(Coupon, coupon.id).current_uses == 1


class FailingCommitDb:
    def __init__(self):
        self.rolled_back = False

    def query(self, _model):
        return self

    def filter(self, *_args, **_kwargs):
        return self

    def update(self, *_args, **_kwargs):
        return 1

    def commit(self):
        raise OperationalError("UPDATE coupons", {}, Exception("database is locked"))

    def rollback(self):
        self.rolled_back = True


def test_increment_usage_failure_is_logged_and_swallowed(caplog):
    db = FailingCommitDb()

    with caplog.at_level(logging.ERROR, logger="order_engine.services.coupons"):
        assert increment_usage(db, 7) is False

    assert db.rolled_back is True
    assert "Failed to increment coupon usage coupon_id=7" in caplog.text


def test_create_coupon_normalizes_code_and_rejects_duplicates():
    db = build_session()
    payload = CouponCreate(code=" promo5 ", discount_type="fixed", discount_value=Decimal("5"))

    coupon = create_coupon(db, TENANT_ID, payload)
    assert coupon.code == "PROMO5"
    assert coupon.current_uses == 0

    with pytest.raises(ServiceError) as exc_info:
        create_coupon(db, TENANT_ID, CouponCreate(code="PROMO5", discount_type="fixed", discount_value=Decimal("3")))

    assert exc_info.value.kind == ErrorKind.CONFLICT

    other = create_coupon(db, OTHER_TENANT_ID, CouponCreate(code="PROMO5", discount_type="fixed", discount_value=Decimal("3")))
    assert other.tenant_id == OTHER_TENANT_ID


def test_create_coupon_rejects_percentage_above_hundred():
    db = build_session()

    with pytest.raises(ServiceError) as exc_info:
        create_coupon(db, TENANT_ID, CouponCreate(code="HALF", discount_type="percentage", discount_value=Decimal("150")))

    assert exc_info.value.kind == ErrorKind.VALIDATION


def test_delete_coupon_is_scoped_to_tenant():
    db = build_session()
    coupon = _add_coupon(db)

    with pytest.raises(ServiceError) as exc_info:
        delete_coupon(db, coupon.id, OTHER_TENANT_ID)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND

    delete_coupon(db, coupon.id, TENANT_ID)
    assert db.query(Coupon).count() == 0


def test_zero_max_discount_means_no_cap():
    db = build_session()

    coupon = create_coupon(
        db,
        TENANT_ID,
        CouponCreate(
            code="PCT10",
            discount_type="percentage",
            discount_value=Decimal("10"),
            max_discount_amount=Decimal("0"),
            min_order_amount=Decimal("0"),
            valid_from=NOW - timedelta(days=1),
        ),
    )
    result = validate_coupon(db, "PCT10", TENANT_ID, Decimal("100"), now=NOW)

    assert coupon.max_discount_amount is None
    assert coupon.min_order_amount is None
    assert result.valid is True
    assert result.discount_amount == Decimal("10.00")


def test_stored_zero_cap_is_ignored_when_computing_discount():
    coupon = SimpleNamespace(discount_type="percentage", discount_value=Decimal("10"), max_discount_amount=Decimal("0"))

    assert compute_discount(coupon, Decimal("100")) == Decimal("10.00")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from marketplace.domain.models import BuyNGetMFree, Cart, NoPromotion, Drug
from marketplace.domain.pricing import (
    calculate_promotional_items, build_cart_line, build_order_line, calculate_order_pricing
)

from fakes import make_drug, buy_get, INVENTORY_ID, OTHER_INVENTORY_ID


@pytest.mark.parametrize("buy,free,quantity,expected", [
    (3, 1, 10, (3, 3, 10, 13)),
    (3, 1, 2, (0, 0, 2, 2)),
    (3, 1, 3, (1, 1, 3, 4)),
    (2, 2, 5, (2, 4, 5, 9)),
    (1, 1, 4, (4, 4, 4, 8)),
])
def test_buy_n_get_m_free(buy, free, quantity, expected):
    breakdown = calculate_promotional_items(buy_get(buy, free), quantity)
    assert tuple(breakdown) == expected
    assert breakdown.total_delivered == breakdown.paid_quantity + breakdown.free_items


def test_no_promotion_pays_for_everything():
    assert tuple(calculate_promotional_items(NoPromotion(), 7)) == (0, 0, 7, 7)


def test_breakdown_is_recomputable():
    promotion = buy_get(3, 1)
    assert calculate_promotional_items(promotion, 10) == calculate_promotional_items(promotion, 10)


def test_promotion_must_be_positive():
    with pytest.raises(ValidationError):
        BuyNGetMFree(buy_quantity=0, free_quantity=1)
    with pytest.raises(ValidationError):
        BuyNGetMFree(buy_quantity=3, free_quantity=0)


def test_promotion_parsed_by_kind():
    drug = Drug.model_validate({
        "id": "drug-1", "name": "Panadol", "inventory_id": INVENTORY_ID, "price": "10", "stock": 3,
        "promotion": {"kind": "buy_n_get_m_free", "buy_quantity": 3, "free_quantity": 1},
    })
    assert isinstance(drug.promotion, BuyNGetMFree)
    assert isinstance(make_drug().promotion, NoPromotion)


def test_cart_line_uses_discounted_price_for_paid_units():
    drug = make_drug(stock=20, price="100", discounted_price="80", promotion=buy_get(3, 1))

    line = build_cart_line(drug, 10)

    assert line.price == Decimal("100")
    assert line.discounted_price == Decimal("80")
    assert line.paid_quantity == 10
    assert line.free_items == 3
    assert line.total_delivered == 13
    assert line.total_price == Decimal("800")


def test_cart_line_without_discount_uses_list_price():
    line = build_cart_line(make_drug(price="12.50"), 4)
    assert line.discounted_price == Decimal("12.50")
    assert line.total_price == Decimal("50.00")


def test_zero_discounted_price_is_free():
    drug = make_drug(price="100", discounted_price="0")

    assert drug.unit_price == Decimal("0")
    line = build_order_line(drug, 3)
    assert line.discounted_price == Decimal("0")
    assert line.total_price == Decimal("0")


def test_cart_totals():
    now = datetime.now(timezone.utc)
    cart = Cart(id="cart-1", pharmacy_id="pharmacy-1", created_at=now, updated_at=now)
    cart.put_line(INVENTORY_ID, build_cart_line(make_drug("a", price="100", discounted_price="90"), 2))
    cart.put_line(INVENTORY_ID, build_cart_line(make_drug("b", price="10"), 3))
    cart.put_line(OTHER_INVENTORY_ID, build_cart_line(make_drug("c", price="5", inventory_id=OTHER_INVENTORY_ID), 1))

    assert cart.total_items == 3
    assert cart.find_group(INVENTORY_ID).total_inventory_price == Decimal("210")
    assert cart.find_group(OTHER_INVENTORY_ID).total_inventory_price == Decimal("5")
    assert cart.total_cart_price == Decimal("235")
    assert cart.total_price_after_discount == Decimal("215")


def test_put_line_replaces_existing_line():
    now = datetime.now(timezone.utc)
    cart = Cart(id="cart-1", pharmacy_id="pharmacy-1", created_at=now, updated_at=now)
    drug = make_drug(price="10")
    cart.put_line(INVENTORY_ID, build_cart_line(drug, 1))
    cart.put_line(INVENTORY_ID, build_cart_line(drug, 4))

    assert cart.total_items == 1
    assert cart.quantity_of(drug.id) == 4
    assert cart.total_price_after_discount == Decimal("40")


def test_order_pricing_adds_shipping():
    lines = [build_order_line(make_drug("a", price="100"), 3), build_order_line(make_drug("b", price="2.5"), 2)]

    pricing = calculate_order_pricing(lines, Decimal("20"))

    assert pricing.subtotal == Decimal("305.0")
    assert pricing.shipping_cost == Decimal("20")
    assert pricing.total == Decimal("325.0")


def test_order_pricing_without_shipping():
    pricing = calculate_order_pricing([build_order_line(make_drug(price="100"), 1)], None)
    assert pricing.shipping_cost == Decimal("0")
    assert pricing.total == Decimal("100")

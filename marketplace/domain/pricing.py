"""Расчет акций и цен для корзины и заказа.

Все функции чистые: результат зависит только от аргументов, поэтому
разбивку по акции можно пересчитать в любой момент из
(drug.promotion, запрошенное количество).
"""
from decimal import Decimal
from typing import NamedTuple

from marketplace.domain.models import BuyNGetMFree, CartLine, Drug, OrderLine, Pricing


class PromotionalBreakdown(NamedTuple):
    full_offers: int
    free_items: int
    paid_quantity: int
    total_delivered: int


def calculate_promotional_items(promotion, quantity: int) -> PromotionalBreakdown:
    """Сколько единиц оплачивается и сколько отгружается со склада.

    Остаток склада проверяется и списывается по total_delivered,
    выручка считается только по paid_quantity.
    """
    if not isinstance(promotion, BuyNGetMFree):
        return PromotionalBreakdown(0, 0, quantity, quantity)

    full_offers = quantity // promotion.buy_quantity
    free_items = full_offers * promotion.free_quantity
    paid_quantity = full_offers * promotion.buy_quantity + quantity % promotion.buy_quantity
    return PromotionalBreakdown(full_offers, free_items, paid_quantity, paid_quantity + free_items)


def build_cart_line(drug: Drug, quantity: int) -> CartLine:
    """Позиция корзины со снимком текущей цены лекарства"""
    breakdown = calculate_promotional_items(drug.promotion, quantity)
    unit_price = drug.unit_price
    return CartLine(
        drug_id=drug.id,
        drug_name=drug.name,
        quantity=quantity,
        price=drug.price,
        discounted_price=unit_price,
        paid_quantity=breakdown.paid_quantity,
        free_items=breakdown.free_items,
        total_delivered=breakdown.total_delivered,
        total_price=unit_price * breakdown.paid_quantity,
    )


def build_order_line(drug: Drug, quantity: int) -> OrderLine:
    """Замороженная позиция заказа: цена и акция берутся на момент оформления"""
    line = build_cart_line(drug, quantity)
    return OrderLine(**line.model_dump())


def calculate_order_pricing(lines: list[OrderLine], shipping_cost: Decimal) -> Pricing:
    subtotal = sum((line.total_price for line in lines), Decimal("0"))
    shipping_cost = shipping_cost or Decimal("0")
    return Pricing(subtotal=subtotal, shipping_cost=shipping_cost, total=subtotal + shipping_cost)

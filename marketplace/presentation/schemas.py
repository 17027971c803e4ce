from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from marketplace.domain.models import (
    Order, Cart, OrderStatus, OrderLine, CartGroup, Pricing, StatusEntry, Payment, Delivery, PaymentMethod
)


class AddCartItemRequest(BaseModel):
    drug_id: str
    quantity: int = Field(ge=1)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=1)


class CreateOrderRequest(BaseModel):
    inventory_id: str
    payment_method: PaymentMethod = PaymentMethod.CASH


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class CartResponse(BaseModel):
    id: str
    pharmacy_id: str
    total_items: int
    total_cart_price: Decimal
    total_price_after_discount: Decimal
    groups: List[CartGroup]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, cart: Cart):
        cart.recalculate()
        return cls(
            id=cart.id,
            pharmacy_id=cart.pharmacy_id,
            total_items=cart.total_items,
            total_cart_price=cart.total_cart_price,
            total_price_after_discount=cart.total_price_after_discount,
            groups=cart.groups,
            created_at=cart.created_at,
            updated_at=cart.updated_at
        )


class OrderResponse(BaseModel):
    id: str
    order_number: str
    pharmacy_id: str
    inventory_id: str
    status: OrderStatus
    status_history: List[StatusEntry]
    lines: List[OrderLine]
    pricing: Pricing
    payment: Payment
    delivery: Delivery
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            id=order.id,
            order_number=order.order_number,
            pharmacy_id=order.pharmacy_id,
            inventory_id=order.inventory_id,
            status=order.status.current,
            status_history=order.status.history,
            lines=order.lines,
            pricing=order.pricing,
            payment=order.payment,
            delivery=order.delivery,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class MessageResponse(BaseModel):
    status: str = "ok"
    message: str


class UnavailableItemResponse(BaseModel):
    drug_id: str
    name: str
    requested: int
    available: int


class ErrorResponse(BaseModel):
    detail: str


class StockErrorDetail(BaseModel):
    message: str
    items: List[UnavailableItemResponse]


class StockErrorResponse(BaseModel):
    detail: StockErrorDetail

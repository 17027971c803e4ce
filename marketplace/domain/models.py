from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field

from marketplace.domain.exceptions import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.REJECTED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, allowed in ALLOWED_TRANSITIONS.items() if not allowed)

# Статусы, из которых аптека может отменить заказ
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Переходы, после которых товар возвращается на склад
STOCK_RESTORING_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REJECTED})


def can_transition(current, target) -> bool:
    """Проверка перехода по таблице состояний заказа"""
    try:
        current, target = OrderStatus(current), OrderStatus(target)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[current]


class UserRole(str, Enum):
    PHARMACY = "pharmacy"
    INVENTORY = "inventory"
    ADMIN = "admin"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class NoPromotion(BaseModel):
    kind: Literal["none"] = "none"


class BuyNGetMFree(BaseModel):
    """Акция: купи N, получи M бесплатно"""
    kind: Literal["buy_n_get_m_free"] = "buy_n_get_m_free"
    buy_quantity: int = Field(ge=1)
    free_quantity: int = Field(ge=1)


Promotion = Annotated[Union[NoPromotion, BuyNGetMFree], Field(discriminator="kind")]


class Drug(BaseModel):
    """Value Object — лекарство на складе поставщика"""
    id: str
    name: str
    inventory_id: str
    price: Decimal
    discounted_price: Optional[Decimal] = None
    stock: int
    promotion: Promotion = Field(default_factory=NoPromotion)

    @property
    def unit_price(self) -> Decimal:
        """Цена за единицу с учетом скидки"""
        return self.discounted_price if self.discounted_price is not None else self.price


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    governorate: Optional[str] = None
    details: Optional[str] = None


class GeoPoint(BaseModel):
    longitude: float
    latitude: float


class UserProfile(BaseModel):
    """Value Object — профиль аптеки или склада"""
    id: str
    name: str
    role: UserRole
    phone: Optional[str] = None
    address: Optional[Address] = None
    location: Optional[GeoPoint] = None
    shipping_price: Decimal = Decimal("0")


class Actor(BaseModel):
    """Кто выполняет действие"""
    id: str
    role: UserRole


class CartLine(BaseModel):
    drug_id: str
    drug_name: str
    quantity: int = Field(ge=1)
    price: Decimal
    discounted_price: Decimal
    paid_quantity: int
    free_items: int = 0
    total_delivered: int
    total_price: Decimal


class CartGroup(BaseModel):
    inventory_id: str
    lines: list[CartLine] = Field(default_factory=list)
    total_inventory_price: Decimal = Decimal("0")

    def find_line(self, drug_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.drug_id == drug_id), None)


class Cart(BaseModel):
    """Domain Entity — корзина аптеки"""
    id: str
    pharmacy_id: str
    groups: list[CartGroup] = Field(default_factory=list)
    total_cart_price: Decimal = Decimal("0")
    total_price_after_discount: Decimal = Decimal("0")
    # 0 у еще не сохраненной корзины, растет при каждой записи
    version: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.groups

    @property
    def total_items(self) -> int:
        return sum(len(group.lines) for group in self.groups)

    def find_group(self, inventory_id: str) -> Optional[CartGroup]:
        return next((group for group in self.groups if group.inventory_id == inventory_id), None)

    def find_line(self, drug_id: str) -> Optional[CartLine]:
        for group in self.groups:
            line = group.find_line(drug_id)
            if line:
                return line
        return None

    def quantity_of(self, drug_id: str) -> int:
        line = self.find_line(drug_id)
        return line.quantity if line else 0

    def put_line(self, inventory_id: str, line: CartLine) -> None:
        """Добавляет или заменяет позицию в группе склада"""
        group = self.find_group(inventory_id)
        if group is None:
            group = CartGroup(inventory_id=inventory_id)
            self.groups.append(group)
        group.lines = [existing for existing in group.lines if existing.drug_id != line.drug_id]
        group.lines.append(line)
        self.recalculate()

    def remove_line(self, drug_id: str) -> bool:
        removed = False
        for group in self.groups:
            kept = [line for line in group.lines if line.drug_id != drug_id]
            removed = removed or len(kept) != len(group.lines)
            group.lines = kept
        # Пустые группы не храним
        self.groups = [group for group in self.groups if group.lines]
        self.recalculate()
        return removed

    def remove_group(self, inventory_id: str) -> bool:
        kept = [group for group in self.groups if group.inventory_id != inventory_id]
        removed = len(kept) != len(self.groups)
        self.groups = kept
        self.recalculate()
        return removed

    def recalculate(self) -> None:
        """Пересчет производных сумм. Вызывать перед чтением итогов и сохранением."""
        for group in self.groups:
            group.total_inventory_price = sum((line.total_price for line in group.lines), Decimal("0"))
        self.total_cart_price = sum(
            (line.price * line.paid_quantity for group in self.groups for line in group.lines),
            Decimal("0"),
        )
        self.total_price_after_discount = sum(
            (group.total_inventory_price for group in self.groups), Decimal("0")
        )


class OrderLine(BaseModel):
    """Снимок позиции корзины на момент оформления"""
    drug_id: str
    drug_name: str
    quantity: int = Field(ge=1)
    price: Decimal
    discounted_price: Decimal
    paid_quantity: int
    free_items: int = 0
    total_delivered: int
    total_price: Decimal


class Pricing(BaseModel):
    subtotal: Decimal
    shipping_cost: Decimal = Decimal("0")
    total: Decimal


class StatusEntry(BaseModel):
    status: OrderStatus
    note: Optional[str] = None
    updated_by: str
    timestamp: datetime


class OrderStatusInfo(BaseModel):
    current: OrderStatus = OrderStatus.PENDING
    history: list[StatusEntry] = Field(default_factory=list)


class Payment(BaseModel):
    method: PaymentMethod = PaymentMethod.CASH
    status: PaymentStatus = PaymentStatus.PENDING
    paid_at: Optional[datetime] = None


class Delivery(BaseModel):
    address: Optional[Address] = None
    location: Optional[GeoPoint] = None
    contact_phone: Optional[str] = None
    actual_delivery_date: Optional[datetime] = None


class Order(BaseModel):
    """Domain Entity — заказ аптеки у склада"""
    id: str
    order_number: str
    pharmacy_id: str
    inventory_id: str
    lines: list[OrderLine]
    pricing: Pricing
    status: OrderStatusInfo
    payment: Payment = Field(default_factory=Payment)
    delivery: Delivery = Field(default_factory=Delivery)
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status.current in TERMINAL_STATUSES

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.pharmacy_id, self.inventory_id)

    def can_transition_to(self, target) -> bool:
        return can_transition(self.status.current, target)

    def apply_transition(self, target, note: Optional[str], actor_id: str, now: Optional[datetime] = None) -> OrderStatus:
        """Переводит заказ в новый статус и дописывает историю. Возвращает прежний статус."""
        if not self.can_transition_to(target):
            raise InvalidTransitionError(_value(self.status.current), _value(target))
        now = now or utcnow()
        previous = self.status.current
        target = OrderStatus(target)
        self.status.history.append(StatusEntry(status=target, note=note, updated_by=actor_id, timestamp=now))
        self.status.current = target
        self.updated_at = now
        return previous

    def mark_delivered(self, now: Optional[datetime] = None) -> None:
        """Бизнес-правило: наличные считаются оплаченными при доставке"""
        now = now or utcnow()
        self.delivery.actual_delivery_date = now
        if self.payment.method == PaymentMethod.CASH:
            self.payment.status = PaymentStatus.PAID
            self.payment.paid_at = now


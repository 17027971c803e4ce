from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Enum, DateTime, JSON, MetaData, ForeignKey, CheckConstraint, Index
)
from sqlalchemy.sql import func

from marketplace.domain.models import OrderStatus, UserRole, PaymentMethod, PaymentStatus

metadata = MetaData()


def _enum(enum_cls, name: str) -> Enum:
    # В БД храним значения ("pending"), а не имена членов
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


order_status_enum = _enum(OrderStatus, "order_status")


users_tbl = Table(
    "users",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("role", _enum(UserRole, "user_role"), nullable=False),
    Column("phone", String, nullable=True),
    Column("address", JSON, nullable=True),
    Column("location", JSON, nullable=True),
    Column("shipping_price", Numeric(12, 2), nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


drugs_tbl = Table(
    "drugs",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("inventory_id", String, nullable=False, index=True),
    Column("price", Numeric(12, 2), nullable=False),
    Column("discounted_price", Numeric(12, 2), nullable=True),
    Column("stock", Integer, nullable=False),
    Column("promotion", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("stock >= 0", name="ck_drugs_stock_non_negative"),
)


# Группы и позиции корзины хранятся документом: корзина всегда читается и пишется целиком
carts_tbl = Table(
    "carts",
    metadata,
    Column("id", String, primary_key=True),
    Column("pharmacy_id", String, nullable=False, unique=True),
    Column("groups", JSON, nullable=False),
    Column("total_cart_price", Numeric(12, 2), nullable=False),
    Column("total_price_after_discount", Numeric(12, 2), nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_number", String, nullable=False, unique=True),
    Column("pharmacy_id", String, nullable=False),
    Column("inventory_id", String, nullable=False),
    Column("status", order_status_enum, nullable=False, index=True),
    Column("subtotal", Numeric(12, 2), nullable=False),
    Column("shipping_cost", Numeric(12, 2), nullable=False),
    Column("total", Numeric(12, 2), nullable=False),
    Column("payment_method", _enum(PaymentMethod, "payment_method"), nullable=False),
    Column("payment_status", _enum(PaymentStatus, "payment_status"), nullable=False, index=True),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("delivery_address", JSON, nullable=True),
    Column("delivery_location", JSON, nullable=True),
    Column("contact_phone", String, nullable=True),
    Column("actual_delivery_date", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_orders_pharmacy_created", "pharmacy_id", "created_at"),
    Index("ix_orders_inventory_created", "inventory_id", "created_at"),
)


order_lines_tbl = Table(
    "order_lines",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("drug_id", String, nullable=False),
    Column("drug_name", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("discounted_price", Numeric(12, 2), nullable=False),
    Column("paid_quantity", Integer, nullable=False),
    Column("free_items", Integer, nullable=False),
    Column("total_delivered", Integer, nullable=False),
    Column("total_price", Numeric(12, 2), nullable=False),
)


# История статусов только дописывается
order_status_history_tbl = Table(
    "order_status_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("status", order_status_enum, nullable=False),
    Column("note", String, nullable=True),
    Column("updated_by", String, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)

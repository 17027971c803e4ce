import uuid
from collections import defaultdict
from datetime import datetime
from typing import Optional, List, Iterable
from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.domain.models import (
    Order, OrderLine, OrderStatus, OrderStatusInfo, StatusEntry, Pricing, Payment, Delivery,
    Cart, Drug, UserProfile,
)
from marketplace.infrastructure.db_schema import (
    orders_tbl, order_lines_tbl, order_status_history_tbl, carts_tbl, drugs_tbl, users_tbl, outbox_events_tbl
)
from marketplace.application.interfaces import (
    OrderRepository, CartRepository, DrugRepository, UserRepository, OutboxRepository
)


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        if not row:
            return None
        orders = await self._load([row])
        return orders[0]

    async def list_for(
        self,
        pharmacy_id: Optional[str] = None,
        inventory_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        query = select(orders_tbl)
        if pharmacy_id is not None:
            query = query.where(orders_tbl.c.pharmacy_id == pharmacy_id)
        if inventory_id is not None:
            query = query.where(orders_tbl.c.inventory_id == inventory_id)
        if status is not None:
            query = query.where(orders_tbl.c.status == status)
        result = await self._session.execute(
            query.order_by(orders_tbl.c.created_at.desc()).limit(limit).offset(offset)
        )
        return await self._load(result.fetchall())

    async def create(self, order: Order) -> None:
        await self._session.execute(
            insert(orders_tbl).values(
                id=order.id,
                order_number=order.order_number,
                pharmacy_id=order.pharmacy_id,
                inventory_id=order.inventory_id,
                status=order.status.current,
                subtotal=order.pricing.subtotal,
                shipping_cost=order.pricing.shipping_cost,
                total=order.pricing.total,
                payment_method=order.payment.method,
                payment_status=order.payment.status,
                paid_at=order.payment.paid_at,
                delivery_address=order.delivery.address.model_dump() if order.delivery.address else None,
                delivery_location=order.delivery.location.model_dump() if order.delivery.location else None,
                contact_phone=order.delivery.contact_phone,
                actual_delivery_date=order.delivery.actual_delivery_date,
                created_at=order.created_at,
                updated_at=order.updated_at
            )
        )
        await self._session.execute(
            insert(order_lines_tbl),
            [{"order_id": order.id, "position": i, **line.model_dump()} for i, line in enumerate(order.lines)]
        )
        await self._session.execute(
            insert(order_status_history_tbl),
            [
                {"order_id": order.id, "position": i, **entry.model_dump()}
                for i, entry in enumerate(order.status.history)
            ]
        )

    async def save_transition(self, order: Order, expected_status: OrderStatus) -> bool:
        # Условие по текущему статусу закрывает гонку двух переходов одного заказа
        result = await self._session.execute(
            update(orders_tbl)
            .where(orders_tbl.c.id == order.id, orders_tbl.c.status == expected_status)
            .values(
                status=order.status.current,
                payment_status=order.payment.status,
                paid_at=order.payment.paid_at,
                actual_delivery_date=order.delivery.actual_delivery_date,
                updated_at=order.updated_at
            )
        )
        if result.rowcount != 1:
            return False

        entry = order.status.history[-1]
        await self._session.execute(
            insert(order_status_history_tbl).values(
                order_id=order.id,
                position=len(order.status.history) - 1,
                **entry.model_dump()
            )
        )
        return True

    async def delete_terminal_before(self, statuses: Iterable[OrderStatus], cutoff: datetime) -> int:
        condition = (orders_tbl.c.status.in_(list(statuses)), orders_tbl.c.updated_at < cutoff)
        expired_ids = select(orders_tbl.c.id).where(*condition)

        await self._session.execute(
            delete(order_lines_tbl).where(order_lines_tbl.c.order_id.in_(expired_ids))
        )
        await self._session.execute(
            delete(order_status_history_tbl).where(order_status_history_tbl.c.order_id.in_(expired_ids))
        )
        result = await self._session.execute(delete(orders_tbl).where(*condition))
        return result.rowcount

    async def _load(self, rows) -> List[Order]:
        ids = [row.id for row in rows]
        if not ids:
            return []

        lines = defaultdict(list)
        result = await self._session.execute(
            select(order_lines_tbl)
            .where(order_lines_tbl.c.order_id.in_(ids))
            .order_by(order_lines_tbl.c.position)
        )
        for line in result.fetchall():
            lines[line.order_id].append(line)

        history = defaultdict(list)
        result = await self._session.execute(
            select(order_status_history_tbl)
            .where(order_status_history_tbl.c.order_id.in_(ids))
            .order_by(order_status_history_tbl.c.position)
        )
        for entry in result.fetchall():
            history[entry.order_id].append(entry)

        return [self._to_domain(row, lines[row.id], history[row.id]) for row in rows]

    def _to_domain(self, row, lines, history) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            order_number=row.order_number,
            pharmacy_id=row.pharmacy_id,
            inventory_id=row.inventory_id,
            lines=[
                OrderLine(
                    drug_id=line.drug_id,
                    drug_name=line.drug_name,
                    quantity=line.quantity,
                    price=line.price,
                    discounted_price=line.discounted_price,
                    paid_quantity=line.paid_quantity,
                    free_items=line.free_items,
                    total_delivered=line.total_delivered,
                    total_price=line.total_price
                )
                for line in lines
            ],
            pricing=Pricing(subtotal=row.subtotal, shipping_cost=row.shipping_cost, total=row.total),
            status=OrderStatusInfo(
                current=OrderStatus(row.status),
                history=[
                    StatusEntry(status=entry.status, note=entry.note, updated_by=entry.updated_by, timestamp=entry.timestamp)
                    for entry in history
                ],
            ),
            payment=Payment(method=row.payment_method, status=row.payment_status, paid_at=row.paid_at),
            delivery=Delivery(
                address=row.delivery_address,
                location=row.delivery_location,
                contact_phone=row.contact_phone,
                actual_delivery_date=row.actual_delivery_date
            ),
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, cart_id: str) -> Optional[Cart]:
        result = await self._session.execute(
            select(carts_tbl).where(carts_tbl.c.id == cart_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_pharmacy(self, pharmacy_id: str) -> Optional[Cart]:
        result = await self._session.execute(
            select(carts_tbl).where(carts_tbl.c.pharmacy_id == pharmacy_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def save(self, cart: Cart) -> bool:
        cart.recalculate()
        values = dict(
            groups=[group.model_dump(mode="json") for group in cart.groups],
            total_cart_price=cart.total_cart_price,
            total_price_after_discount=cart.total_price_after_discount,
            updated_at=cart.updated_at
        )

        if cart.version == 0:
            try:
                await self._session.execute(
                    insert(carts_tbl).values(
                        id=cart.id,
                        pharmacy_id=cart.pharmacy_id,
                        created_at=cart.created_at,
                        version=1,
                        **values
                    )
                )
            except IntegrityError:
                # Параллельный запрос уже создал корзину этой аптеки
                return False
            cart.version = 1
            return True

        # Вторая запись с той же версией ждет блокировку строки и получает 0 строк
        result = await self._session.execute(
            update(carts_tbl)
            .where(carts_tbl.c.id == cart.id, carts_tbl.c.version == cart.version)
            .values(version=cart.version + 1, **values)
        )
        if result.rowcount != 1:
            return False
        cart.version += 1
        return True

    async def delete(self, cart: Cart) -> bool:
        result = await self._session.execute(
            delete(carts_tbl).where(carts_tbl.c.id == cart.id, carts_tbl.c.version == cart.version)
        )
        return result.rowcount == 1

    def _to_domain(self, row) -> Cart:
        return Cart(
            id=row.id,
            pharmacy_id=row.pharmacy_id,
            groups=row.groups,
            total_cart_price=row.total_cart_price,
            total_price_after_discount=row.total_price_after_discount,
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyDrugRepository(DrugRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, drug_id: str) -> Optional[Drug]:
        result = await self._session.execute(
            select(drugs_tbl).where(drugs_tbl.c.id == drug_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_many(self, drug_ids: List[str]) -> dict[str, Drug]:
        if not drug_ids:
            return {}
        result = await self._session.execute(
            select(drugs_tbl).where(drugs_tbl.c.id.in_(drug_ids))
        )
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def decrement_stock(self, drug_id: str, quantity: int) -> bool:
        # Атомарное условное списание вместо read-modify-write
        result = await self._session.execute(
            update(drugs_tbl)
            .where(drugs_tbl.c.id == drug_id, drugs_tbl.c.stock >= quantity)
            .values(stock=drugs_tbl.c.stock - quantity)
        )
        return result.rowcount == 1

    async def increment_stock(self, drug_id: str, quantity: int) -> None:
        await self._session.execute(
            update(drugs_tbl)
            .where(drugs_tbl.c.id == drug_id)
            .values(stock=drugs_tbl.c.stock + quantity)
        )

    def _to_domain(self, row) -> Drug:
        return Drug(
            id=row.id,
            name=row.name,
            inventory_id=row.inventory_id,
            price=row.price,
            discounted_price=row.discounted_price,
            stock=row.stock,
            promotion=row.promotion or {"kind": "none"}
        )


class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        result = await self._session.execute(
            select(users_tbl).where(users_tbl.c.id == user_id)
        )
        row = result.fetchone()
        if not row:
            return None
        return UserProfile(
            id=row.id,
            name=row.name,
            role=row.role,
            phone=row.phone,
            address=row.address,
            location=row.location,
            shipping_price=row.shipping_price
        )


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,
            order_id=order_id,
            status="pending"
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id
            }
            for row in result.fetchall()
        ]

    async def mark_as_published(self, event_id: str) -> None:
        await self._session.execute(
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )

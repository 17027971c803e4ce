import logging
import uuid
from pydantic import BaseModel

from marketplace.domain.models import (
    Order, OrderLine, OrderStatus, OrderStatusInfo, StatusEntry, Payment, PaymentMethod, Delivery, utcnow
)
from marketplace.domain.exceptions import CartNotFoundError, UserNotFoundError, StockUnavailableError
from marketplace.domain.order_number import generate_order_number
from marketplace.domain.pricing import build_order_line, calculate_order_pricing
from marketplace.application.stock import find_unavailable, reserve_stock
from marketplace.application.events import ORDER_CREATED, OrderNotifier, record_order_event


logger = logging.getLogger(__name__)


class CreateOrderDTO(BaseModel):
    pharmacy_id: str
    cart_id: str
    inventory_id: str
    payment_method: PaymentMethod = PaymentMethod.CASH


class CreateOrderUseCase:
    """Оформление заказа из группы корзины одного склада"""

    def __init__(self, unit_of_work, notifier: OrderNotifier):
        self._uow = unit_of_work
        self._notify = notifier

    async def __call__(self, data: CreateOrderDTO) -> Order:
        logger.info(f"Создание заказа из корзины {data.cart_id} для аптеки {data.pharmacy_id}, склад {data.inventory_id}")

        async with self._uow() as uow:
            # 1. Корзина принадлежит аптеке и содержит группу склада
            cart = await uow.carts.get_by_id(data.cart_id)
            group = None
            if cart and cart.pharmacy_id == data.pharmacy_id:
                group = cart.find_group(data.inventory_id)
            if group is None:
                raise CartNotFoundError(f"Корзина {data.cart_id} не найдена или в ней нет склада {data.inventory_id}")

            inventory = await uow.users.get_by_id(data.inventory_id)
            if not inventory:
                raise UserNotFoundError(f"Склад {data.inventory_id} не найден")
            pharmacy = await uow.users.get_by_id(data.pharmacy_id)
            if not pharmacy:
                raise UserNotFoundError(f"Аптека {data.pharmacy_id} не найдена")

            # 2. Пересчет по текущим ценам и акциям, проверка остатков
            drugs = await uow.drugs.get_many([line.drug_id for line in group.lines])
            lines = []
            for cart_line in group.lines:
                drug = drugs.get(cart_line.drug_id)
                if drug:
                    lines.append(build_order_line(drug, cart_line.quantity))
                else:
                    lines.append(OrderLine(**cart_line.model_dump()))

            unavailable = find_unavailable(lines, drugs)
            if unavailable:
                logger.warning(f"Недостаточно остатков для заказа из корзины {data.cart_id}: {unavailable}")
                raise StockUnavailableError(unavailable)

            # 3. Создание заказа
            now = utcnow()
            order = Order(
                id=str(uuid.uuid4()),
                order_number=generate_order_number(data.inventory_id, now),
                pharmacy_id=data.pharmacy_id,
                inventory_id=data.inventory_id,
                lines=lines,
                pricing=calculate_order_pricing(lines, inventory.shipping_price),
                status=OrderStatusInfo(
                    current=OrderStatus.PENDING,
                    history=[StatusEntry(status=OrderStatus.PENDING, updated_by=data.pharmacy_id, timestamp=now)],
                ),
                payment=Payment(method=data.payment_method),
                delivery=Delivery(
                    address=pharmacy.address,
                    location=pharmacy.location,
                    contact_phone=pharmacy.phone,
                ),
                created_at=now,
                updated_at=now,
            )

            # 4. Группа забирается из корзины условной записью до списания остатков:
            # повторное оформление той же группы не пройдет по версии корзины
            cart.remove_group(data.inventory_id)
            if cart.is_empty:
                claimed = await uow.carts.delete(cart)
            else:
                cart.updated_at = now
                claimed = await uow.carts.save(cart)
            if not claimed:
                logger.warning(f"Группа склада {data.inventory_id} корзины {data.cart_id} уже оформлена или изменена")
                raise CartNotFoundError(f"Корзина {data.cart_id} не найдена или в ней нет склада {data.inventory_id}")
            if cart.is_empty:
                logger.info(f"Корзина {cart.id} пуста и удалена")

            # 5. Списание остатков и заказ в той же единице работы
            await reserve_stock(uow.drugs, order.lines)
            await uow.orders.create(order)

            await record_order_event(uow, ORDER_CREATED, order)
            await uow.commit()

        logger.info(f"Заказ создан: {order.id} ({order.order_number}), сумма {order.pricing.total}")

        await self._notify(
            order,
            user_id=order.inventory_id,
            message=f"Новый заказ {order.order_number} на сумму {order.pricing.total}",
            event_type=ORDER_CREATED,
        )
        return order

import logging
from typing import Optional

from marketplace.domain.models import Order, OrderStatus, CANCELLABLE_STATUSES
from marketplace.domain.exceptions import OrderNotFoundError, InvalidTransitionError
from marketplace.application.events import ORDER_CANCELLED, ORDER_REJECTED, OrderNotifier
from marketplace.application.transition_order import transition_order, status_message

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    """Аптека отменяет свой заказ, пока он pending или confirmed"""

    def __init__(self, unit_of_work, notifier: OrderNotifier):
        self._uow = unit_of_work
        self._notify = notifier

    async def __call__(self, order_id: str, reason: Optional[str], pharmacy_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or order.pharmacy_id != pharmacy_id:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            if order.status.current not in CANCELLABLE_STATUSES:
                logger.warning(f"Заказ {order_id} не может быть отменен (status: {order.status.current.value})")
                raise InvalidTransitionError(
                    order.status.current.value,
                    OrderStatus.CANCELLED.value,
                    f"Заказ в статусе {order.status.current.value} нельзя отменить",
                )

            await transition_order(uow, order, OrderStatus.CANCELLED, reason, pharmacy_id)
            await uow.commit()

        await self._notify(
            order,
            user_id=order.inventory_id,
            message=f"Аптека отменила заказ {order.order_number}" + (f". Причина: {reason}" if reason else ""),
            event_type=ORDER_CANCELLED,
        )
        return order


class RejectOrderUseCase:
    """Склад отклоняет поступивший заказ"""

    def __init__(self, unit_of_work, notifier: OrderNotifier):
        self._uow = unit_of_work
        self._notify = notifier

    async def __call__(self, order_id: str, reason: Optional[str], inventory_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or order.inventory_id != inventory_id:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            if not order.can_transition_to(OrderStatus.REJECTED):
                logger.warning(f"Заказ {order_id} не может быть отклонен (status: {order.status.current.value})")
                raise InvalidTransitionError(order.status.current.value, OrderStatus.REJECTED.value)

            await transition_order(uow, order, OrderStatus.REJECTED, reason, inventory_id)
            await uow.commit()

        await self._notify(order, user_id=order.pharmacy_id, message=status_message(order), event_type=ORDER_REJECTED)
        return order

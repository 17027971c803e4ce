import logging
from typing import Optional

from marketplace.domain.models import Order, OrderStatus, Actor, UserRole
from marketplace.domain.exceptions import OrderNotFoundError, ForbiddenError, InvalidTransitionError
from marketplace.application.events import ORDER_STATUS_CHANGED, EVENT_BY_STATUS, OrderNotifier
from marketplace.application.transition_order import transition_order, status_message

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    """Склад ведет заказ по статусам: confirmed -> processing -> shipped -> delivered"""

    def __init__(self, unit_of_work, notifier: OrderNotifier):
        self._uow = unit_of_work
        self._notify = notifier

    async def __call__(self, order_id: str, status: OrderStatus, note: Optional[str], actor: Actor) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            if actor.role != UserRole.ADMIN and actor.id != order.inventory_id:
                raise ForbiddenError("Статус заказа меняет только склад, получивший заказ")

            if not order.can_transition_to(status):
                logger.warning(f"Заказ {order_id} не может перейти из {order.status.current.value} в {status}")
                raise InvalidTransitionError(order.status.current.value, getattr(status, "value", str(status)))

            await transition_order(uow, order, status, note, actor.id)
            await uow.commit()

        await self._notify(
            order,
            user_id=order.pharmacy_id,
            message=status_message(order),
            event_type=EVENT_BY_STATUS.get(order.status.current, ORDER_STATUS_CHANGED),
        )
        return order

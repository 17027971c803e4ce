import logging
from typing import Optional

from marketplace.domain.models import Order, OrderStatus
from marketplace.application.interfaces import NotificationsService

logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_CANCELLED = "order.cancelled"
ORDER_REJECTED = "order.rejected"

EVENT_BY_STATUS = {
    OrderStatus.CANCELLED: ORDER_CANCELLED,
    OrderStatus.REJECTED: ORDER_REJECTED,
}


def order_event_data(order: Order, previous_status: Optional[OrderStatus] = None) -> dict:
    last = order.status.history[-1]
    data = {
        "order_id": order.id,
        "order_number": order.order_number,
        "pharmacy_id": order.pharmacy_id,
        "inventory_id": order.inventory_id,
        "status": order.status.current.value,
        "note": last.note,
        "updated_by": last.updated_by,
        "total": str(order.pricing.total),
        "timestamp": last.timestamp.isoformat(),
    }
    if previous_status is not None:
        data["previous_status"] = previous_status.value
    return data


async def record_order_event(uow, event_type: str, order: Order, previous_status: Optional[OrderStatus] = None) -> str:
    """Событие пишется в outbox в той же транзакции, что и изменение заказа"""
    return await uow.outbox.create(
        event_type=event_type,
        event_data=order_event_data(order, previous_status),
        order_id=order.id,
    )


class OrderNotifier:
    """Уведомления участникам заказа. Ошибка отправки не ломает операцию."""

    def __init__(self, notifications_service: Optional[NotificationsService]):
        self._notifications = notifications_service

    async def __call__(self, order: Order, user_id: str, message: str, event_type: str) -> bool:
        if self._notifications is None:
            return False
        try:
            sent = await self._notifications.send(
                message=message,
                reference_id=order.id,
                idempotency_key=f"{event_type}_{order.id}_{len(order.status.history)}",
                user_id=user_id,
            )
        except Exception as e:
            logger.error(f"Ошибка отправки уведомления '{event_type}' для {order.id}: {e}")
            return False

        if sent:
            logger.info(f"Отправлено уведомление '{event_type}' для {order.id}")
        else:
            logger.info(f"Не отправлено уведомление '{event_type}' для {order.id}")
        return sent

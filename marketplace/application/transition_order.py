import logging
from typing import Optional

from marketplace.domain.models import Order, OrderStatus, STOCK_RESTORING_STATUSES, utcnow
from marketplace.domain.exceptions import InvalidTransitionError
from marketplace.application.stock import restore_stock
from marketplace.application.events import EVENT_BY_STATUS, ORDER_STATUS_CHANGED, record_order_event

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: "подтвержден складом",
    OrderStatus.PROCESSING: "собирается",
    OrderStatus.SHIPPED: "отправлен в доставку",
    OrderStatus.DELIVERED: "доставлен",
    OrderStatus.CANCELLED: "отменен",
    OrderStatus.REJECTED: "отклонен складом",
}


def status_message(order: Order) -> str:
    text = f"Ваш заказ {order.order_number} {STATUS_MESSAGES.get(order.status.current, order.status.current.value)}"
    note = order.status.history[-1].note
    return f"{text}. Причина: {note}" if note and order.status.current in STOCK_RESTORING_STATUSES else text


async def transition_order(uow, order: Order, target, note: Optional[str], actor_id: str) -> OrderStatus:
    """Переход статуса вместе с побочными эффектами в рамках одной транзакции.

    Возврат остатков при отмене/отклонении и сохранение статуса коммитятся
    вместе, поэтому падение между ними не теряет возврат.
    """
    now = utcnow()
    previous = order.apply_transition(target, note, actor_id, now)

    if order.status.current == OrderStatus.DELIVERED:
        order.mark_delivered(now)

    if order.status.current in STOCK_RESTORING_STATUSES:
        await restore_stock(uow.drugs, order.lines)

    saved = await uow.orders.save_transition(order, expected_status=previous)
    if not saved:
        logger.warning(f"Заказ {order.id} уже не в статусе {previous.value}, переход в {order.status.current.value} отклонен")
        raise InvalidTransitionError(
            previous.value,
            order.status.current.value,
            f"Статус заказа {order.id} изменен параллельно, повторите запрос",
        )

    event_type = EVENT_BY_STATUS.get(order.status.current, ORDER_STATUS_CHANGED)
    await record_order_event(uow, event_type, order, previous)
    logger.info(f"Заказ {order.id}: {previous.value} -> {order.status.current.value} ({actor_id})")
    return previous

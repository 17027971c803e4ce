from typing import List, Optional

from marketplace.domain.models import Order, OrderStatus, Actor, UserRole
from marketplace.domain.exceptions import OrderNotFoundError, ForbiddenError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, requester: Actor) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            if not order.is_party(requester.id):
                raise ForbiddenError(f"Нет доступа к заказу {order_id}")
            return order


class ListOrdersUseCase:
    """Заказы аптеки или склада, новые первыми. Администратор видит все заказы."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self, requester: Actor, status: Optional[OrderStatus] = None, limit: int = 50, offset: int = 0
    ) -> List[Order]:
        async with self._uow() as uow:
            if requester.role == UserRole.ADMIN:
                return await uow.orders.list_for(status=status, limit=limit, offset=offset)
            if requester.role == UserRole.INVENTORY:
                return await uow.orders.list_for(inventory_id=requester.id, status=status, limit=limit, offset=offset)
            return await uow.orders.list_for(pharmacy_id=requester.id, status=status, limit=limit, offset=offset)

import logging
from datetime import timedelta
from typing import Iterable

from marketplace.domain.models import OrderStatus, TERMINAL_STATUSES, utcnow

logger = logging.getLogger(__name__)


class CleanupOrdersUseCase:
    """Удаляет завершенные заказы старше срока хранения"""

    def __init__(self, unit_of_work, retention_days: int, statuses: Iterable[OrderStatus]):
        statuses = frozenset(OrderStatus(status) for status in statuses)
        if not statuses <= TERMINAL_STATUSES:
            raise ValueError(f"Удалять можно только завершенные заказы, получено: {sorted(s.value for s in statuses)}")
        self._uow = unit_of_work
        self._retention = timedelta(days=retention_days)
        self._statuses = statuses

    async def __call__(self) -> int:
        cutoff = utcnow() - self._retention
        async with self._uow() as uow:
            deleted = await uow.orders.delete_terminal_before(self._statuses, cutoff)
            await uow.commit()
        logger.info(f"Удалено {deleted} старых заказов (до {cutoff.isoformat()})")
        return deleted

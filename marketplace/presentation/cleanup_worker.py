import asyncio
import logging

from marketplace.database import AsyncSessionLocal
from marketplace.infrastructure.unit_of_work import UnitOfWork
from marketplace.application.cleanup_orders import CleanupOrdersUseCase
from marketplace.config import settings

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def cleanup_worker():
    """Ежедневная очистка отмененных и отклоненных заказов"""
    logger.info(f"Cleanup worker запущен, срок хранения {settings.ORDER_RETENTION_DAYS} дн.")

    use_case = CleanupOrdersUseCase(
        unit_of_work=UnitOfWork(AsyncSessionLocal),
        retention_days=settings.ORDER_RETENTION_DAYS,
        statuses=settings.cleanup_statuses
    )

    while True:
        try:
            await use_case()
        except Exception as e:
            logger.error(f"Ошибка в cleanup worker: {e}", exc_info=True)

        await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)


async def main():
    await cleanup_worker()


if __name__ == "__main__":
    asyncio.run(main())

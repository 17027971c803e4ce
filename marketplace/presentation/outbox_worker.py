import asyncio
import logging

from marketplace.database import AsyncSessionLocal
from marketplace.infrastructure.unit_of_work import UnitOfWork
from marketplace.infrastructure.kafka_producer import KafkaProducerClient
from marketplace.application.process_outbox import ProcessOutboxEventsUseCase
from marketplace.config import settings

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def outbox_worker(poll_interval: float = 3.0):
    """Worker для публикации событий заказов из outbox"""
    logger.info("Outbox worker запущен")

    kafka_producer = KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.ORDER_EVENTS_TOPIC)
    await kafka_producer.start()
    use_case = ProcessOutboxEventsUseCase(
        unit_of_work=UnitOfWork(AsyncSessionLocal),
        event_publisher=kafka_producer
    )

    try:
        while True:
            try:
                processed = await use_case(limit=settings.OUTBOX_BATCH_SIZE)
                if processed:
                    logger.info(f"Опубликовано {processed} outbox events")

                await asyncio.sleep(poll_interval)

            except Exception as e:
                logger.error(f"Ошибка в outbox worker: {e}", exc_info=True)
                await asyncio.sleep(10)
    finally:
        await kafka_producer.stop()


async def main():
    await outbox_worker()


if __name__ == "__main__":
    asyncio.run(main())

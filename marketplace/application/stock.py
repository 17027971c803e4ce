import logging
from typing import List

from marketplace.domain.models import Drug, OrderLine
from marketplace.domain.exceptions import StockUnavailableError, UnavailableItem
from marketplace.application.interfaces import DrugRepository

logger = logging.getLogger(__name__)


def find_unavailable(lines: List[OrderLine], drugs: dict[str, Drug]) -> List[UnavailableItem]:
    """Предварительная проверка остатков. Окончательное решение за условным списанием."""
    unavailable = []
    for line in lines:
        drug = drugs.get(line.drug_id)
        available = drug.stock if drug else 0
        if line.total_delivered > available:
            unavailable.append(UnavailableItem(line.drug_id, line.drug_name, line.total_delivered, available))
    return unavailable


async def reserve_stock(drugs: DrugRepository, lines: List[OrderLine]) -> None:
    """Списывает total_delivered по каждой позиции. Все или ничего."""
    applied: List[OrderLine] = []
    for line in lines:
        if await drugs.decrement_stock(line.drug_id, line.total_delivered):
            applied.append(line)
            continue

        logger.warning(f"Не удалось списать {line.total_delivered} ед. {line.drug_id}, откат {len(applied)} списаний")
        for done in reversed(applied):
            await drugs.increment_stock(done.drug_id, done.total_delivered)

        current = await drugs.get_by_id(line.drug_id)
        raise StockUnavailableError([
            UnavailableItem(line.drug_id, line.drug_name, line.total_delivered, current.stock if current else 0)
        ])


async def restore_stock(drugs: DrugRepository, lines: List[OrderLine]) -> None:
    """Возвращает на склад ровно то, что было списано при оформлении, включая бесплатные единицы"""
    for line in lines:
        await drugs.increment_stock(line.drug_id, line.total_delivered)
    logger.info(f"Возвращено на склад {len(lines)} позиций")

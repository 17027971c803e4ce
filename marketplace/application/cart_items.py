import logging
import uuid
from pydantic import BaseModel, Field

from marketplace.domain.models import Cart, Drug, utcnow
from marketplace.domain.exceptions import (
    CartNotFoundError, CartConflictError, DrugNotFoundError, OutOfStockError, OwnDrugError
)
from marketplace.domain.pricing import build_cart_line, calculate_promotional_items

logger = logging.getLogger(__name__)


class CartItemDTO(BaseModel):
    pharmacy_id: str
    drug_id: str
    quantity: int = Field(ge=1)


async def _load_drug(uow, drug_id: str, pharmacy_id: str) -> Drug:
    drug = await uow.drugs.get_by_id(drug_id)
    if not drug:
        raise DrugNotFoundError(f"Лекарство {drug_id} не найдено")
    if drug.inventory_id == pharmacy_id:
        raise OwnDrugError("Нельзя добавить в корзину собственное лекарство")
    if drug.stock <= 0:
        raise OutOfStockError(available=0, required=1)
    return drug


def _ensure_available(drug: Drug, quantity: int) -> None:
    """С учетом акции со склада уйдет total_delivered единиц"""
    breakdown = calculate_promotional_items(drug.promotion, quantity)
    if breakdown.total_delivered > drug.stock:
        raise OutOfStockError(available=drug.stock, required=breakdown.total_delivered)


async def _save(uow, cart: Cart) -> None:
    if not await uow.carts.save(cart):
        raise CartConflictError(f"Корзина {cart.id} изменена параллельным запросом, повторите")


class AddLineItemUseCase:
    """Добавление лекарства в корзину. Корзина создается при первом добавлении."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, data: CartItemDTO) -> Cart:
        async with self._uow() as uow:
            drug = await _load_drug(uow, data.drug_id, data.pharmacy_id)

            now = utcnow()
            cart = await uow.carts.get_by_pharmacy(data.pharmacy_id)
            if cart is None:
                cart = Cart(id=str(uuid.uuid4()), pharmacy_id=data.pharmacy_id, created_at=now, updated_at=now)
                logger.info(f"Создана корзина {cart.id} для аптеки {data.pharmacy_id}")

            # Повторное добавление суммирует количество, акция пересчитывается на итог
            quantity = cart.quantity_of(drug.id) + data.quantity
            _ensure_available(drug, quantity)

            cart.put_line(drug.inventory_id, build_cart_line(drug, quantity))
            cart.updated_at = now
            await _save(uow, cart)
            await uow.commit()

        logger.info(f"В корзину {cart.id} добавлено {data.quantity} ед. {drug.id}")
        return cart


class UpdateLineItemQuantityUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, data: CartItemDTO) -> Cart:
        async with self._uow() as uow:
            cart = await uow.carts.get_by_pharmacy(data.pharmacy_id)
            if not cart or not cart.find_line(data.drug_id):
                raise CartNotFoundError(f"Лекарства {data.drug_id} нет в корзине")

            drug = await _load_drug(uow, data.drug_id, data.pharmacy_id)
            _ensure_available(drug, data.quantity)

            cart.put_line(drug.inventory_id, build_cart_line(drug, data.quantity))
            cart.updated_at = utcnow()
            await _save(uow, cart)
            await uow.commit()
        return cart

import logging
from typing import Optional

from marketplace.domain.models import Cart, utcnow
from marketplace.domain.exceptions import CartNotFoundError, CartConflictError

logger = logging.getLogger(__name__)


def _conflict(cart: Cart) -> CartConflictError:
    return CartConflictError(f"Корзина {cart.id} изменена параллельным запросом, повторите")


async def _save_or_delete(uow, cart: Cart) -> Optional[Cart]:
    if cart.is_empty:
        if not await uow.carts.delete(cart):
            raise _conflict(cart)
        logger.info(f"Корзина {cart.id} пуста и удалена")
        return None
    cart.updated_at = utcnow()
    if not await uow.carts.save(cart):
        raise _conflict(cart)
    return cart


class GetCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, pharmacy_id: str) -> Cart:
        async with self._uow() as uow:
            cart = await uow.carts.get_by_pharmacy(pharmacy_id)
            if not cart:
                raise CartNotFoundError(f"Корзина аптеки {pharmacy_id} не найдена")
            return cart


class RemoveLineItemUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, pharmacy_id: str, drug_id: str) -> Optional[Cart]:
        """Возвращает корзину или None, если она опустела и удалена"""
        async with self._uow() as uow:
            cart = await uow.carts.get_by_pharmacy(pharmacy_id)
            if not cart or not cart.remove_line(drug_id):
                raise CartNotFoundError(f"Лекарства {drug_id} нет в корзине")
            result = await _save_or_delete(uow, cart)
            await uow.commit()
        return result


class RemoveInventoryGroupUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, pharmacy_id: str, inventory_id: str) -> Optional[Cart]:
        """Возвращает корзину или None, если она опустела и удалена"""
        async with self._uow() as uow:
            cart = await uow.carts.get_by_pharmacy(pharmacy_id)
            if not cart or not cart.remove_group(inventory_id):
                raise CartNotFoundError(f"Склада {inventory_id} нет в корзине")
            result = await _save_or_delete(uow, cart)
            await uow.commit()
        logger.info(f"Склад {inventory_id} удален из корзины аптеки {pharmacy_id}")
        return result


class ClearCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, pharmacy_id: str) -> None:
        async with self._uow() as uow:
            cart = await uow.carts.get_by_pharmacy(pharmacy_id)
            if cart:
                if not await uow.carts.delete(cart):
                    raise _conflict(cart)
                await uow.commit()
                logger.info(f"Корзина {cart.id} очищена")

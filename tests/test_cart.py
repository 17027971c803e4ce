import asyncio
from decimal import Decimal

import pytest

from marketplace.domain.exceptions import (
    CartNotFoundError, CartConflictError, DrugNotFoundError, OutOfStockError, OwnDrugError
)
from marketplace.application.cart_items import UpdateLineItemQuantityUseCase, CartItemDTO
from marketplace.application.manage_cart import (
    GetCartUseCase, RemoveLineItemUseCase, RemoveInventoryGroupUseCase, ClearCartUseCase
)

from fakes import make_drug, buy_get, PHARMACY_ID, INVENTORY_ID, OTHER_INVENTORY_ID


async def test_first_add_creates_cart(store, drug, add_to_cart):
    cart = await add_to_cart(drug.id, 3)

    assert store.carts[cart.id].pharmacy_id == PHARMACY_ID
    assert cart.total_cart_price == Decimal("300")
    assert cart.total_price_after_discount == Decimal("300")
    assert cart.find_group(INVENTORY_ID).lines[0].quantity == 3
    # Добавление в корзину не резервирует остаток
    assert store.stock(drug.id) == 5


async def test_adding_same_drug_merges_quantity(store, drug, add_to_cart):
    await add_to_cart(drug.id, 2)
    cart = await add_to_cart(drug.id, 2)

    assert len(store.carts) == 1
    assert cart.total_items == 1
    assert cart.quantity_of(drug.id) == 4
    assert cart.total_price_after_discount == Decimal("400")


async def test_merged_quantity_checked_against_stock(store, drug, add_to_cart):
    await add_to_cart(drug.id, 3)

    with pytest.raises(OutOfStockError) as exc:
        await add_to_cart(drug.id, 3)

    assert exc.value.available == 5
    assert exc.value.required == 6
    cart = next(iter(store.carts.values()))
    assert cart.quantity_of(drug.id) == 3


async def test_free_items_count_against_stock(store, add_to_cart):
    store.drugs["promo"] = make_drug("promo", stock=12, price="10", promotion=buy_get(3, 1))

    with pytest.raises(OutOfStockError) as exc:
        await add_to_cart("promo", 10)

    assert exc.value.required == 13
    assert store.carts == {}


async def test_promotion_line_in_cart(store, add_to_cart):
    store.drugs["promo"] = make_drug("promo", stock=13, price="10", promotion=buy_get(3, 1))

    cart = await add_to_cart("promo", 10)

    line = cart.find_line("promo")
    assert (line.paid_quantity, line.free_items, line.total_delivered) == (10, 3, 13)
    assert cart.total_price_after_discount == Decimal("100")


async def test_cannot_add_own_drug(store, add_to_cart):
    store.drugs["own"] = make_drug("own", inventory_id=PHARMACY_ID)

    with pytest.raises(OwnDrugError):
        await add_to_cart("own", 1)


async def test_cannot_add_sold_out_drug(store, add_to_cart):
    store.drugs["empty"] = make_drug("empty", stock=0)

    with pytest.raises(OutOfStockError):
        await add_to_cart("empty", 1)
    assert store.carts == {}


async def test_unknown_drug(add_to_cart):
    with pytest.raises(DrugNotFoundError):
        await add_to_cart("missing", 1)


async def test_lines_grouped_by_inventory(store, drug, add_to_cart):
    store.drugs["other"] = make_drug("other", price="7", inventory_id=OTHER_INVENTORY_ID)

    await add_to_cart(drug.id, 1)
    cart = await add_to_cart("other", 2)

    assert {group.inventory_id for group in cart.groups} == {INVENTORY_ID, OTHER_INVENTORY_ID}
    assert cart.total_price_after_discount == Decimal("114")


async def test_update_quantity(store, drug, uow, add_to_cart):
    await add_to_cart(drug.id, 1)

    cart = await UpdateLineItemQuantityUseCase(uow)(CartItemDTO(pharmacy_id=PHARMACY_ID, drug_id=drug.id, quantity=5))

    assert cart.quantity_of(drug.id) == 5
    with pytest.raises(OutOfStockError):
        await UpdateLineItemQuantityUseCase(uow)(CartItemDTO(pharmacy_id=PHARMACY_ID, drug_id=drug.id, quantity=6))
    assert store.carts[cart.id].find_line(drug.id).quantity == 5


async def test_update_quantity_of_absent_line(drug, uow):
    with pytest.raises(CartNotFoundError):
        await UpdateLineItemQuantityUseCase(uow)(CartItemDTO(pharmacy_id=PHARMACY_ID, drug_id=drug.id, quantity=1))


async def test_remove_line_keeps_other_lines(store, drug, uow, add_to_cart):
    store.drugs["other"] = make_drug("other", price="7")
    await add_to_cart(drug.id, 1)
    await add_to_cart("other", 1)

    cart = await RemoveLineItemUseCase(uow)(PHARMACY_ID, drug.id)

    assert cart is not None
    assert cart.find_line(drug.id) is None
    assert cart.total_price_after_discount == Decimal("7")


async def test_removing_last_line_deletes_cart(store, drug, uow, add_to_cart):
    await add_to_cart(drug.id, 1)

    assert await RemoveLineItemUseCase(uow)(PHARMACY_ID, drug.id) is None
    assert store.carts == {}


async def test_remove_inventory_group(store, drug, uow, add_to_cart):
    store.drugs["other"] = make_drug("other", price="7", inventory_id=OTHER_INVENTORY_ID)
    await add_to_cart(drug.id, 1)
    await add_to_cart("other", 1)

    cart = await RemoveInventoryGroupUseCase(uow)(PHARMACY_ID, INVENTORY_ID)
    assert [group.inventory_id for group in cart.groups] == [OTHER_INVENTORY_ID]

    assert await RemoveInventoryGroupUseCase(uow)(PHARMACY_ID, OTHER_INVENTORY_ID) is None
    assert store.carts == {}


async def test_remove_missing_group(drug, uow, add_to_cart):
    await add_to_cart(drug.id, 1)

    with pytest.raises(CartNotFoundError):
        await RemoveInventoryGroupUseCase(uow)(PHARMACY_ID, OTHER_INVENTORY_ID)


async def test_get_and_clear_cart(store, drug, uow, add_to_cart):
    with pytest.raises(CartNotFoundError):
        await GetCartUseCase(uow)(PHARMACY_ID)

    await add_to_cart(drug.id, 2)
    assert (await GetCartUseCase(uow)(PHARMACY_ID)).quantity_of(drug.id) == 2

    await ClearCartUseCase(uow)(PHARMACY_ID)
    assert store.carts == {}


async def test_concurrent_cart_writes_do_not_overwrite(store, drug, uow, add_to_cart):
    cart = await add_to_cart(drug.id, 1)
    update = UpdateLineItemQuantityUseCase(uow)

    results = await asyncio.gather(
        update(CartItemDTO(pharmacy_id=PHARMACY_ID, drug_id=drug.id, quantity=2)),
        update(CartItemDTO(pharmacy_id=PHARMACY_ID, drug_id=drug.id, quantity=3)),
        return_exceptions=True,
    )

    assert isinstance(results[1], CartConflictError)
    stored = store.carts[cart.id]
    assert stored.find_line(drug.id).quantity == results[0].find_line(drug.id).quantity == 2
    assert stored.version == cart.version + 1

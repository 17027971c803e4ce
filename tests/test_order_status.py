import pytest

from marketplace.domain.models import Actor, OrderStatus, PaymentStatus, UserRole
from marketplace.domain.exceptions import ForbiddenError, InvalidTransitionError, OrderNotFoundError
from marketplace.application.events import ORDER_CANCELLED, ORDER_REJECTED, ORDER_STATUS_CHANGED
from marketplace.application.update_order_status import UpdateOrderStatusUseCase
from marketplace.application.cancel_order import CancelOrderUseCase, RejectOrderUseCase
from marketplace.application.get_order import GetOrderUseCase, ListOrdersUseCase

from fakes import make_drug, PHARMACY_ID, OTHER_PHARMACY_ID, INVENTORY_ID, OTHER_INVENTORY_ID

INVENTORY = Actor(id=INVENTORY_ID, role=UserRole.INVENTORY)
PHARMACY = Actor(id=PHARMACY_ID, role=UserRole.PHARMACY)
ADMIN = Actor(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def update_status(uow, notifier):
    return UpdateOrderStatusUseCase(uow, notifier)


async def test_inventory_walks_order_to_delivery(store, drug, place_order, update_status, notifications):
    order = await place_order(drug.id, 2)

    for target in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        order = await update_status(order.id, target, None, INVENTORY)

    stored = store.orders[order.id]
    assert stored.status.current == OrderStatus.DELIVERED
    assert [entry.status for entry in stored.status.history] == [
        OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED
    ]
    assert stored.payment.status == PaymentStatus.PAID
    assert stored.delivery.actual_delivery_date is not None
    # Доставка не возвращает товар
    assert store.stock(drug.id) == 3
    assert [sent["user_id"] for sent in notifications.sent[1:]] == [PHARMACY_ID] * 4
    assert len({sent["idempotency_key"] for sent in notifications.sent}) == 5


async def test_status_change_recorded_in_outbox(store, drug, place_order, update_status):
    order = await place_order(drug.id, 1)

    await update_status(order.id, OrderStatus.CONFIRMED, "принят", INVENTORY)

    event = store.outbox[-1]
    assert event["event_type"] == ORDER_STATUS_CHANGED
    assert event["event_data"]["previous_status"] == "pending"
    assert event["event_data"]["status"] == "confirmed"
    assert event["event_data"]["note"] == "принят"


async def test_admin_may_update_status(store, drug, place_order, update_status):
    order = await place_order(drug.id, 1)

    order = await update_status(order.id, OrderStatus.CONFIRMED, None, ADMIN)

    assert order.status.history[-1].updated_by == ADMIN.id


@pytest.mark.parametrize("actor", [
    PHARMACY,
    Actor(id=OTHER_INVENTORY_ID, role=UserRole.INVENTORY),
    Actor(id=OTHER_PHARMACY_ID, role=UserRole.PHARMACY),
])
async def test_only_order_inventory_updates_status(store, drug, place_order, update_status, actor):
    order = await place_order(drug.id, 1)

    with pytest.raises(ForbiddenError):
        await update_status(order.id, OrderStatus.CONFIRMED, None, actor)

    assert store.orders[order.id].status.current == OrderStatus.PENDING


async def test_invalid_transition_is_rejected(store, drug, place_order, update_status, notifications):
    order = await place_order(drug.id, 1)

    with pytest.raises(InvalidTransitionError):
        await update_status(order.id, OrderStatus.SHIPPED, None, INVENTORY)

    stored = store.orders[order.id]
    assert stored.status.current == OrderStatus.PENDING
    assert len(stored.status.history) == 1
    assert len(store.outbox) == 1
    assert len(notifications.sent) == 1


async def test_unknown_order(update_status):
    with pytest.raises(OrderNotFoundError):
        await update_status("missing", OrderStatus.CONFIRMED, None, INVENTORY)


async def test_inventory_cancel_after_shipping_restores_stock(store, drug, place_order, update_status):
    order = await place_order(drug.id, 3)
    for target in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED):
        await update_status(order.id, target, None, INVENTORY)

    await update_status(order.id, OrderStatus.CANCELLED, "курьер не доехал", INVENTORY)

    assert store.stock(drug.id) == 5
    assert store.outbox[-1]["event_type"] == ORDER_CANCELLED


async def test_terminal_order_cannot_be_cancelled_twice(store, drug, place_order, update_status, uow, notifier):
    order = await place_order(drug.id, 3)
    await CancelOrderUseCase(uow, notifier)(order.id, None, PHARMACY_ID)

    with pytest.raises(InvalidTransitionError):
        await update_status(order.id, OrderStatus.CANCELLED, None, INVENTORY)

    assert store.stock(drug.id) == 5


async def test_pharmacy_cancels_confirmed_order(store, drug, place_order, update_status, uow, notifier, notifications):
    order = await place_order(drug.id, 2)
    await update_status(order.id, OrderStatus.CONFIRMED, None, INVENTORY)

    cancelled = await CancelOrderUseCase(uow, notifier)(order.id, "ошибка в заказе", PHARMACY_ID)

    assert cancelled.status.current == OrderStatus.CANCELLED
    assert cancelled.status.history[-1].note == "ошибка в заказе"
    assert cancelled.status.history[-1].updated_by == PHARMACY_ID
    assert store.stock(drug.id) == 5
    assert notifications.sent[-1]["user_id"] == INVENTORY_ID


async def test_pharmacy_cannot_cancel_processing_order(store, drug, place_order, update_status, uow, notifier):
    order = await place_order(drug.id, 2)
    await update_status(order.id, OrderStatus.CONFIRMED, None, INVENTORY)
    await update_status(order.id, OrderStatus.PROCESSING, None, INVENTORY)

    with pytest.raises(InvalidTransitionError):
        await CancelOrderUseCase(uow, notifier)(order.id, None, PHARMACY_ID)

    assert store.orders[order.id].status.current == OrderStatus.PROCESSING
    assert store.stock(drug.id) == 3


async def test_other_pharmacy_cannot_cancel(store, drug, place_order, uow, notifier):
    order = await place_order(drug.id, 2)

    with pytest.raises(OrderNotFoundError):
        await CancelOrderUseCase(uow, notifier)(order.id, None, OTHER_PHARMACY_ID)

    assert store.stock(drug.id) == 3


async def test_inventory_rejects_pending_order(store, drug, place_order, uow, notifier, notifications):
    order = await place_order(drug.id, 4)

    rejected = await RejectOrderUseCase(uow, notifier)(order.id, "нет водителя", INVENTORY_ID)

    assert rejected.status.current == OrderStatus.REJECTED
    assert store.stock(drug.id) == 5
    assert store.outbox[-1]["event_type"] == ORDER_REJECTED
    assert notifications.sent[-1]["user_id"] == PHARMACY_ID
    assert "нет водителя" in notifications.sent[-1]["message"]


async def test_confirmed_order_cannot_be_rejected(store, drug, place_order, update_status, uow, notifier):
    order = await place_order(drug.id, 4)
    await update_status(order.id, OrderStatus.CONFIRMED, None, INVENTORY)

    with pytest.raises(InvalidTransitionError):
        await RejectOrderUseCase(uow, notifier)(order.id, None, INVENTORY_ID)

    assert store.stock(drug.id) == 1


async def test_concurrent_status_change_wins(store, drug, place_order, update_status):
    order = await place_order(drug.id, 3)

    def pharmacy_cancels_meanwhile(order_id):
        stored = store.orders[order_id]
        stored.apply_transition(OrderStatus.CANCELLED, None, PHARMACY_ID)
        store.drugs[drug.id].stock += 3
        store.after_order_read = None

    store.after_order_read = pharmacy_cancels_meanwhile

    with pytest.raises(InvalidTransitionError):
        await update_status(order.id, OrderStatus.CONFIRMED, None, INVENTORY)

    assert store.orders[order.id].status.current == OrderStatus.CANCELLED
    assert store.stock(drug.id) == 5


async def test_get_order_only_for_parties(drug, place_order, uow):
    order = await place_order(drug.id, 1)
    get_order = GetOrderUseCase(uow)

    assert (await get_order(order.id, PHARMACY)).id == order.id
    assert (await get_order(order.id, INVENTORY)).id == order.id
    with pytest.raises(ForbiddenError):
        await get_order(order.id, Actor(id=OTHER_PHARMACY_ID, role=UserRole.PHARMACY))
    with pytest.raises(OrderNotFoundError):
        await get_order("missing", PHARMACY)


async def test_list_orders_by_role(store, drug, place_order, update_status, uow):
    first = await place_order(drug.id, 1)
    second = await place_order(drug.id, 1, pharmacy_id=OTHER_PHARMACY_ID)
    await update_status(second.id, OrderStatus.CONFIRMED, None, INVENTORY)
    list_orders = ListOrdersUseCase(uow)

    assert [o.id for o in await list_orders(PHARMACY)] == [first.id]
    assert {o.id for o in await list_orders(INVENTORY)} == {first.id, second.id}
    assert [o.id for o in await list_orders(INVENTORY, status=OrderStatus.CONFIRMED)] == [second.id]
    assert await list_orders(Actor(id=OTHER_INVENTORY_ID, role=UserRole.INVENTORY)) == []


async def test_admin_lists_all_orders(store, drug, place_order, update_status, uow):
    store.drugs["other"] = make_drug("other", price="7", inventory_id=OTHER_INVENTORY_ID)
    first = await place_order(drug.id, 1)
    second = await place_order("other", 2, pharmacy_id=OTHER_PHARMACY_ID, inventory_id=OTHER_INVENTORY_ID)
    await update_status(second.id, OrderStatus.CONFIRMED, None, ADMIN)
    list_orders = ListOrdersUseCase(uow)

    assert {o.id for o in await list_orders(ADMIN)} == {first.id, second.id}
    assert [o.id for o in await list_orders(ADMIN, status=OrderStatus.CONFIRMED)] == [second.id]
    assert len(await list_orders(ADMIN, limit=1)) == 1

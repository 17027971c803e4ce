import pytest

from marketplace.application.events import OrderNotifier
from marketplace.application.cart_items import AddLineItemUseCase, CartItemDTO
from marketplace.application.create_order import CreateOrderUseCase, CreateOrderDTO

from fakes import InMemoryStore, FakeUnitOfWork, RecordingNotifications, make_drug, seed_users, PHARMACY_ID, INVENTORY_ID


@pytest.fixture
def store():
    store = InMemoryStore()
    seed_users(store)
    return store


@pytest.fixture
def uow(store):
    return FakeUnitOfWork(store)


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def notifier(notifications):
    return OrderNotifier(notifications)


@pytest.fixture
def drug(store):
    """Лекарство склада: остаток 5, цена 100"""
    drug = make_drug("drug-1", stock=5, price="100")
    store.drugs[drug.id] = drug
    return drug


@pytest.fixture
def add_to_cart(uow):
    async def _add(drug_id, quantity, pharmacy_id=PHARMACY_ID):
        return await AddLineItemUseCase(uow)(CartItemDTO(pharmacy_id=pharmacy_id, drug_id=drug_id, quantity=quantity))
    return _add


@pytest.fixture
def place_order(uow, notifier, add_to_cart):
    """Корзина с одним лекарством и оформленный по ней заказ"""
    async def _place(drug_id, quantity, pharmacy_id=PHARMACY_ID, inventory_id=INVENTORY_ID):
        cart = await add_to_cart(drug_id, quantity, pharmacy_id)
        return await CreateOrderUseCase(uow, notifier)(
            CreateOrderDTO(pharmacy_id=pharmacy_id, cart_id=cart.id, inventory_id=inventory_id)
        )
    return _place

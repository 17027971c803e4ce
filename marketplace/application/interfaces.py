from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Iterable
from marketplace.domain.models import Order, OrderStatus, Cart, Drug, UserProfile


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_for(
        self,
        pharmacy_id: Optional[str] = None,
        inventory_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def save_transition(self, order: Order, expected_status: OrderStatus) -> bool:
        """Сохраняет новый статус, только если в БД все еще expected_status"""
        pass

    @abstractmethod
    async def delete_terminal_before(self, statuses: Iterable[OrderStatus], cutoff: datetime) -> int:
        pass


class CartRepository(ABC):
    @abstractmethod
    async def get_by_id(self, cart_id: str) -> Optional[Cart]:
        pass

    @abstractmethod
    async def get_by_pharmacy(self, pharmacy_id: str) -> Optional[Cart]:
        pass

    @abstractmethod
    async def save(self, cart: Cart) -> bool:
        """Новую корзину (version 0) вставляет, существующую обновляет, только если в БД та же версия"""
        pass

    @abstractmethod
    async def delete(self, cart: Cart) -> bool:
        """Удаляет корзину, только если в БД та же версия"""
        pass


class DrugRepository(ABC):
    @abstractmethod
    async def get_by_id(self, drug_id: str) -> Optional[Drug]:
        pass

    @abstractmethod
    async def get_many(self, drug_ids: List[str]) -> dict[str, Drug]:
        pass

    @abstractmethod
    async def decrement_stock(self, drug_id: str, quantity: int) -> bool:
        """Атомарно уменьшает остаток, если stock >= quantity"""
        pass

    @abstractmethod
    async def increment_stock(self, drug_id: str, quantity: int) -> None:
        pass


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def carts(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def drugs(self) -> DrugRepository:
        pass

    @property
    @abstractmethod
    def users(self) -> UserRepository:
        pass

    @property
    @abstractmethod
    def outbox(self) -> OutboxRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class NotificationsService(ABC):
    @abstractmethod
    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, payload: dict, key: str) -> bool:
        pass

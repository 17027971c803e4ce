class DomainException(Exception):
    pass


class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    pass


class CartNotFoundError(NotFoundError):
    pass


class DrugNotFoundError(NotFoundError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class ForbiddenError(DomainException):
    pass


class InvalidTransitionError(DomainException):
    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Нельзя перевести заказ из {current} в {target}")


class UnavailableItem:
    """Позиция, которой не хватает на складе"""

    def __init__(self, drug_id: str, name: str, requested: int, available: int):
        self.drug_id = drug_id
        self.name = name
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        return {
            "drug_id": self.drug_id,
            "name": self.name,
            "requested": self.requested,
            "available": self.available,
        }

    def __eq__(self, other):
        if not isinstance(other, UnavailableItem):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"UnavailableItem({self.drug_id!r}, requested={self.requested}, available={self.available})"


class StockUnavailableError(DomainException):
    def __init__(self, items: list[UnavailableItem]):
        self.items = items
        names = ", ".join(item.name for item in items)
        super().__init__(f"Недостаточно товара на складе: {names}")


class OutOfStockError(DomainException):
    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(f"Недостаточно товара. Доступно: {available}, требуется: {required}")


class OwnDrugError(DomainException):
    pass


class CartConflictError(DomainException):
    pass

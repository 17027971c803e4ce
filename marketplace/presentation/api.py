import logging
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from marketplace.domain.models import Actor, UserRole, OrderStatus
from marketplace.domain.exceptions import (
    NotFoundError, ForbiddenError, InvalidTransitionError, StockUnavailableError, OutOfStockError, OwnDrugError,
    CartConflictError
)
from marketplace.presentation.schemas import (
    AddCartItemRequest, UpdateCartItemRequest, CreateOrderRequest, UpdateOrderStatusRequest, ReasonRequest,
    CartResponse, OrderResponse, MessageResponse, ErrorResponse, StockErrorResponse
)
from marketplace.application.events import OrderNotifier
from marketplace.application.cart_items import AddLineItemUseCase, UpdateLineItemQuantityUseCase, CartItemDTO
from marketplace.application.manage_cart import (
    GetCartUseCase, RemoveLineItemUseCase, RemoveInventoryGroupUseCase, ClearCartUseCase
)
from marketplace.application.create_order import CreateOrderUseCase, CreateOrderDTO
from marketplace.application.get_order import GetOrderUseCase, ListOrdersUseCase
from marketplace.application.update_order_status import UpdateOrderStatusUseCase
from marketplace.application.cancel_order import CancelOrderUseCase, RejectOrderUseCase
from marketplace.infrastructure.unit_of_work import UnitOfWork
from marketplace.infrastructure.http_clients import HTTPNotificationsClient
from marketplace.database import AsyncSessionLocal
from marketplace.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

CART_DELETED = "Корзина пуста и удалена"


# Зависимости: переопределяются в тестах
def get_unit_of_work():
    return UnitOfWork(AsyncSessionLocal)


def get_notifier():
    client = HTTPNotificationsClient(
        settings.NOTIFICATIONS_BASE_URL,
        settings.API_TOKEN,
        max_retries=settings.NOTIFICATIONS_MAX_RETRIES,
        retry_delay=settings.NOTIFICATIONS_RETRY_DELAY
    )
    return OrderNotifier(client)


def get_actor(x_user_id: str = Header(...), x_user_role: UserRole = Header(...)) -> Actor:
    """Пользователь, проверенный шлюзом авторизации"""
    return Actor(id=x_user_id, role=x_user_role)


def get_pharmacy(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role != UserRole.PHARMACY:
        raise HTTPException(status_code=403, detail="Действие доступно только аптеке")
    return actor


def get_inventory(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role != UserRole.INVENTORY:
        raise HTTPException(status_code=403, detail="Действие доступно только складу")
    return actor


def _stock_error(e: StockUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"message": str(e), "items": [item.to_dict() for item in e.items]}
    )


def _cart_or_message(cart) -> Union[CartResponse, MessageResponse]:
    if cart is None:
        return MessageResponse(message=CART_DELETED)
    return CartResponse.from_domain(cart)


# Корзина

@router.get("/cart", response_model=CartResponse, responses={404: {"model": ErrorResponse}})
async def get_cart(actor: Actor = Depends(get_pharmacy), uow=Depends(get_unit_of_work)):
    """Корзина текущей аптеки"""
    try:
        cart = await GetCartUseCase(uow)(actor.id)
        return CartResponse.from_domain(cart)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/cart/items",
    response_model=CartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def add_cart_item(
    request: AddCartItemRequest,
    actor: Actor = Depends(get_pharmacy),
    uow=Depends(get_unit_of_work)
):
    """Добавить лекарство в корзину"""
    try:
        dto = CartItemDTO(pharmacy_id=actor.id, drug_id=request.drug_id, quantity=request.quantity)
        cart = await AddLineItemUseCase(uow)(dto)
        return CartResponse.from_domain(cart)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (OutOfStockError, OwnDrugError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put(
    "/cart/items/{drug_id}",
    response_model=CartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_cart_item(
    drug_id: str,
    request: UpdateCartItemRequest,
    actor: Actor = Depends(get_pharmacy),
    uow=Depends(get_unit_of_work)
):
    """Изменить количество лекарства в корзине"""
    try:
        dto = CartItemDTO(pharmacy_id=actor.id, drug_id=drug_id, quantity=request.quantity)
        cart = await UpdateLineItemQuantityUseCase(uow)(dto)
        return CartResponse.from_domain(cart)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (OutOfStockError, OwnDrugError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete(
    "/cart/items/{drug_id}",
    response_model=Union[CartResponse, MessageResponse],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def remove_cart_item(drug_id: str, actor: Actor = Depends(get_pharmacy), uow=Depends(get_unit_of_work)):
    """Удалить лекарство из корзины"""
    try:
        cart = await RemoveLineItemUseCase(uow)(actor.id, drug_id)
        return _cart_or_message(cart)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete(
    "/cart/inventories/{inventory_id}",
    response_model=Union[CartResponse, MessageResponse],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def remove_cart_inventory(
    inventory_id: str,
    actor: Actor = Depends(get_pharmacy),
    uow=Depends(get_unit_of_work)
):
    """Удалить из корзины все позиции склада"""
    try:
        cart = await RemoveInventoryGroupUseCase(uow)(actor.id, inventory_id)
        return _cart_or_message(cart)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/cart", response_model=MessageResponse)
async def clear_cart(actor: Actor = Depends(get_pharmacy), uow=Depends(get_unit_of_work)):
    """Очистить корзину"""
    try:
        await ClearCartUseCase(uow)(actor.id)
    except CartConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return MessageResponse(message="Корзина очищена")


# Заказы

@router.post(
    "/orders/cart/{cart_id}",
    response_model=OrderResponse,
    responses={400: {"model": StockErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    cart_id: str,
    request: CreateOrderRequest,
    actor: Actor = Depends(get_pharmacy),
    uow=Depends(get_unit_of_work),
    notifier: OrderNotifier = Depends(get_notifier)
):
    """Оформить заказ по группе корзины одного склада"""
    try:
        dto = CreateOrderDTO(
            pharmacy_id=actor.id,
            cart_id=cart_id,
            inventory_id=request.inventory_id,
            payment_method=request.payment_method
        )
        order = await CreateOrderUseCase(uow, notifier)(dto)
        return OrderResponse.from_domain(order)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StockUnavailableError as e:
        raise _stock_error(e)
    except Exception as e:
        logger.error(f"Ошибка создания заказа из корзины {cart_id}: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=f"Service unavailable: {str(e)}")


@router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[OrderStatus] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    uow=Depends(get_unit_of_work)
):
    """Заказы текущей аптеки или склада"""
    orders = await ListOrdersUseCase(uow)(actor, status=status, limit=limit, offset=offset)
    return [OrderResponse.from_domain(order) for order in orders]


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_order(order_id: str, actor: Actor = Depends(get_actor), uow=Depends(get_unit_of_work)):
    """Получить заказ по ID"""
    try:
        order = await GetOrderUseCase(uow)(order_id, actor)
        return OrderResponse.from_domain(order)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Заказ не найден")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    actor: Actor = Depends(get_actor),
    uow=Depends(get_unit_of_work),
    notifier: OrderNotifier = Depends(get_notifier)
):
    """Сменить статус заказа"""
    try:
        order = await UpdateOrderStatusUseCase(uow, notifier)(order_id, request.status, request.note, actor)
        return OrderResponse.from_domain(order)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Заказ не найден")
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def cancel_order(
    order_id: str,
    request: ReasonRequest,
    actor: Actor = Depends(get_pharmacy),
    uow=Depends(get_unit_of_work),
    notifier: OrderNotifier = Depends(get_notifier)
):
    """Отмена заказа аптекой"""
    try:
        order = await CancelOrderUseCase(uow, notifier)(order_id, request.reason, actor.id)
        return OrderResponse.from_domain(order)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Заказ не найден или не может быть отменен")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch(
    "/orders/{order_id}/reject",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def reject_order(
    order_id: str,
    request: ReasonRequest,
    actor: Actor = Depends(get_inventory),
    uow=Depends(get_unit_of_work),
    notifier: OrderNotifier = Depends(get_notifier)
):
    """Отклонение заказа складом"""
    try:
        order = await RejectOrderUseCase(uow, notifier)(order_id, request.reason, actor.id)
        return OrderResponse.from_domain(order)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Заказ не найден или не может быть отклонен")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

"""
Checkout API endpoints.

Handles:
- Pending order creation with inventory reservation (guest or signed-in)
- Order lookup, including ticket codes once paid
- Cancellation of pending orders
"""
import uuid
import logging

from fastapi import APIRouter, HTTPException, status

from luxetix.api.deps import DB, SettingsDep, OptionalUser
from luxetix.schemas.checkout import CheckoutOrderCreate, OrderResponse
from luxetix.services.order_service import OrderService, CheckoutError

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Checkout"])


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a pending ticket order",
    description="Reserve tickets and create a pending order. Quantity is clamped to availability."
)
async def create_order(
    data: CheckoutOrderCreate,
    db: DB,
    settings: SettingsDep,
    user: OptionalUser,
):
    service = OrderService(db, settings)
    try:
        order = await service.create_order(data, user_id=user.id if user else None)
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return OrderResponse.model_validate(order)


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get order status and tickets",
)
async def get_order(
    order_id: uuid.UUID,
    db: DB,
    settings: SettingsDep,
    user: OptionalUser,
):
    service = OrderService(db, settings)
    try:
        order = await service.get_order_for_user(order_id, user_id=user.id if user else None)
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel a pending order",
    description="Cancel a pending order and return its tickets to inventory."
)
async def cancel_order(
    order_id: uuid.UUID,
    db: DB,
    settings: SettingsDep,
    user: OptionalUser,
):
    service = OrderService(db, settings)
    try:
        order = await service.cancel_order(order_id, user_id=user.id if user else None)
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return OrderResponse.model_validate(order)

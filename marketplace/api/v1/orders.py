import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.api.deps import get_current_user
from marketplace.models.account import User
from marketplace.models.order import Order
from marketplace.schemas.order import (
    CheckoutRequest,
    OrderDetailResponse,
    OrderStatusUpdate,
    OrderStatusUpdateResponse,
    PayForOrderRequest,
)
from marketplace.schemas.response import SuccessResponse
from marketplace.services.order_service import checkout, get_order_for_user, update_order_status
from marketplace.services.order_state import TransitionOutcome
from marketplace.services.payment_service import initialize_payment

router = APIRouter()
log = logging.getLogger("uvicorn")


def _order_detail(order: Order) -> dict:
    return OrderDetailResponse(
        id=order.id,
        status=order.status,
        payment_method=order.payment_method,
        delivery_fee=order.delivery_fee,
        service_fee=order.service_fee,
        sub_total=order.sub_total,
        total=order.total,
        delivery_address=order.delivery_address,
        delivery_date=order.delivery_date,
        dispatch_rider_note=order.dispatch_rider_note,
        items=order.items,
        kitchen_id=order.kitchen_id,
        owner_id=order.owner_id,
        created_at=order.created_at,
        updated_at=order.updated_at,
    ).model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def checkout_endpoint(request_data: CheckoutRequest, user: User = Depends(get_current_user)):
    """
    Checks out a cart into a new order awaiting payment.
    """
    order = await checkout(user, request_data)
    return SuccessResponse(data=_order_detail(order))


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: UUID, user: User = Depends(get_current_user)):
    """Fetches details for a specific order."""
    order = await get_order_for_user(order_id, user)
    return SuccessResponse(data=_order_detail(order))


@router.post("/{order_id}/pay", response_model=SuccessResponse)
async def pay_for_order_endpoint(
    order_id: UUID,
    payload: PayForOrderRequest,
    user: User = Depends(get_current_user),
):
    """
    Pays for an order from the wallet, or returns a hosted payment URL for online payment.
    """
    details = await initialize_payment(order_id, user, payload.with_)
    log.info(f"Payment for order {order_id} initialized with {payload.with_.value}.")
    return SuccessResponse(data=details)


@router.put("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(
    order_id: UUID,
    payload: OrderStatusUpdate,
    user: User = Depends(get_current_user),
):
    """
    Updates status (e.g. 'PREPARING', 'IN_TRANSIT', 'DELIVERED', 'CANCELLED').
    """
    outcome = await update_order_status(order_id, payload.status, user, payload.as_kitchen)
    applied = outcome == TransitionOutcome.APPLIED
    if applied:
        message = f"Order status successfully updated to {payload.status.value}"
    else:
        message = f"Order status is already {payload.status.value}"
    data = OrderStatusUpdateResponse(
        order_id=order_id,
        status=payload.status,
        applied=applied,
        message=message,
    ).model_dump(mode="json")
    return SuccessResponse(data=data)

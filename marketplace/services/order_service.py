import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from marketplace.core.errors import (
    InvalidAmount,
    InvalidTransition,
    KitchenNotFound,
    KitchenNotOwner,
    OrderNotFound,
    UserNotKitchenOwner,
    UserNotOwner,
)
from marketplace.events.outbox_utility import ORDER_STATUS_CHANGED, enqueue_notification
from marketplace.models.account import Kitchen, User
from marketplace.models.order import Order, OrderStatus, OrderUpdate
from marketplace.schemas.order import CheckoutRequest
from marketplace.services.order_state import (
    MAX_AMOUNT,
    Actor,
    TransitionOutcome,
    allowed_targets,
    apply_transition,
    ensure_transition,
)
from marketplace.services.wallet_ledger import payout_for_delivery, refund_for_cancellation

log = logging.getLogger(__name__)


async def checkout(owner: User, request: CheckoutRequest) -> Order:
    """
    Creates an order in AWAITING_PAYMENT from the frozen cart lines.

    Prices are taken as given by the cart; totals are fixed here and never
    recomputed afterwards.
    """
    kitchen = await Kitchen.get_or_none(id=request.kitchen_id)
    if not kitchen or not kitchen.is_active:
        raise KitchenNotFound()

    sub_total = sum((item.price * item.quantity for item in request.items), Decimal("0"))
    delivery_fee = Decimal("0")
    service_fee = Decimal("0")
    total = sub_total + delivery_fee + service_fee
    if total > MAX_AMOUNT:
        raise InvalidAmount(f"Order total cannot exceed {MAX_AMOUNT}")

    async with in_transaction() as conn:
        order = await Order.create(
            status=OrderStatus.AWAITING_PAYMENT,
            payment_method=request.payment_method,
            delivery_fee=delivery_fee,
            service_fee=service_fee,
            sub_total=sub_total,
            total=total,
            delivery_address=request.delivery_address,
            delivery_date=request.delivery_date,
            dispatch_rider_note=request.dispatch_rider_note,
            items=[
                {"meal_id": str(item.meal_id), "price": str(item.price), "quantity": item.quantity}
                for item in request.items
            ],
            kitchen=kitchen,
            owner=owner,
            using_db=conn,
        )
        await OrderUpdate.create(order=order, status=OrderStatus.AWAITING_PAYMENT, using_db=conn)

    log.info(f"Order {order.id} created for user {owner.id}: total {order.total}")
    return order


async def get_order_for_user(order_id: UUID, user: User) -> Order:
    """Visible to the buyer, the owner of the order's kitchen and admins."""
    order = await Order.get_or_none(id=order_id).prefetch_related("kitchen")
    if not order:
        raise OrderNotFound()
    if order.owner_id != user.id and order.kitchen.owner_id != user.id and not user.is_admin:
        raise UserNotOwner()
    return order


async def _authorize(order: Order, user: User, as_kitchen: bool) -> Actor:
    if as_kitchen:
        kitchen = await Kitchen.get_or_none(owner_id=user.id)
        if not kitchen:
            raise UserNotKitchenOwner()
        if kitchen.id != order.kitchen_id:
            raise KitchenNotOwner()
        return Actor.KITCHEN
    if order.owner_id != user.id:
        raise UserNotOwner()
    return Actor.BUYER


async def update_order_status(
    order_id: UUID,
    new_status: OrderStatus,
    user: User,
    as_kitchen: Optional[bool] = False,
) -> TransitionOutcome:
    """
    Applies a kitchen or buyer status change.

    The status write, the refund or payout it triggers and the notification
    for the other party commit together. A change that was already applied
    by a concurrent or repeated request returns ALREADY_IN_DESIRED_STATE and
    triggers nothing.
    """
    new_status = OrderStatus(new_status)
    order = await Order.get_or_none(id=order_id)
    if not order:
        raise OrderNotFound()

    actor = await _authorize(order, user, bool(as_kitchen))
    if new_status not in allowed_targets(actor):
        raise InvalidTransition(f"Invalid status transition for {actor.value.lower()}: {new_status.value}")

    async with in_transaction() as conn:
        order = await Order.filter(id=order_id).using_db(conn).select_for_update().first()
        if order.status == new_status:
            log.info(f"Order {order.id} is already {new_status.value}.")
            return TransitionOutcome.ALREADY_IN_DESIRED_STATE
        ensure_transition(order.status, new_status, actor)

        outcome = await apply_transition(order, new_status, conn)
        if outcome == TransitionOutcome.ALREADY_IN_DESIRED_STATE:
            return outcome

        if new_status == OrderStatus.CANCELLED:
            await refund_for_cancellation(order, conn)
        elif new_status == OrderStatus.DELIVERED:
            await payout_for_delivery(order, conn)

        if actor == Actor.KITCHEN:
            recipient_id = order.owner_id
        else:
            kitchen = await Kitchen.get(id=order.kitchen_id).using_db(conn)
            recipient_id = kitchen.owner_id
        await enqueue_notification(
            order.id,
            recipient_id,
            ORDER_STATUS_CHANGED,
            {"new_status": new_status.value},
            conn=conn,
        )

    return outcome

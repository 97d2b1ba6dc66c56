"""
Order status state machine.

Every status write goes through `apply_transition`, a conditional update on the
order's current status. Losing a race is reported as ALREADY_IN_DESIRED_STATE
instead of an error so that retried webhooks and client calls stay successful.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from tortoise import timezone

from marketplace.core.config import PAYOUT_DIVISOR
from marketplace.core.errors import InvalidTransition
from marketplace.models.order import Order, OrderStatus, OrderUpdate

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
# Largest value the Decimal(14, 2) money columns hold
MAX_AMOUNT = Decimal("999999999999.99")


class Actor(str, Enum):
    PAYMENT = "PAYMENT"
    KITCHEN = "KITCHEN"
    BUYER = "BUYER"


class TransitionOutcome(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_IN_DESIRED_STATE = "ALREADY_IN_DESIRED_STATE"


# (current, requested) -> actor allowed to request it
TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], Actor] = {
    (OrderStatus.AWAITING_PAYMENT, OrderStatus.AWAITING_ACKNOWLEDGEMENT): Actor.PAYMENT,
    (OrderStatus.AWAITING_ACKNOWLEDGEMENT, OrderStatus.PREPARING): Actor.KITCHEN,
    (OrderStatus.AWAITING_ACKNOWLEDGEMENT, OrderStatus.CANCELLED): Actor.KITCHEN,
    (OrderStatus.PREPARING, OrderStatus.IN_TRANSIT): Actor.KITCHEN,
    (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED): Actor.BUYER,
}


def allowed_targets(actor: Actor) -> FrozenSet[OrderStatus]:
    return frozenset(requested for (_, requested), who in TRANSITIONS.items() if who == actor)


def ensure_transition(current: OrderStatus, requested: OrderStatus, actor: Optional[Actor] = None) -> Actor:
    """Raises InvalidTransition unless (current, requested) is in the table (and belongs to `actor`)."""
    current, requested = OrderStatus(current), OrderStatus(requested)
    owner = TRANSITIONS.get((current, requested))
    if owner is None:
        raise InvalidTransition(f"Cannot move order from {current.value} to {requested.value}")
    if actor is not None and owner != actor:
        raise InvalidTransition(
            f"Invalid status transition for {actor.value.lower()}: {current.value} -> {requested.value}"
        )
    return owner


async def apply_transition(order: Order, requested: OrderStatus, conn: Any) -> TransitionOutcome:
    """
    Compare-and-swap the order's status from its loaded value to `requested`.

    Must run inside the caller's transaction. On success the in-memory order
    and the status history are updated as well.
    """
    current = OrderStatus(order.status)
    ensure_transition(current, requested)

    now = timezone.now()
    rows = await Order.filter(id=order.id, status=current).using_db(conn).update(
        status=requested, updated_at=now
    )
    if not rows:
        log.info(f"Order {order.id} already moved past {current.value}; {requested.value} not re-applied.")
        return TransitionOutcome.ALREADY_IN_DESIRED_STATE

    await OrderUpdate.create(order_id=order.id, status=requested, using_db=conn)
    order.status = requested
    order.updated_at = now
    log.info(f"Status UPDATE: Order {order.id} moved {current.value} -> {requested.value}.")
    return TransitionOutcome.APPLIED


def vendor_payout_amount(total: Decimal) -> Decimal:
    """Vendor share of a delivered order: total / 1.2, rounded half-up to the cent."""
    return (Decimal(total) / PAYOUT_DIVISOR).quantize(CENT, rounding=ROUND_HALF_UP)


def platform_commission(total: Decimal) -> Decimal:
    return Decimal(total) - vendor_payout_amount(total)

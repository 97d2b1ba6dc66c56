from typing import Dict, Any, Optional
from marketplace.models.outbox import OutboxEvent
from uuid import UUID

ORDER_STATUS_CHANGED = "order.status_changed.v1"
ORDER_PAYMENT_CONFIRMED = "order.payment_confirmed.v1"
WALLET_TOPPED_UP = "wallet.topped_up.v1"
BANK_ACCOUNT_ASSIGNED = "wallet.bank_account_assigned.v1"
BANK_ACCOUNT_ASSIGNMENT_FAILED = "wallet.bank_account_assignment_failed.v1"


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: Optional[UUID],
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None
) -> None:
    """
    Creates a new Outbox event record using the provided database connection (transaction).

    CRITICAL: Passing 'conn' ensures the event is created atomically with the business data.
    """
    await OutboxEvent.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        published=False,
        attempts=0,
        using_db=conn
    )


async def enqueue_notification(
    order_id: UUID,
    recipient_id: UUID,
    event_kind: str,
    payload: Dict[str, Any],
    conn: Any = None,
) -> None:
    """Queues notify(order, recipient, event_kind) for the poller."""
    await create_outbox_event(
        aggregate_type="order",
        aggregate_id=order_id,
        event_type=event_kind,
        payload={**payload, "order_id": str(order_id), "recipient_id": str(recipient_id)},
        conn=conn,
    )

import asyncio
import logging
from uuid import UUID

from marketplace.core.config import BATCH_SIZE, MAX_ATTEMPTS, POLLING_INTERVAL
from marketplace.core.db import init_db
from marketplace.events.outbox_utility import (
    BANK_ACCOUNT_ASSIGNED,
    BANK_ACCOUNT_ASSIGNMENT_FAILED,
    ORDER_PAYMENT_CONFIRMED,
    ORDER_STATUS_CHANGED,
    WALLET_TOPPED_UP,
)
from marketplace.models.outbox import OutboxEvent
from marketplace.models.processed_event import ProcessedEvent
from marketplace.services.notification_service import notify

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("outbox_poller")

NOTIFICATION_EVENTS = {
    ORDER_STATUS_CHANGED,
    ORDER_PAYMENT_CONFIRMED,
    WALLET_TOPPED_UP,
    BANK_ACCOUNT_ASSIGNED,
    BANK_ACCOUNT_ASSIGNMENT_FAILED,
}


async def dispatch_event(event: OutboxEvent) -> None:
    """
    Routes an OutboxEvent to the notification trigger.
    Each event id is delivered at most once, even if the poller restarts mid-batch.
    """
    event_type = event.event_type
    event_id_str = str(event.id)
    payload = event.payload

    log.info(f"Poller DISPATCHING: {event_type} (ID: {event.id.hex[:8]}...)")

    if event_type not in NOTIFICATION_EVENTS:
        log.warning(f"No handler found for event type: {event_type}")
        return

    if await ProcessedEvent.filter(event_id=event_id_str).exists():
        log.info(f"Idempotency: Event {event_id_str} already processed.")
        return

    order_id = payload.get("order_id")
    await notify(
        UUID(payload["recipient_id"]),
        event_type,
        payload,
        order_id=UUID(order_id) if order_id else None,
    )
    await ProcessedEvent.create(event_id=event_id_str)


async def poll_outbox_for_new_events() -> int:
    """
    Queries the Outbox table for unpublished events and attempts to dispatch them.
    Returns the number of events published.
    """
    # Select events that haven't been published and haven't exceeded max attempts
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).limit(BATCH_SIZE).order_by('created_at')

    published = 0
    for event in events:
        try:
            # 1. Dispatch the event (calls the notification trigger)
            await dispatch_event(event)

            # 2. Mark the event as published on success
            event.published = True
            await event.save(update_fields=['published'])
            published += 1

        except Exception:
            # 3. Increment attempts on failure and save
            event.attempts += 1
            await event.save(update_fields=['attempts'])
            log.exception(f"Dispatch of event {event.id} failed (attempt {event.attempts}/{MAX_ATTEMPTS}).")
    return published


async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db()
    log.info("--- Outbox Poller Service Started ---")

    while True:
        try:
            await poll_outbox_for_new_events()
        except Exception as e:
            log.error(f"Poller encountered a critical DB error: {e}.")

        await asyncio.sleep(POLLING_INTERVAL)

if __name__ == "__main__":
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")

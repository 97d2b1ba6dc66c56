"""
Notification trigger.

Delivers `notify(order, recipient, event_kind)` calls queued in the outbox.
Transport is a single JSON webhook to an external notification service; with
no URL configured the notification is only logged.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

from marketplace.core import config

log = logging.getLogger(__name__)


async def notify(
    recipient_id: UUID,
    event_kind: str,
    payload: Dict[str, Any],
    order_id: Optional[UUID] = None,
) -> None:
    """
    Send one notification.

    Raises httpx.HTTPError when the notification service is unreachable or
    rejects the request, so the outbox poller can retry the event.
    """
    log.info(f"NOTIFY {recipient_id}: {event_kind} (order {order_id})")
    if not config.NOTIFICATION_WEBHOOK_URL:
        return

    body = {
        "event": event_kind,
        "recipient_id": str(recipient_id),
        "order_id": str(order_id) if order_id else None,
        "data": payload,
    }
    async with httpx.AsyncClient(timeout=5.0) as client:
        response = await client.post(
            config.NOTIFICATION_WEBHOOK_URL,
            json=body,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()

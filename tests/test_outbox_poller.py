from unittest.mock import AsyncMock, patch

import httpx
import pytest

from marketplace.consumers.outbox_poller import poll_outbox_for_new_events
from marketplace.core.config import MAX_ATTEMPTS
from marketplace.events.outbox_utility import ORDER_PAYMENT_CONFIRMED, create_outbox_event
from marketplace.models.order import PaymentMethod
from marketplace.models.outbox import OutboxEvent
from marketplace.models.processed_event import ProcessedEvent
from marketplace.services.payment_service import confirm_order_payment


@pytest.mark.asyncio
@patch("marketplace.consumers.outbox_poller.notify", new_callable=AsyncMock)
async def test_payment_notifications_are_dispatched_once(mock_notify, market, place_order):
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)
    await confirm_order_payment(order.id, 120000)

    published = await poll_outbox_for_new_events()
    again = await poll_outbox_for_new_events()

    assert published == 2
    assert again == 0
    recipients = {call.args[0] for call in mock_notify.await_args_list}
    assert recipients == {market.vendor.id, market.admin.id}
    assert all(call.args[1] == ORDER_PAYMENT_CONFIRMED for call in mock_notify.await_args_list)
    assert all(call.kwargs["order_id"] == order.id for call in mock_notify.await_args_list)
    assert await OutboxEvent.filter(published=False).count() == 0
    assert await ProcessedEvent.all().count() == 2


@pytest.mark.asyncio
@patch("marketplace.consumers.outbox_poller.notify", new_callable=AsyncMock)
async def test_failed_delivery_is_retried_later(mock_notify, market):
    mock_notify.side_effect = httpx.ConnectError("notification service down")
    await create_outbox_event(
        aggregate_type="wallet",
        aggregate_id=None,
        event_type="wallet.topped_up.v1",
        payload={"recipient_id": str(market.buyer.id), "amount": "10.00"},
    )

    assert await poll_outbox_for_new_events() == 0

    event = await OutboxEvent.get(event_type="wallet.topped_up.v1")
    assert event.published is False
    assert event.attempts == 1
    assert event.attempts < MAX_ATTEMPTS

    mock_notify.side_effect = None
    assert await poll_outbox_for_new_events() == 1
    mock_notify.assert_awaited_with(market.buyer.id, "wallet.topped_up.v1", event.payload, order_id=None)


@pytest.mark.asyncio
@patch("marketplace.consumers.outbox_poller.notify", new_callable=AsyncMock)
async def test_unknown_event_types_are_skipped(mock_notify, db):
    await create_outbox_event(aggregate_type="order", aggregate_id=None, event_type="order.placed.v1", payload={})

    assert await poll_outbox_for_new_events() == 1
    mock_notify.assert_not_called()

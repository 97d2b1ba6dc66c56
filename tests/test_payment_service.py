import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from marketplace.core.errors import (
    InsufficientFunds,
    InvalidPayload,
    OrderNotFound,
    PaymentAlreadyMade,
    UserNotOwner,
)
from marketplace.events.outbox_utility import ORDER_PAYMENT_CONFIRMED
from marketplace.models.order import Order, OrderStatus, OrderUpdate, PaymentMethod
from marketplace.models.outbox import OutboxEvent
from marketplace.models.wallet import Transaction, TransactionDirection, TransactionType
from marketplace.services.order_state import TransitionOutcome
from marketplace.services.payment_service import (
    confirm_order_payment,
    confirm_topup,
    handle_event,
    initialize_payment,
)
from marketplace.services.wallet_ledger import find_user_wallet, replay_balance
from marketplace.services.webhook_verifier import parse_event


@pytest.mark.asyncio
async def test_wallet_payment_succeeds(market, place_order, fund_wallet):
    """Total 1200.00 paid from a 1500.00 wallet."""
    await fund_wallet(market.buyer, "1500.00")
    order = await place_order("1200.00")

    details = await initialize_payment(order.id, market.buyer, PaymentMethod.WALLET)

    assert details == {"message": "Payment successful"}
    wallet = await find_user_wallet(market.buyer.id)
    assert wallet.balance == Decimal("300.00")
    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_ACKNOWLEDGEMENT
    assert stored.payment_method == PaymentMethod.WALLET

    payment = await Transaction.get(order_id=order.id)
    assert payment.direction == TransactionDirection.OUTGOING
    assert payment.type == TransactionType.WALLET
    assert payment.amount == Decimal("1200.00")
    assert payment.purpose == {"type": "ORDER", "order_id": str(order.id)}
    assert await replay_balance(wallet.id) == wallet.balance


@pytest.mark.asyncio
async def test_wallet_payment_with_insufficient_funds(market, place_order, fund_wallet):
    """Total 1200.00 against a 500.00 wallet changes nothing."""
    await fund_wallet(market.buyer, "500.00")
    order = await place_order("1200.00")

    with pytest.raises(InsufficientFunds):
        await initialize_payment(order.id, market.buyer, PaymentMethod.WALLET)

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_PAYMENT
    assert await Transaction.filter(order_id=order.id).count() == 0
    wallet = await find_user_wallet(market.buyer.id)
    assert wallet.balance == Decimal("500.00")


@pytest.mark.asyncio
async def test_paying_twice_is_rejected(market, place_order, fund_wallet):
    await fund_wallet(market.buyer, "3000.00")
    order = await place_order("1200.00")
    await initialize_payment(order.id, market.buyer, PaymentMethod.WALLET)

    with pytest.raises(PaymentAlreadyMade):
        await initialize_payment(order.id, market.buyer, PaymentMethod.WALLET)

    wallet = await find_user_wallet(market.buyer.id)
    assert wallet.balance == Decimal("1800.00")


@pytest.mark.asyncio
async def test_only_buyer_can_pay(market, place_order, make_user):
    order = await place_order()
    stranger = await make_user(balance="5000.00")

    with pytest.raises(UserNotOwner):
        await initialize_payment(order.id, stranger, PaymentMethod.WALLET)


@pytest.mark.asyncio
@patch("marketplace.services.payment_service.gateway_client.create_invoice", new_callable=AsyncMock)
async def test_online_payment_returns_invoice_url(mock_invoice, market, place_order):
    mock_invoice.return_value = "https://checkout.example.com/abc"
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)

    details = await initialize_payment(order.id, market.buyer, PaymentMethod.ONLINE)

    assert details == {"url": "https://checkout.example.com/abc"}
    email, amount, metadata = mock_invoice.call_args.args
    assert email == market.buyer.email
    assert amount == Decimal("1200.00")
    assert metadata == {"kind": "order", "order_id": str(order.id)}

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_PAYMENT
    assert await Transaction.filter(order_id=order.id).count() == 0


@pytest.mark.asyncio
async def test_webhook_confirmation_is_idempotent(market, place_order):
    """A 120000 minor-unit charge confirms a 1200.00 order once; redelivery is a no-op."""
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)

    first = await confirm_order_payment(order.id, 120000)
    second = await confirm_order_payment(order.id, 120000)

    assert first == TransitionOutcome.APPLIED
    assert second == TransitionOutcome.ALREADY_IN_DESIRED_STATE

    payments = await Transaction.filter(order_id=order.id, direction=TransactionDirection.OUTGOING)
    assert len(payments) == 1
    assert payments[0].type == TransactionType.ONLINE
    assert payments[0].wallet_id is None
    assert payments[0].amount == Decimal("1200.00")

    advances = await OrderUpdate.filter(order_id=order.id, status=OrderStatus.AWAITING_ACKNOWLEDGEMENT).count()
    assert advances == 1
    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_ACKNOWLEDGEMENT
    assert stored.payment_method == PaymentMethod.ONLINE


@pytest.mark.asyncio
async def test_concurrent_confirmations_record_one_payment(market, place_order):
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)

    outcomes = await asyncio.gather(*(confirm_order_payment(order.id, 120000) for _ in range(5)))

    assert outcomes.count(TransitionOutcome.APPLIED) == 1
    assert outcomes.count(TransitionOutcome.ALREADY_IN_DESIRED_STATE) == 4
    assert await Transaction.filter(order_id=order.id).count() == 1
    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_ACKNOWLEDGEMENT


@pytest.mark.asyncio
async def test_underpaid_charge_is_rejected(market, place_order):
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)

    with pytest.raises(InvalidPayload):
        await confirm_order_payment(order.id, 119999)

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_PAYMENT
    assert await Transaction.filter(order_id=order.id).count() == 0


@pytest.mark.asyncio
async def test_confirmation_for_unknown_order(db):
    with pytest.raises(OrderNotFound):
        await confirm_order_payment(uuid4(), 120000)


@pytest.mark.asyncio
async def test_payment_notifies_kitchen_owner_and_admins(market, place_order):
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)

    await confirm_order_payment(order.id, 120000)

    events = await OutboxEvent.filter(aggregate_id=order.id, event_type=ORDER_PAYMENT_CONFIRMED)
    recipients = {event.payload["recipient_id"] for event in events}
    assert recipients == {str(market.vendor.id), str(market.admin.id)}


@pytest.mark.asyncio
async def test_topup_credits_once_per_reference(market):
    first = await confirm_topup(market.buyer.id, 250050, "ref-001")
    again = await confirm_topup(market.buyer.id, 250050, "ref-001")

    assert first is not None
    assert again is None
    wallet = await find_user_wallet(market.buyer.id)
    assert wallet.balance == Decimal("2500.50")
    assert first.type == TransactionType.ONLINE
    assert first.wallet_id == wallet.id

    await confirm_topup(market.buyer.id, 100, "ref-002")
    wallet = await find_user_wallet(market.buyer.id)
    assert wallet.balance == Decimal("2501.50")
    assert await replay_balance(wallet.id) == wallet.balance


@pytest.mark.asyncio
async def test_handle_event_routes_order_charge(market, place_order):
    order = await place_order("1200.00", method=PaymentMethod.ONLINE)
    body = json.dumps({
        "event": "charge.success",
        "data": {
            "reference": "T123",
            "amount": 120000,
            "metadata": json.dumps({"kind": "order", "order_id": str(order.id)}),
        },
    }).encode()

    await handle_event(parse_event(body))

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.AWAITING_ACKNOWLEDGEMENT


@pytest.mark.asyncio
async def test_handle_event_links_dedicated_account(market):
    body = json.dumps({
        "event": "dedicatedaccount.assign.success",
        "data": {
            "customer": {"id": 4421, "customer_code": "CUS_abc", "email": market.buyer.email},
            "dedicated_account": {
                "id": 77,
                "bank": {"id": 1, "name": "Wema Bank", "slug": "wema-bank"},
                "account_name": "KITCHEN/Test User",
                "account_number": "9930000000",
                "active": True,
            },
        },
    }).encode()

    await handle_event(parse_event(body))

    wallet = await find_user_wallet(market.buyer.id)
    assert wallet.metadata["customer"] == {"id": "4421", "code": "CUS_abc"}
    assert wallet.metadata["dedicated_account"]["account_number"] == "9930000000"
    assert wallet.balance == Decimal("0")

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from marketplace.core.errors import (
    GatewayError,
    InsufficientFunds,
    InvalidAmount,
    UserNotKitchenOwner,
    WithdrawalFailed,
)
from marketplace.models.order import Order, OrderStatus
from marketplace.models.wallet import Transaction, TransactionDirection, Wallet
from marketplace.services.order_service import update_order_status
from marketplace.services.payment_service import pay_with_wallet
from marketplace.services.transaction_log import find_order_payment_transaction
from marketplace.services.wallet_ledger import (
    credit,
    debit,
    find_kitchen_wallet,
    find_user_wallet,
    replay_balance,
    withdraw,
)


@pytest.mark.asyncio
async def test_balance_never_goes_negative_and_replays(make_user):
    user = await make_user()
    wallet = await find_user_wallet(user.id)

    operations = [
        ("credit", "100.00"),
        ("debit", "30.50"),
        ("debit", "80.00"),   # refused
        ("credit", "10.25"),
        ("debit", "79.75"),
        ("debit", "0.01"),    # refused, balance is exactly zero
        ("credit", "5.00"),
    ]
    refused = 0
    for op, amount in operations:
        try:
            if op == "credit":
                await credit(wallet.id, Decimal(amount), note="test")
            else:
                await debit(wallet.id, Decimal(amount), note="test")
        except InsufficientFunds:
            refused += 1
        current = await Wallet.get(id=wallet.id)
        assert current.balance >= 0

    wallet = await Wallet.get(id=wallet.id)
    assert refused == 2
    assert wallet.balance == Decimal("5.00")
    assert await replay_balance(wallet.id) == wallet.balance
    assert await Transaction.filter(wallet_id=wallet.id).count() == 5


@pytest.mark.asyncio
async def test_refused_debit_writes_nothing(make_user):
    user = await make_user(balance="50.00")
    wallet = await find_user_wallet(user.id)

    with pytest.raises(InsufficientFunds):
        await debit(wallet.id, Decimal("50.01"), note="too much")

    wallet = await Wallet.get(id=wallet.id)
    assert wallet.balance == Decimal("50.00")
    assert await Transaction.filter(wallet_id=wallet.id, direction=TransactionDirection.OUTGOING).count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5.00", "0.001"])
async def test_invalid_amounts_are_rejected(make_user, amount):
    user = await make_user(balance="10.00")
    wallet = await find_user_wallet(user.id)

    with pytest.raises(InvalidAmount):
        await credit(wallet.id, Decimal(amount))
    with pytest.raises(InvalidAmount):
        await debit(wallet.id, Decimal(amount))


@pytest.mark.asyncio
async def test_kitchen_wallet_transactions_belong_to_kitchen_owner(market):
    wallet = await find_kitchen_wallet(market.kitchen.id)
    tx = await credit(wallet.id, Decimal("10.00"), note="test")
    assert tx.user_id == market.vendor.id


async def _deliver(order, market):
    await update_order_status(order.id, OrderStatus.PREPARING, market.vendor, as_kitchen=True)
    await update_order_status(order.id, OrderStatus.IN_TRANSIT, market.vendor, as_kitchen=True)
    return await update_order_status(order.id, OrderStatus.DELIVERED, market.buyer)


@pytest.mark.asyncio
async def test_delivery_pays_vendor_and_references_payment(market, place_order, fund_wallet):
    await fund_wallet(market.buyer, "1500.00")
    order = await place_order("1200.00")
    await pay_with_wallet(order.id, market.buyer)
    payment_tx = await find_order_payment_transaction(order.id)

    await _deliver(order, market)

    kitchen_wallet = await find_kitchen_wallet(market.kitchen.id)
    assert kitchen_wallet.balance == Decimal("1000.00")

    payout = await Transaction.get(wallet_id=kitchen_wallet.id, direction=TransactionDirection.INCOMING)
    assert payout.ref == payment_tx.id
    assert payout.amount == Decimal("1000.00")
    assert payout.order_id == order.id
    assert payout.note == f"Payment received for order {order.id}"
    assert await replay_balance(kitchen_wallet.id) == kitchen_wallet.balance

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.DELIVERED


@pytest.mark.asyncio
async def test_repeated_delivery_pays_out_once(market, place_order, fund_wallet):
    await fund_wallet(market.buyer, "1200.00")
    order = await place_order("1200.00")
    await pay_with_wallet(order.id, market.buyer)
    await _deliver(order, market)

    await update_order_status(order.id, OrderStatus.DELIVERED, market.buyer)

    kitchen_wallet = await find_kitchen_wallet(market.kitchen.id)
    assert kitchen_wallet.balance == Decimal("1000.00")
    assert await Transaction.filter(wallet_id=kitchen_wallet.id).count() == 1


@pytest.mark.asyncio
async def test_cancellation_refunds_buyer_with_reference(market, place_order, fund_wallet):
    await fund_wallet(market.buyer, "1500.00")
    order = await place_order("1200.00")
    await pay_with_wallet(order.id, market.buyer)
    payment_tx = await find_order_payment_transaction(order.id)

    await update_order_status(order.id, OrderStatus.CANCELLED, market.vendor, as_kitchen=True)

    buyer_wallet = await find_user_wallet(market.buyer.id)
    assert buyer_wallet.balance == Decimal("1500.00")
    refund = await Transaction.get(order_id=order.id, direction=TransactionDirection.INCOMING)
    assert refund.ref == payment_tx.id
    assert refund.amount == Decimal("1200.00")
    assert await replay_balance(buyer_wallet.id) == buyer_wallet.balance


@pytest.mark.asyncio
@patch("marketplace.services.wallet_ledger.gateway_client.transfer_to_bank_account", new_callable=AsyncMock)
async def test_withdraw_debits_after_transfer(mock_transfer, make_user):
    user = await make_user(balance="300.00")

    tx = await withdraw(user, "0123456789", "058", "Ada Obi", Decimal("120.00"))

    mock_transfer.assert_awaited_once_with("Ada Obi", "0123456789", "058", Decimal("120.00"))
    wallet = await find_user_wallet(user.id)
    assert wallet.balance == Decimal("180.00")
    assert tx.direction == TransactionDirection.OUTGOING
    assert tx.note == "Withdrawal to Ada Obi 0123456789"
    assert await replay_balance(wallet.id) == wallet.balance


@pytest.mark.asyncio
@patch("marketplace.services.wallet_ledger.gateway_client.transfer_to_bank_account", new_callable=AsyncMock)
async def test_withdraw_checks_balance_before_transfer(mock_transfer, make_user):
    user = await make_user(balance="100.00")

    with pytest.raises(InsufficientFunds):
        await withdraw(user, "0123456789", "058", "Ada Obi", Decimal("100.01"))

    mock_transfer.assert_not_called()


@pytest.mark.asyncio
@patch("marketplace.services.wallet_ledger.gateway_client.transfer_to_bank_account", new_callable=AsyncMock)
async def test_failed_transfer_leaves_no_debit(mock_transfer, make_user):
    mock_transfer.side_effect = GatewayError()
    user = await make_user(balance="100.00")

    with pytest.raises(WithdrawalFailed):
        await withdraw(user, "0123456789", "058", "Ada Obi", Decimal("50.00"))

    wallet = await find_user_wallet(user.id)
    assert wallet.balance == Decimal("100.00")
    assert await Transaction.filter(wallet_id=wallet.id, direction=TransactionDirection.OUTGOING).count() == 0


@pytest.mark.asyncio
async def test_kitchen_withdrawal_requires_a_kitchen(make_user):
    user = await make_user(balance="100.00")

    with pytest.raises(UserNotKitchenOwner):
        await withdraw(user, "0123456789", "058", "Ada Obi", Decimal("50.00"), as_kitchen=True)

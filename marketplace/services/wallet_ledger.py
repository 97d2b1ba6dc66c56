"""
Wallet ledger: the only code that changes wallet balances.

Every balance change is written together with exactly one matching
Transaction inside the same database transaction, and the wallet row is
locked first, so a balance can never go negative and replaying a wallet's
Transactions from zero always reproduces its balance.
"""
import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from marketplace.core.db import atomic
from marketplace.core.errors import (
    GatewayError,
    InsufficientFunds,
    InvalidAmount,
    PaymentRecordMissing,
    UnexpectedError,
    UserNotKitchenOwner,
    WalletNotFound,
    WithdrawalFailed,
)
from marketplace.models.account import Kitchen, User
from marketplace.models.order import Order
from marketplace.models.wallet import Transaction, TransactionDirection, TransactionType, Wallet
from marketplace.services import gateway_client
from marketplace.services.order_state import CENT, vendor_payout_amount
from marketplace.services.transaction_log import (
    find_order_payment_transaction,
    record_transaction,
    wallet_transactions,
)

log = logging.getLogger(__name__)


def _normalize_amount(amount) -> Decimal:
    try:
        amount = Decimal(amount)
    except (TypeError, ArithmeticError):
        raise InvalidAmount()
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()
    if amount != amount.quantize(CENT):
        raise InvalidAmount("Amount cannot have more than two decimal places")
    return amount


async def create_wallet(owner_id: UUID, is_kitchen_wallet: bool = False, conn: Any = None) -> Wallet:
    """Opens the single wallet of a user or kitchen with a zero balance."""
    return await Wallet.create(
        owner_id=owner_id,
        is_kitchen_wallet=is_kitchen_wallet,
        balance=Decimal("0"),
        metadata={},
        using_db=conn,
    )


async def _lock_wallet(wallet_id: UUID, conn: Any) -> Wallet:
    wallet = await Wallet.filter(id=wallet_id).using_db(conn).select_for_update().first()
    if not wallet:
        raise WalletNotFound()
    return wallet


async def _wallet_user_id(wallet: Wallet, conn: Any) -> UUID:
    """User a wallet's Transactions are attributed to (a kitchen wallet belongs to the kitchen's owner)."""
    if not wallet.is_kitchen_wallet:
        return wallet.owner_id
    kitchen = await Kitchen.get_or_none(id=wallet.owner_id).using_db(conn)
    if not kitchen:
        log.error(f"Kitchen wallet {wallet.id} has no kitchen {wallet.owner_id}")
        raise UnexpectedError()
    return kitchen.owner_id


async def _apply(
    wallet_id: UUID,
    amount,
    direction: TransactionDirection,
    note: Optional[str],
    ref: Optional[UUID],
    order_id: Optional[UUID],
    type: TransactionType,
    user_id: Optional[UUID],
    conn: Any,
) -> Transaction:
    amount = _normalize_amount(amount)
    async with atomic(conn) as conn:
        wallet = await _lock_wallet(wallet_id, conn)

        if direction == TransactionDirection.OUTGOING:
            if wallet.balance < amount:
                log.warning(f"Debit of {amount} refused for wallet {wallet.id}: balance {wallet.balance}")
                raise InsufficientFunds()
            wallet.balance = wallet.balance - amount
        else:
            wallet.balance = wallet.balance + amount
        await wallet.save(update_fields=["balance", "updated_at"], using_db=conn)

        tx = await record_transaction(
            amount=amount,
            direction=direction,
            type=type,
            user_id=user_id or await _wallet_user_id(wallet, conn),
            wallet_id=wallet.id,
            note=note,
            ref=ref,
            order_id=order_id,
            conn=conn,
        )
        log.info(f"Wallet {wallet.id} {direction.value.lower()} {amount}; balance now {wallet.balance} (tx {tx.id})")
        return tx


async def credit(
    wallet_id: UUID,
    amount,
    note: Optional[str] = None,
    ref: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
    type: TransactionType = TransactionType.WALLET,
    user_id: Optional[UUID] = None,
    conn: Any = None,
) -> Transaction:
    return await _apply(wallet_id, amount, TransactionDirection.INCOMING, note, ref, order_id, type, user_id, conn)


async def debit(
    wallet_id: UUID,
    amount,
    note: Optional[str] = None,
    ref: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
    type: TransactionType = TransactionType.WALLET,
    user_id: Optional[UUID] = None,
    conn: Any = None,
) -> Transaction:
    """Raises InsufficientFunds (and writes nothing) when the balance does not cover `amount`."""
    return await _apply(wallet_id, amount, TransactionDirection.OUTGOING, note, ref, order_id, type, user_id, conn)


async def find_user_wallet(owner_id: UUID, conn: Any = None) -> Wallet:
    wallet = await Wallet.get_or_none(owner_id=owner_id, is_kitchen_wallet=False).using_db(conn)
    if not wallet:
        raise WalletNotFound()
    return wallet


async def find_kitchen_wallet(kitchen_id: UUID, conn: Any = None) -> Wallet:
    wallet = await Wallet.get_or_none(owner_id=kitchen_id, is_kitchen_wallet=True).using_db(conn)
    if not wallet:
        raise WalletNotFound("Kitchen wallet not found")
    return wallet


async def resolve_wallet(user: User, as_kitchen: bool = False, conn: Any = None) -> Wallet:
    """The caller's personal wallet, or the payout wallet of the kitchen they own."""
    if not as_kitchen:
        return await find_user_wallet(user.id, conn)
    kitchen = await Kitchen.get_or_none(owner_id=user.id).using_db(conn)
    if not kitchen:
        raise UserNotKitchenOwner()
    return await find_kitchen_wallet(kitchen.id, conn)


async def _original_payment(order: Order, conn: Any) -> Transaction:
    payment_tx = await find_order_payment_transaction(order.id, conn)
    if not payment_tx:
        log.error(f"Required a transaction for an order which doesn't have an initial payment transaction: {order.id}")
        raise PaymentRecordMissing()
    return payment_tx


async def payout_for_delivery(order: Order, conn: Any) -> Transaction:
    """
    Credits the kitchen with total / 1.2 of a delivered order.

    Runs inside the caller's transaction together with the DELIVERED status
    write; the payout's `ref` is the id of the order's payment Transaction.
    """
    vendor_amount = vendor_payout_amount(order.total)
    try:
        wallet = await find_kitchen_wallet(order.kitchen_id, conn)
    except WalletNotFound:
        log.error(f"No payout wallet for kitchen {order.kitchen_id} (order {order.id})")
        raise UnexpectedError()
    payment_tx = await _original_payment(order, conn)

    return await credit(
        wallet.id,
        vendor_amount,
        note=f"Payment received for order {order.id}",
        ref=payment_tx.id,
        order_id=order.id,
        conn=conn,
    )


async def refund_for_cancellation(order: Order, conn: Any) -> Transaction:
    """Returns the full order total to the buyer's wallet, referencing the original payment."""
    try:
        wallet = await find_user_wallet(order.owner_id, conn)
    except WalletNotFound:
        log.error(f"No wallet to refund buyer {order.owner_id} (order {order.id})")
        raise UnexpectedError()
    payment_tx = await _original_payment(order, conn)

    return await credit(
        wallet.id,
        order.total,
        note=f"Payment refunded for order {order.id} cancellation",
        ref=payment_tx.id,
        order_id=order.id,
        conn=conn,
    )


async def withdraw(
    user: User,
    account_number: str,
    bank_code: str,
    account_name: str,
    amount,
    as_kitchen: bool = False,
) -> Transaction:
    """
    Pays wallet funds out to a bank account.

    The balance is checked under the wallet lock before the transfer is sent,
    and the debit is only written once the gateway has accepted the transfer.
    """
    amount = _normalize_amount(amount)
    async with in_transaction() as conn:
        wallet = await resolve_wallet(user, as_kitchen, conn)
        wallet = await _lock_wallet(wallet.id, conn)
        if wallet.balance < amount:
            raise InsufficientFunds()

        try:
            await gateway_client.transfer_to_bank_account(account_name, account_number, bank_code, amount)
        except GatewayError as e:
            log.error(f"Withdrawal of {amount} from wallet {wallet.id} failed at the gateway: {e.message}")
            raise WithdrawalFailed()

        return await debit(
            wallet.id,
            amount,
            note=f"Withdrawal to {account_name} {account_number}",
            user_id=user.id,
            conn=conn,
        )


async def replay_balance(wallet_id: UUID, conn: Any = None) -> Decimal:
    """Rebuilds a wallet balance from zero using only its Transactions."""
    balance = Decimal("0")
    for tx in await wallet_transactions(wallet_id, conn):
        if tx.direction == TransactionDirection.INCOMING:
            balance += tx.amount
        else:
            balance -= tx.amount
    return balance

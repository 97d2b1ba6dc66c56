"""
Payment coordinator.

Turns an order in AWAITING_PAYMENT into a paid order, either by debiting the
buyer's wallet on the spot or by handing out a gateway invoice and confirming
it when the signed `charge.success` webhook arrives. In both paths the
payment Transaction and the move to AWAITING_ACKNOWLEDGEMENT are written in
one database transaction, and a repeated confirmation is a no-op.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from tortoise.transactions import in_transaction

from marketplace.core.config import MINOR_UNITS_PER_MAJOR
from marketplace.core.errors import (
    InsufficientFunds,
    InvalidPayload,
    OrderNotFound,
    PaymentAlreadyMade,
    UserNotFound,
    UserNotOwner,
)
from marketplace.events.outbox_utility import (
    BANK_ACCOUNT_ASSIGNED,
    BANK_ACCOUNT_ASSIGNMENT_FAILED,
    ORDER_PAYMENT_CONFIRMED,
    WALLET_TOPPED_UP,
    create_outbox_event,
    enqueue_notification,
)
from marketplace.models.account import Kitchen, User
from marketplace.models.order import Order, OrderStatus, PaymentMethod
from marketplace.models.processed_event import ProcessedEvent
from marketplace.models.wallet import Transaction, TransactionDirection, TransactionType
from marketplace.schemas.webhook import (
    ChargeSuccessEvent,
    DedicatedAccountAssignFailedData,
    DedicatedAccountAssignSuccessData,
    DedicatedAccountAssignSuccessEvent,
    OrderInvoiceMetadata,
    TopupMetadata,
    WebhookEvent,
)
from marketplace.services import gateway_client
from marketplace.services.order_state import CENT, TransitionOutcome, apply_transition
from marketplace.services.transaction_log import record_transaction
from marketplace.services.wallet_ledger import credit, debit, find_user_wallet

log = logging.getLogger(__name__)


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(CENT)


async def _lock_order(order_id: UUID, conn: Any) -> Order:
    order = await Order.filter(id=order_id).using_db(conn).select_for_update().first()
    if not order:
        raise OrderNotFound()
    return order


async def _notify_payment_confirmed(order: Order, conn: Any) -> None:
    """The kitchen owner and every admin hear about a paid order."""
    kitchen = await Kitchen.get(id=order.kitchen_id).using_db(conn)
    admin_ids = await User.filter(is_admin=True).using_db(conn).values_list("id", flat=True)

    recipients = [kitchen.owner_id] + [uid for uid in admin_ids if uid != kitchen.owner_id]
    for recipient_id in recipients:
        await enqueue_notification(
            order.id,
            recipient_id,
            ORDER_PAYMENT_CONFIRMED,
            {"total": str(order.total), "payment_method": PaymentMethod(order.payment_method).value},
            conn=conn,
        )


async def initialize_payment(order_id: UUID, payer: User, method: PaymentMethod) -> Dict[str, Any]:
    """
    Starts payment of an order by its buyer.

    WALLET pays immediately and returns a confirmation message; ONLINE returns
    the gateway's hosted payment URL and changes nothing locally.
    """
    order = await Order.get_or_none(id=order_id)
    if not order:
        raise OrderNotFound()
    if order.owner_id != payer.id:
        raise UserNotOwner()
    if order.status != OrderStatus.AWAITING_PAYMENT:
        raise PaymentAlreadyMade()

    if PaymentMethod(method) == PaymentMethod.WALLET:
        await pay_with_wallet(order.id, payer)
        return {"message": "Payment successful"}

    metadata = OrderInvoiceMetadata(order_id=order.id).model_dump(mode="json")
    url = await gateway_client.create_invoice(payer.email, order.total, metadata)
    log.info(f"Invoice created for order {order.id}")
    return {"url": url}


async def pay_with_wallet(order_id: UUID, payer: User) -> Transaction:
    async with in_transaction() as conn:
        order = await _lock_order(order_id, conn)
        if order.status != OrderStatus.AWAITING_PAYMENT:
            raise PaymentAlreadyMade()

        wallet = await find_user_wallet(payer.id, conn)
        if wallet.balance < order.total:
            log.warning(f"Wallet payment for order {order.id} refused: balance {wallet.balance} < {order.total}")
            raise InsufficientFunds()

        outcome = await apply_transition(order, OrderStatus.AWAITING_ACKNOWLEDGEMENT, conn)
        if outcome == TransitionOutcome.ALREADY_IN_DESIRED_STATE:
            raise PaymentAlreadyMade()

        tx = await debit(
            wallet.id,
            order.total,
            note=f"Paid for order {order.id}",
            order_id=order.id,
            user_id=payer.id,
            conn=conn,
        )
        order.payment_method = PaymentMethod.WALLET
        await order.save(update_fields=["payment_method"], using_db=conn)
        await _notify_payment_confirmed(order, conn)

    log.info(f"Order {order.id} paid from wallet {wallet.id} (tx {tx.id})")
    return tx


async def confirm_order_payment(order_id: UUID, amount_minor: int) -> TransitionOutcome:
    """
    Applies a gateway payment confirmation to an order.

    Redelivered confirmations find the order already past AWAITING_PAYMENT
    and return ALREADY_IN_DESIRED_STATE without writing anything.
    """
    async with in_transaction() as conn:
        order = await _lock_order(order_id, conn)
        if order.status != OrderStatus.AWAITING_PAYMENT:
            log.info(f"Idempotency: order {order.id} already paid (status {order.status}).")
            return TransitionOutcome.ALREADY_IN_DESIRED_STATE

        paid = from_minor_units(amount_minor)
        if paid < order.total:
            log.error(f"Amount paid for order {order.id} is less than order total: {paid} < {order.total}")
            raise InvalidPayload("Amount paid is less than order total")

        outcome = await apply_transition(order, OrderStatus.AWAITING_ACKNOWLEDGEMENT, conn)
        if outcome == TransitionOutcome.ALREADY_IN_DESIRED_STATE:
            return outcome

        tx = await record_transaction(
            amount=order.total,
            direction=TransactionDirection.OUTGOING,
            type=TransactionType.ONLINE,
            user_id=order.owner_id,
            note=f"Paid for order {order.id}",
            order_id=order.id,
            conn=conn,
        )
        order.payment_method = PaymentMethod.ONLINE
        await order.save(update_fields=["payment_method"], using_db=conn)
        await _notify_payment_confirmed(order, conn)

    log.info(f"Order {order.id} paid online (tx {tx.id})")
    return outcome


async def create_topup_invoice(user: User, amount: Decimal) -> str:
    metadata = TopupMetadata(user_id=user.id).model_dump(mode="json")
    return await gateway_client.create_invoice(user.email, amount, metadata)


async def confirm_topup(user_id: UUID, amount_minor: int, reference: str) -> Optional[Transaction]:
    """
    Credits a gateway top-up to the user's wallet once per charge reference.

    Returns None when the reference was already credited.
    """
    dedupe_key = f"charge:{reference}"
    async with in_transaction() as conn:
        if await ProcessedEvent.filter(event_id=dedupe_key).using_db(conn).exists():
            log.info(f"Idempotency: top-up {reference} already credited.")
            return None

        wallet = await find_user_wallet(user_id, conn)
        amount = from_minor_units(amount_minor)
        tx = await credit(
            wallet.id,
            amount,
            note="Topup",
            type=TransactionType.ONLINE,
            user_id=user_id,
            conn=conn,
        )
        await ProcessedEvent.create(event_id=dedupe_key, using_db=conn)
        await create_outbox_event(
            aggregate_type="wallet",
            aggregate_id=wallet.id,
            event_type=WALLET_TOPPED_UP,
            payload={"recipient_id": str(user_id), "amount": str(amount)},
            conn=conn,
        )

    log.info(f"Wallet {wallet.id} topped up with {amount} (reference {reference})")
    return tx


async def _user_by_email(email: str) -> User:
    user = await User.get_or_none(email=email)
    if not user:
        log.error(f"Gateway customer {email} matches no user")
        raise UserNotFound()
    return user


async def link_dedicated_account(data: DedicatedAccountAssignSuccessData) -> None:
    """Stores the gateway customer and dedicated bank account on the user's wallet."""
    user = await _user_by_email(data.customer.email)
    account = data.dedicated_account

    async with in_transaction() as conn:
        wallet = await find_user_wallet(user.id, conn)
        wallet.metadata = {
            "customer": {"id": data.customer.id, "code": data.customer.code},
            "dedicated_account": {
                "id": account.id,
                "bank": {"id": account.bank.id, "name": account.bank.name, "slug": account.bank.slug},
                "account_name": account.account_name,
                "account_number": account.account_number,
                "active": account.active,
            },
        }
        await wallet.save(update_fields=["metadata", "updated_at"], using_db=conn)
        await create_outbox_event(
            aggregate_type="wallet",
            aggregate_id=wallet.id,
            event_type=BANK_ACCOUNT_ASSIGNED,
            payload={
                "recipient_id": str(user.id),
                "bank_name": account.bank.name,
                "account_name": account.account_name,
                "account_number": account.account_number,
            },
            conn=conn,
        )
    log.info(f"Dedicated account linked to wallet {wallet.id}")


async def report_dedicated_account_failure(data: DedicatedAccountAssignFailedData) -> None:
    user = await _user_by_email(data.customer.email)
    await create_outbox_event(
        aggregate_type="user",
        aggregate_id=user.id,
        event_type=BANK_ACCOUNT_ASSIGNMENT_FAILED,
        payload={"recipient_id": str(user.id)},
    )
    log.warning(f"Dedicated account assignment failed for user {user.id}")


async def handle_event(event: WebhookEvent) -> None:
    """Routes a verified webhook event to its handler."""
    if isinstance(event, ChargeSuccessEvent):
        metadata = event.data.metadata
        if isinstance(metadata, OrderInvoiceMetadata):
            await confirm_order_payment(metadata.order_id, event.data.amount)
        else:
            await confirm_topup(metadata.user_id, event.data.amount, event.data.reference)
    elif isinstance(event, DedicatedAccountAssignSuccessEvent):
        await link_dedicated_account(event.data)
    else:
        await report_dedicated_account_failure(event.data)

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from tortoise.expressions import Q

from marketplace.core.errors import InvalidAmount, TransactionNotFound
from marketplace.models.wallet import Transaction, TransactionDirection, TransactionType


def order_purpose(order_id: UUID) -> Dict[str, Any]:
    return {"type": "ORDER", "order_id": str(order_id)}


OTHER_PURPOSE = {"type": "OTHER"}


async def record_transaction(
    amount: Decimal,
    direction: TransactionDirection,
    type: TransactionType,
    user_id: UUID,
    conn: Any,
    wallet_id: Optional[UUID] = None,
    note: Optional[str] = None,
    ref: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
) -> Transaction:
    """
    Appends one Transaction. Wallet-bound rows are only written by the wallet
    ledger, in the same transaction as the balance change they describe.
    """
    if amount is None or Decimal(amount) <= 0:
        raise InvalidAmount()
    return await Transaction.create(
        amount=amount,
        direction=direction,
        type=type,
        note=note,
        ref=ref,
        purpose=order_purpose(order_id) if order_id else OTHER_PURPOSE,
        order_id=order_id,
        user_id=user_id,
        wallet_id=wallet_id,
        using_db=conn,
    )


async def find_order_payment_transaction(order_id: UUID, conn: Any = None) -> Optional[Transaction]:
    """The Transaction written when the buyer paid for the order (earliest outgoing one)."""
    return await (
        Transaction.filter(order_id=order_id, direction=TransactionDirection.OUTGOING)
        .using_db(conn)
        .order_by("created_at")
        .first()
    )


async def wallet_transactions(wallet_id: UUID, conn: Any = None) -> List[Transaction]:
    return await Transaction.filter(wallet_id=wallet_id).using_db(conn).order_by("created_at")


async def list_transactions(
    user_id: UUID,
    wallet_id: UUID,
    kitchen_view: bool = False,
    page: int = 1,
    per_page: int = 20,
) -> Tuple[List[Transaction], int]:
    """
    Newest first. A kitchen view lists only the kitchen wallet's rows; the
    personal view lists the personal wallet's rows plus the user's online
    payments, which are bound to no wallet.
    """
    if kitchen_view:
        query = Transaction.filter(wallet_id=wallet_id)
    else:
        query = Transaction.filter(Q(wallet_id=wallet_id) | Q(wallet_id__isnull=True, user_id=user_id))
    total = await query.count()
    items = await query.order_by("-created_at").offset((page - 1) * per_page).limit(per_page)
    return items, total


async def get_transaction(transaction_id: UUID, user_id: UUID) -> Transaction:
    tx = await Transaction.get_or_none(id=transaction_id, user_id=user_id)
    if not tx:
        raise TransactionNotFound()
    return tx

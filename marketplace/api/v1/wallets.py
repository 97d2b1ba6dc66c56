import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_current_user
from marketplace.models.account import User
from marketplace.schemas.response import SuccessResponse
from marketplace.schemas.wallet import (
    PaginatedTransactions,
    TopUpRequest,
    TransactionResponse,
    WalletResponse,
    WithdrawRequest,
)
from marketplace.services.payment_service import create_topup_invoice
from marketplace.services.transaction_log import get_transaction, list_transactions
from marketplace.services.wallet_ledger import resolve_wallet, withdraw

router = APIRouter()
log = logging.getLogger("uvicorn")


def _transaction_data(tx) -> dict:
    return TransactionResponse(
        id=tx.id,
        amount=tx.amount,
        direction=tx.direction,
        type=tx.type,
        note=tx.note,
        ref=tx.ref,
        purpose=tx.purpose,
        user_id=tx.user_id,
        wallet_id=tx.wallet_id,
        created_at=tx.created_at,
    ).model_dump(mode="json")


@router.get("/me", response_model=SuccessResponse)
async def get_my_wallet(as_kitchen: bool = False, user: User = Depends(get_current_user)):
    """Returns the caller's wallet, or their kitchen's payout wallet."""
    wallet = await resolve_wallet(user, as_kitchen)
    data = WalletResponse(
        id=wallet.id,
        owner_id=wallet.owner_id,
        is_kitchen_wallet=wallet.is_kitchen_wallet,
        balance=wallet.balance,
        metadata=wallet.metadata or {},
        created_at=wallet.created_at,
        updated_at=wallet.updated_at,
    ).model_dump(mode="json")
    return SuccessResponse(data=data)


@router.get("/me/transactions", response_model=SuccessResponse)
async def get_my_transactions(
    as_kitchen: bool = False,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
):
    wallet = await resolve_wallet(user, as_kitchen)
    items, total = await list_transactions(
        user.id, wallet.id, kitchen_view=as_kitchen, page=page, per_page=per_page
    )
    data = PaginatedTransactions(
        items=[_transaction_data(tx) for tx in items],
        page=page,
        per_page=per_page,
        total=total,
    ).model_dump(mode="json")
    return SuccessResponse(data=data)


@router.post("/top-up", response_model=SuccessResponse)
async def top_up_endpoint(payload: TopUpRequest, user: User = Depends(get_current_user)):
    """
    Returns a hosted payment URL; the wallet is credited when the gateway confirms the charge.
    """
    url = await create_topup_invoice(user, payload.amount)
    log.info(f"Top-up invoice of {payload.amount} created for user {user.id}.")
    return SuccessResponse(data={"url": url})


@router.post("/withdraw", response_model=SuccessResponse)
async def withdraw_endpoint(payload: WithdrawRequest, user: User = Depends(get_current_user)):
    tx = await withdraw(
        user,
        account_number=payload.account_number,
        bank_code=payload.bank_code,
        account_name=payload.account_name,
        amount=payload.amount,
        as_kitchen=payload.as_kitchen,
    )
    log.info(f"Withdrawal {tx.id} of {payload.amount} placed for user {user.id}.")
    return SuccessResponse(data=_transaction_data(tx))


@router.get("/me/transactions/{transaction_id}", response_model=SuccessResponse)
async def get_my_transaction(transaction_id: UUID, user: User = Depends(get_current_user)):
    tx = await get_transaction(transaction_id, user.id)
    return SuccessResponse(data=_transaction_data(tx))

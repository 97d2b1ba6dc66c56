from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from marketplace.models.wallet import TransactionDirection, TransactionType


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class WithdrawRequest(BaseModel):
    account_number: str = Field(..., min_length=1)
    bank_code: str = Field(..., min_length=1)
    account_name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    as_kitchen: bool = False


class WalletResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    is_kitchen_wallet: bool
    balance: Decimal
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: Optional[datetime] = None


class TransactionResponse(BaseModel):
    id: uuid.UUID
    amount: Decimal
    direction: TransactionDirection
    type: TransactionType
    note: Optional[str] = None
    ref: Optional[uuid.UUID] = None
    purpose: Optional[Dict[str, Any]] = None
    user_id: uuid.UUID
    wallet_id: Optional[uuid.UUID] = None
    created_at: datetime


class PaginatedTransactions(BaseModel):
    items: List[TransactionResponse]
    page: int
    per_page: int
    total: int

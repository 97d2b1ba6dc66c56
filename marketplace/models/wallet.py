from decimal import Decimal
from enum import Enum
from tortoise import fields, models
import uuid


class TransactionDirection(str, Enum):
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"


class TransactionType(str, Enum):
    ONLINE = "ONLINE"
    WALLET = "WALLET"


class Wallet(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    # User id for a personal wallet, kitchen id for a kitchen payout wallet
    owner_id = fields.UUIDField(unique=True)
    is_kitchen_wallet = fields.BooleanField(default=False)
    balance = fields.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    # Opaque payment-gateway linkage (customer, dedicated account)
    metadata = fields.JSONField(default=dict)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "wallets"


class Transaction(models.Model):
    """
    Immutable record of a single money movement.

    Rows with a wallet are the audit trail of that wallet: replaying them from
    zero reproduces its balance. Online payments carry no wallet.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    amount = fields.DecimalField(max_digits=14, decimal_places=2)
    direction = fields.CharEnumField(TransactionDirection)
    type = fields.CharEnumField(TransactionType)
    note = fields.TextField(null=True)
    # Id of the transaction this one settles or reverses (payout/refund -> payment)
    ref = fields.UUIDField(null=True)
    purpose = fields.JSONField(null=True)
    order = fields.ForeignKeyField("models.Order", related_name="transactions", null=True)
    user = fields.ForeignKeyField("models.User", related_name="transactions")
    wallet = fields.ForeignKeyField("models.Wallet", related_name="transactions", null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "transactions"
        indexes = [
            ("wallet_id", "created_at"),  # Wallet history / replay
            ("order_id", "direction"),    # Original payment lookup
            ("user_id", "created_at"),    # User history
            ("ref",),
        ]

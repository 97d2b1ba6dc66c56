"""
Domain errors for the order and settlement services.

Each error carries the HTTP status and a stable machine-readable code so the
exception handlers can render it without the services knowing about FastAPI.
"""
from typing import Optional


class MarketplaceError(Exception):
    status_code = 500
    code = "unexpected_error"
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTransition(MarketplaceError):
    status_code = 400
    code = "invalid_transition"
    default_message = "Invalid status transition"


class InsufficientFunds(MarketplaceError):
    status_code = 400
    code = "insufficient_funds"
    default_message = "Insufficient funds"


class InvalidAmount(MarketplaceError):
    status_code = 400
    code = "invalid_amount"
    default_message = "Amount must be greater than zero"


class InvalidSignature(MarketplaceError):
    status_code = 400
    code = "invalid_signature"
    default_message = "Invalid webhook signature"


class InvalidPayload(MarketplaceError):
    status_code = 400
    code = "invalid_payload"
    default_message = "Invalid webhook payload"


class Forbidden(MarketplaceError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class UserNotOwner(Forbidden):
    code = "user_not_owner"
    default_message = "User does not own this order"


class KitchenNotOwner(Forbidden):
    code = "kitchen_not_owner"
    default_message = "Kitchen does not own this order"


class UserNotKitchenOwner(Forbidden):
    code = "user_not_kitchen_owner"
    default_message = "User does not own a kitchen"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class OrderNotFound(NotFound):
    code = "order_not_found"
    default_message = "Order not found"


class WalletNotFound(NotFound):
    code = "wallet_not_found"
    default_message = "Wallet not found"


class KitchenNotFound(NotFound):
    code = "kitchen_not_found"
    default_message = "Kitchen not found or is inactive"


class UserNotFound(NotFound):
    code = "user_not_found"
    default_message = "User not found"


class TransactionNotFound(NotFound):
    code = "transaction_not_found"
    default_message = "Transaction not found"


class PaymentAlreadyMade(MarketplaceError):
    status_code = 409
    code = "payment_already_made"
    default_message = "Payment has already been made for this order"


class GatewayError(MarketplaceError):
    status_code = 502
    code = "gateway_error"
    default_message = "Payment gateway request failed"


class UnexpectedError(MarketplaceError):
    pass


class PaymentRecordMissing(UnexpectedError):
    code = "payment_record_missing"
    default_message = "Order has no initial payment transaction"


class WithdrawalFailed(UnexpectedError):
    code = "withdrawal_failed"
    default_message = "Failed to place withdrawal request"

from decimal import Decimal
from enum import Enum
from tortoise import fields, models
import uuid


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"  # Created by checkout, nothing paid yet
    AWAITING_ACKNOWLEDGEMENT = "AWAITING_ACKNOWLEDGEMENT"  # Paid, kitchen has not responded
    PREPARING = "PREPARING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    ONLINE = "ONLINE"
    WALLET = "WALLET"


class Order(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.AWAITING_PAYMENT)
    payment_method = fields.CharEnumField(PaymentMethod)
    delivery_fee = fields.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    service_fee = fields.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    sub_total = fields.DecimalField(max_digits=14, decimal_places=2)
    total = fields.DecimalField(max_digits=14, decimal_places=2)
    delivery_address = fields.TextField(default="")
    delivery_date = fields.DatetimeField(null=True)
    dispatch_rider_note = fields.TextField(default="")
    # Frozen [{"meal_id", "price", "quantity"}] snapshot taken at checkout
    items = fields.JSONField(default=list)
    kitchen = fields.ForeignKeyField("models.Kitchen", related_name="orders")
    owner = fields.ForeignKeyField("models.User", related_name="orders")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("kitchen_id",),             # Kitchen order queries
            ("status",),                 # Status-based filtering
            ("owner_id",),               # Buyer order history
            ("created_at",),             # Time-based queries
            ("status", "created_at"),    # Composite: status with time
        ]


class OrderUpdate(models.Model):
    """Append-only history of applied status transitions."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="updates")
    status = fields.CharEnumField(OrderStatus)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "order_updates"
        indexes = [
            ("order_id", "created_at"),
        ]

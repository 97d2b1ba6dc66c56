from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field

from marketplace.models.order import OrderStatus, PaymentMethod


class CartItem(BaseModel):
    """One frozen cart line supplied by the cart collaborator at checkout."""
    meal_id: uuid.UUID
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    quantity: int = Field(..., gt=0, le=10_000)


class CheckoutRequest(BaseModel):
    """Schema for the checkout request body."""
    kitchen_id: uuid.UUID
    items: List[CartItem] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.ONLINE
    delivery_address: str = ""
    delivery_date: Optional[datetime] = None
    dispatch_rider_note: str = ""


class OrderItemResponse(BaseModel):
    meal_id: uuid.UUID
    price: Decimal
    quantity: int


class OrderDetailResponse(BaseModel):
    """Schema for fetching detailed order information."""
    id: uuid.UUID
    status: OrderStatus
    payment_method: PaymentMethod
    delivery_fee: Decimal
    service_fee: Decimal
    sub_total: Decimal
    total: Decimal
    delivery_address: str
    delivery_date: Optional[datetime] = None
    dispatch_rider_note: str
    items: List[OrderItemResponse]
    kitchen_id: uuid.UUID
    owner_id: uuid.UUID
    created_at: datetime
    updated_at: Optional[datetime] = None


class PayForOrderRequest(BaseModel):
    # `with` is a keyword, hence the alias
    with_: PaymentMethod = Field(..., alias="with")


class OrderStatusUpdate(BaseModel):
    """Schema for updating an order status."""
    status: OrderStatus
    as_kitchen: Optional[bool] = False


class OrderStatusUpdateResponse(BaseModel):
    order_id: uuid.UUID
    status: OrderStatus
    applied: bool
    message: str

"""
Payment gateway webhook events.

Both the event envelope and the invoice metadata are closed tagged unions:
an unknown `event` or metadata `kind` fails validation instead of falling
through to a default handler.
"""
import json
import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class OrderInvoiceMetadata(BaseModel):
    kind: Literal["order"] = "order"
    order_id: uuid.UUID


class TopupMetadata(BaseModel):
    kind: Literal["topup"] = "topup"
    user_id: uuid.UUID


InvoiceMetadata = Annotated[Union[OrderInvoiceMetadata, TopupMetadata], Field(discriminator="kind")]


class ChargeSuccessData(BaseModel):
    reference: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, le=99_999_999_999_999, description="Amount paid, in minor units (kobo).")
    metadata: InvoiceMetadata

    @field_validator("metadata", mode="before")
    @classmethod
    def decode_string_metadata(cls, value):
        # The gateway echoes metadata back as a JSON string when it was sent as one
        if isinstance(value, str):
            return json.loads(value)
        return value


class DedicatedAccountCustomer(BaseModel):
    id: str
    code: str = Field(..., alias="customer_code")
    email: str

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value):
        return str(value)


class DedicatedAccountBank(BaseModel):
    id: int
    name: str
    slug: str


class DedicatedAccount(BaseModel):
    id: int
    bank: DedicatedAccountBank
    account_name: str
    account_number: str
    active: bool


class DedicatedAccountAssignSuccessData(BaseModel):
    customer: DedicatedAccountCustomer
    dedicated_account: DedicatedAccount


class DedicatedAccountAssignFailedData(BaseModel):
    customer: DedicatedAccountCustomer


class ChargeSuccessEvent(BaseModel):
    event: Literal["charge.success"]
    data: ChargeSuccessData


class DedicatedAccountAssignSuccessEvent(BaseModel):
    event: Literal["dedicatedaccount.assign.success"]
    data: DedicatedAccountAssignSuccessData


class DedicatedAccountAssignFailedEvent(BaseModel):
    event: Literal["dedicatedaccount.assign.failed"]
    data: DedicatedAccountAssignFailedData


WebhookEvent = Annotated[
    Union[ChargeSuccessEvent, DedicatedAccountAssignSuccessEvent, DedicatedAccountAssignFailedEvent],
    Field(discriminator="event"),
]

webhook_event_adapter = TypeAdapter(WebhookEvent)

"""Request and response bodies for the payment endpoints (camelCase on the wire)."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from billpay.models.bill import NormalizedBill


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CapabilitiesResponse(CamelModel):
    biller_id: str
    biller_name: str
    provider: str
    supported_methods: list[str]
    is_active: bool
    is_valid_account: bool
    can_process_payment: bool


class ProcessPaymentResponse(CamelModel):
    success: bool
    transaction_id: str
    payment_url: Optional[str] = None
    status: str
    message: str
    gateway: str
    biller_name: str


class BillerSummary(CamelModel):
    biller_id: str
    name: str
    provider: str
    supported_methods: list[str]
    is_active: bool


class BillerList(CamelModel):
    billers: list[BillerSummary]


class StatusResponse(CamelModel):
    transaction_id: str
    status: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    gateway: str
    updated_at: str


class TokenResponse(CamelModel):
    success: bool
    token: str
    expires_at: str
    biller_name: str
    biller_id: str


class WebhookAck(CamelModel):
    received: bool = True


# Request bodies. Every field is optional here so the orchestrator can
# answer missing fields with its own error; wrong types fail at parse time.


class CustomerInfoBody(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ProcessPaymentRequest(CamelModel):
    biller_id: Optional[str] = None
    amount: Optional[Decimal] = None
    account_id: Optional[str] = None
    payment_method: Optional[str] = None
    currency: Optional[str] = None
    customer_info: Optional[CustomerInfoBody] = None
    metadata: Optional[dict[str, Any]] = None


class TokenRequest(CamelModel):
    user_login: Optional[str] = None
    account_number: Optional[str] = None
    biller_id: Optional[str] = None


class BillPaymentRequest(CamelModel):
    """A normalized bill from the intake pipeline plus how to pay it."""

    bill: NormalizedBill
    payment_method: str
    customer_info: Optional[CustomerInfoBody] = None

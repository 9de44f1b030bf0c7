"""
Payment endpoints.

GET  /payment/capabilities/{biller_id}  What a biller supports (optionally validates an account).
POST /payment/process                   Execute a payment.
POST /payment/bill                      Pay a normalized bill from the intake pipeline.
GET  /payment/billers                   List or search billers.
GET  /payment/status/{transaction_id}   Payment status.
POST /payment/token/{auth_provider}     Checkout widget token.
POST /payment/webhook/{gateway}         Provider status callbacks (always acknowledged).

Errors raised by the orchestrator are ``PaymentError`` subclasses and are
turned into JSON error bodies by the handler registered in ``billpay.main``.
"""

from typing import Optional

from fastapi import APIRouter, Header, Query, Request

from billpay.api.dependencies import Orchestrator
from billpay.api.schemas import (
    BillerList,
    BillerSummary,
    BillPaymentRequest,
    CapabilitiesResponse,
    CustomerInfoBody,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    StatusResponse,
    TokenRequest,
    TokenResponse,
    WebhookAck,
)
from billpay.engine.orchestrator import PaymentOutcome
from billpay.gateways.base import CustomerInfo
from billpay.models.biller import BillerRecord

router = APIRouter(prefix="/payment", tags=["payment"])


def _biller_summary(b: BillerRecord) -> BillerSummary:
    return BillerSummary(
        biller_id=b.biller_id,
        name=b.name,
        provider=b.provider_name,
        supported_methods=[m.value for m in b.supported_methods],
        is_active=b.is_active,
    )


def _customer_info(body: Optional[CustomerInfoBody]) -> Optional[CustomerInfo]:
    return CustomerInfo(**body.model_dump()) if body else None


def _payment_response(outcome: PaymentOutcome) -> ProcessPaymentResponse:
    r = outcome.response
    return ProcessPaymentResponse(
        success=True,
        transaction_id=r.transaction_id,
        payment_url=r.payment_url,
        status=r.status.value,
        message=r.message,
        gateway=r.gateway,
        biller_name=outcome.biller.name,
    )


@router.get("/capabilities/{biller_id}", response_model=CapabilitiesResponse)
async def get_capabilities(
    biller_id: str,
    orchestrator: Orchestrator,
    account_id: Optional[str] = Query(None, alias="accountId", description="Validate this account against the biller's gateway"),
):
    caps = await orchestrator.get_capabilities(biller_id, account_id)
    b = caps.biller
    return CapabilitiesResponse(
        biller_id=b.biller_id,
        biller_name=b.name,
        provider=b.provider_name,
        supported_methods=caps.supported_methods,
        is_active=b.is_active,
        is_valid_account=caps.is_valid_account,
        can_process_payment=caps.can_process_payment,
    )


@router.post("/process", response_model=ProcessPaymentResponse)
async def process_payment(orchestrator: Orchestrator, body: Optional[ProcessPaymentRequest] = None):
    """
    Execute a payment.

    Requires ``billerId``, ``amount``, ``accountId`` and ``paymentMethod``;
    ``currency`` defaults to the configured currency.
    """
    fields = body.model_dump(by_alias=True, exclude_none=True) if body else {}
    return _payment_response(await orchestrator.process_payment(fields))


@router.post("/bill", response_model=ProcessPaymentResponse)
async def pay_bill(body: BillPaymentRequest, orchestrator: Orchestrator):
    """Pay a normalized bill from the intake pipeline."""
    outcome = await orchestrator.process_bill(body.bill, body.payment_method, _customer_info(body.customer_info))
    return _payment_response(outcome)


@router.get("/billers", response_model=BillerList)
async def list_billers(
    orchestrator: Orchestrator,
    search: Optional[str] = Query(None, description="Case-insensitive match on name or id"),
):
    directory = orchestrator.directory
    billers = directory.search(search) if search else directory.list_active()
    return BillerList(billers=[_biller_summary(b) for b in billers])


@router.get("/status/{transaction_id}", response_model=StatusResponse)
async def get_status(transaction_id: str, orchestrator: Orchestrator):
    status = await orchestrator.get_status(transaction_id)
    return StatusResponse(
        transaction_id=status.transaction_id,
        status=status.status.value,
        amount=float(status.amount) if status.amount is not None else 0.0,
        currency=status.currency,
        gateway=status.gateway,
        updated_at=status.updated_at.isoformat(),
    )


@router.post("/token/{auth_provider}", response_model=TokenResponse)
async def issue_token(auth_provider: str, orchestrator: Orchestrator, body: Optional[TokenRequest] = None):
    fields = body.model_dump(by_alias=True, exclude_none=True) if body else {}
    biller, token = await orchestrator.issue_checkout_token(auth_provider, fields)
    return TokenResponse(
        success=True,
        token=token.token,
        expires_at=token.expires_at.isoformat(),
        biller_name=biller.name,
        biller_id=biller.biller_id,
    )


@router.post("/webhook/{gateway}", response_model=WebhookAck)
async def receive_webhook(
    gateway: str,
    request: Request,
    orchestrator: Orchestrator,
    x_signature: Optional[str] = Header(None),
):
    """Acknowledged even when processing fails; senders deliver at least once."""
    payload = await request.body()
    await orchestrator.receive_webhook(gateway, payload, x_signature)
    return WebhookAck(received=True)

"""
Payment orchestrator: the flow behind every payment endpoint.

For each payment request:

  1. Field validation (required fields, positive amount)
  2. Biller lookup in the directory
  3. Capability check (provider present, method offered)
  4. Gateway resolution through the factory (credentials checked here)
  5. Account validation by the gateway
  6. Payment creation, then in-process tracking of the transaction

Steps 1-5 never contact a payment provider, so a rejected request costs
nothing downstream. Provider failures are logged with provider, biller and
operation and re-raised; the API layer answers them with a generic
message.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from billpay.audit.logger import log_event
from billpay.auth.token_service import AuthToken, AuthTokenService
from billpay.directory.biller_directory import BillerDirectory
from billpay.engine.errors import (
    BillerNotFoundError,
    InvalidAccountError,
    PaymentError,
    ProviderError,
    UnsupportedMethodError,
    UnsupportedProviderError,
    ValidationError,
    WebhookVerificationError,
)
from billpay.engine.tracker import TransactionTracker
from billpay.engine.validation import (
    REQUIRED_FIELDS,
    check_biller_support,
    check_fields,
    invalid_text_fields,
    missing_fields,
    parse_amount,
)
from billpay.gateways.base import CustomerInfo, PaymentGateway, PaymentRequest, PaymentResponse, PaymentStatus, utcnow
from billpay.gateways.factory import GatewayFactory
from billpay.gateways.paymentus import PaymentusGateway
from billpay.gateways.stripe import StripeGateway
from billpay.models.bill import NormalizedBill
from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, PaymentState, Provider, RejectReason

logger = logging.getLogger("billpay.orchestrator")

# Reads the (not yet verified) transaction id a webhook refers to
WEBHOOK_TRANSACTION_ID: dict[Provider, Callable[[Mapping[str, Any]], Optional[str]]] = {
    Provider.PAYMENTUS: PaymentusGateway.webhook_transaction_id,
    Provider.STRIPE: StripeGateway.webhook_transaction_id,
}

TOKEN_FIELDS = ("userLogin", "accountNumber", "billerId")


@dataclass
class Capabilities:
    biller: BillerRecord
    is_valid_account: bool
    # Methods both the biller and its gateway offer
    supported_methods: list[str]

    @property
    def can_process_payment(self) -> bool:
        return self.biller.supports_payments and bool(self.supported_methods) and self.is_valid_account


@dataclass
class PaymentOutcome:
    biller: BillerRecord
    response: PaymentResponse


def _customer_info(raw: Any) -> Optional[CustomerInfo]:
    if not isinstance(raw, dict):
        return None
    return CustomerInfo(name=raw.get("name"), email=raw.get("email"), phone=raw.get("phone"))


class PaymentOrchestrator:
    """Coordinates directory, gateways and token issuance for request handlers."""

    def __init__(
        self,
        directory: BillerDirectory,
        factory: GatewayFactory,
        auth_service: AuthTokenService,
        tracker: Optional[TransactionTracker] = None,
        default_currency: str = "USD",
    ):
        self.directory = directory
        self.factory = factory
        self.auth_service = auth_service
        self.tracker = tracker or TransactionTracker()
        self.default_currency = default_currency

    def resolve_biller(self, biller_id: Optional[str]) -> BillerRecord:
        biller = self.directory.lookup(biller_id)
        if biller is None:
            raise BillerNotFoundError(biller_id or "")
        return biller

    async def get_capabilities(self, biller_id: str, account_id: Optional[str] = None) -> Capabilities:
        """
        Describe what a biller supports; with ``account_id`` also ask its gateway
        whether the account can be paid through it.
        """
        biller = self.resolve_biller(biller_id)
        if not biller.supports_payments:
            return Capabilities(biller=biller, is_valid_account=True, supported_methods=[])

        try:
            gateway = self.factory.create_gateway(biller)
        except PaymentError as e:
            logger.error(
                "Cannot build %s gateway for biller %s: %s",
                biller.provider_name,
                biller.biller_id,
                e,
            )
            return Capabilities(biller=biller, is_valid_account=not account_id, supported_methods=[])

        offered = gateway.supported_methods()
        methods = [m.value for m in biller.supported_methods if m in offered]
        is_valid_account = True
        if account_id:
            is_valid_account = await gateway.validate_biller(biller, account_id)
        return Capabilities(biller=biller, is_valid_account=is_valid_account, supported_methods=methods)

    async def process_payment(self, body: dict[str, Any]) -> PaymentOutcome:
        """
        Validate and execute one payment.

        Raises:
            ValidationError, BillerNotFoundError, UnsupportedProviderError,
            UnsupportedMethodError, InvalidAccountError: Before any provider call.
            ConfigurationError: The biller's gateway cannot be built.
            ProviderError: The provider call failed or timed out.
        """
        result = check_fields(body)
        if not result.valid:
            if result.reason == RejectReason.MISSING_FIELDS:
                raise ValidationError(result.message, required=REQUIRED_FIELDS)
            if result.reason == RejectReason.INVALID_FIELDS:
                raise ValidationError(result.message, error="Invalid request fields")
            raise ValidationError(result.message, error="Invalid amount")

        biller, gateway = await self._prepare(body["billerId"], body["paymentMethod"], body["accountId"])
        request = PaymentRequest(
            amount=parse_amount(body["amount"]),
            currency=body.get("currency") or self.default_currency,
            account_id=body["accountId"],
            biller_id=biller.biller_id,
            payment_method=PaymentMethod(body["paymentMethod"]),
            customer_info=_customer_info(body.get("customerInfo")),
            metadata=body.get("metadata") if isinstance(body.get("metadata"), dict) else None,
        )
        return await self._submit(biller, gateway, request)

    async def process_bill(
        self,
        bill: NormalizedBill,
        payment_method: str,
        customer_info: Optional[CustomerInfo] = None,
    ) -> PaymentOutcome:
        """
        Pay a bill handed over by the intake pipeline.

        Runs the same checks as ``process_payment``; the bill itself was
        already validated when it was parsed.
        """
        biller, gateway = await self._prepare(bill.biller_id, payment_method, bill.account_id)
        request = bill.to_payment_request(PaymentMethod(payment_method), self.default_currency, customer_info)
        return await self._submit(biller, gateway, request)

    async def _prepare(self, biller_id: str, payment_method: str, account_id: str) -> tuple[BillerRecord, PaymentGateway]:
        """Resolve the biller and its gateway; nothing here contacts a provider."""
        biller = self.resolve_biller(biller_id)

        result = check_biller_support(biller, payment_method)
        if not result.valid:
            self._reject(biller, result.reason, result.message)

        try:
            gateway = self.factory.create_gateway(biller)
        except PaymentError as e:
            logger.error(
                "Cannot build %s gateway for biller %s: %s",
                biller.provider_name,
                biller.biller_id,
                e,
            )
            raise

        result = check_biller_support(biller, payment_method, gateway.supported_methods())
        if not result.valid:
            self._reject(biller, result.reason, result.message, result.allowed_methods)

        if not await gateway.validate_biller(biller, account_id):
            log_event("payment_rejected", biller_id=biller.biller_id, details={"reason": "invalid_account"})
            raise InvalidAccountError("The provided account ID is not valid for this biller")

        return biller, gateway

    async def _submit(self, biller: BillerRecord, gateway: PaymentGateway, request: PaymentRequest) -> PaymentOutcome:
        log_event("payment_requested", biller_id=biller.biller_id, details={
            "gateway": gateway.name,
            "amount": str(request.amount),
            "currency": request.currency,
            "method": request.payment_method.value,
        })

        response = await self._create_payment(biller, gateway, request)

        # Only reached when the caller is still waiting for the result
        self.tracker.record(response, gateway, biller.biller_id, request.amount, request.currency)
        log_event("payment_created", biller_id=biller.biller_id, transaction_id=response.transaction_id, details={
            "gateway": response.gateway,
            "status": response.status.value,
        })
        return PaymentOutcome(biller=biller, response=response)

    async def _create_payment(self, biller: BillerRecord, gateway: PaymentGateway, request: PaymentRequest) -> PaymentResponse:
        try:
            return await gateway.create_payment(request)
        except ProviderError as e:
            logger.error(
                "Provider %s failed during %s for biller %s: %s",
                e.provider or gateway.name,
                e.operation or "create_payment",
                biller.biller_id,
                e,
            )
            log_event("payment_failed", biller_id=biller.biller_id, level=logging.ERROR, details={
                "provider": e.provider or gateway.name,
                "operation": e.operation or "create_payment",
                "upstream_status": e.upstream_status,
            })
            raise
        except asyncio.CancelledError:
            log_event("payment_abandoned", biller_id=biller.biller_id, level=logging.WARNING, details={
                "gateway": gateway.name,
            })
            raise

    def _reject(
        self,
        biller: BillerRecord,
        reason: RejectReason,
        message: str,
        allowed: Optional[list[str]] = None,
    ) -> None:
        log_event("payment_rejected", biller_id=biller.biller_id, details={"reason": reason.value})
        if reason == RejectReason.UNSUPPORTED_PROVIDER:
            raise UnsupportedProviderError(message)
        raise UnsupportedMethodError(
            message,
            supported_methods=allowed if allowed is not None else [m.value for m in biller.supported_methods],
        )

    async def get_status(self, transaction_id: str) -> PaymentStatus:
        """
        Live status from the gateway that created ``transaction_id``.

        Transactions this process did not create get a placeholder answer.
        """
        tracked = self.tracker.get(transaction_id)
        if tracked is None:
            return PaymentStatus(
                transaction_id=transaction_id,
                status=PaymentState.PENDING,
                gateway="unknown",
                updated_at=utcnow(),
                currency=self.default_currency,
            )

        status = await tracked.gateway.get_payment_status(transaction_id)
        if status.amount is None:
            status.amount = tracked.amount
        if status.currency is None:
            status.currency = tracked.currency
        self.tracker.update_status(transaction_id, status.status)
        return status

    async def issue_checkout_token(self, auth_provider: str, body: dict[str, Any]) -> tuple[BillerRecord, AuthToken]:
        """
        Issue a checkout widget token for a Paymentus biller.

        Raises:
            ValidationError: Missing fields.
            UnsupportedProviderError: Unknown auth provider, or the biller is not on it.
            BillerNotFoundError: No such active biller.
            TokenGenerationError: The auth provider call failed.
        """
        if missing_fields(body, TOKEN_FIELDS):
            raise ValidationError("Missing required fields", required=TOKEN_FIELDS)
        invalid = invalid_text_fields(body, TOKEN_FIELDS)
        if invalid:
            raise ValidationError(f"Fields must be strings: {', '.join(invalid)}", error="Invalid request fields")
        if auth_provider != Provider.PAYMENTUS.value:
            raise UnsupportedProviderError(
                f"Checkout tokens are not available for {auth_provider}",
                error="Provider not supported",
            )

        biller = self.resolve_biller(body["billerId"])
        if biller.provider != Provider.PAYMENTUS:
            raise UnsupportedProviderError(
                "This biller does not use Paymentus for payments",
                error="Provider not supported",
            )

        token = await self.auth_service.generate_token(
            body["userLogin"],
            body["accountNumber"],
            biller,
        )
        log_event("token_issued", biller_id=biller.biller_id, details={"expires_at": token.expires_at.isoformat()})
        return biller, token

    async def receive_webhook(self, gateway_name: str, payload: bytes, signature: Optional[str]) -> Optional[PaymentStatus]:
        """
        Apply a provider callback. Never raises: the sender must always get an
        acknowledgement, whatever happens here.

        Returns the status that was applied, or None.
        """
        try:
            return await self._apply_webhook(gateway_name, payload, signature)
        except WebhookVerificationError as e:
            log_event("webhook_rejected", level=logging.WARNING, details={"gateway": gateway_name, "reason": e.message})
        except Exception:
            logger.exception("Webhook processing failed for gateway %s", gateway_name)
        return None

    async def _apply_webhook(self, gateway_name: str, payload: bytes, signature: Optional[str]) -> Optional[PaymentStatus]:
        log_event("webhook_received", details={"gateway": gateway_name, "bytes": len(payload)})

        try:
            provider = Provider(gateway_name)
        except ValueError:
            log_event("webhook_rejected", level=logging.WARNING, details={"gateway": gateway_name, "reason": "unknown gateway"})
            return None

        read_transaction_id = WEBHOOK_TRANSACTION_ID.get(provider)
        if read_transaction_id is None:
            log_event("webhook_rejected", level=logging.WARNING, details={"gateway": gateway_name, "reason": "gateway takes no webhooks"})
            return None

        try:
            event = json.loads(payload)
        except ValueError:
            log_event("webhook_rejected", level=logging.WARNING, details={"gateway": gateway_name, "reason": "body is not JSON"})
            return None
        if not isinstance(event, dict):
            log_event("webhook_rejected", level=logging.WARNING, details={"gateway": gateway_name, "reason": "body is not an object"})
            return None

        transaction_id = read_transaction_id(event)
        tracked = self.tracker.get(transaction_id)
        if tracked is None or tracked.gateway.name != provider.value:
            log_event("webhook_rejected", transaction_id=transaction_id, level=logging.WARNING, details={
                "gateway": gateway_name,
                "reason": "unknown transaction",
            })
            return None

        update = await tracked.gateway.handle_webhook(payload, signature)
        if update is None:
            return None

        if update.status == PaymentState.COMPLETED:
            # Completion is only applied once the provider confirms it
            update = await tracked.gateway.get_payment_status(update.transaction_id)

        if not self.tracker.update_status(update.transaction_id, update.status):
            log_event("webhook_ignored", biller_id=tracked.biller_id, transaction_id=update.transaction_id, details={
                "status": update.status.value,
                "current": tracked.status.value,
            })
            return None

        log_event("webhook_applied", biller_id=tracked.biller_id, transaction_id=update.transaction_id, details={
            "status": update.status.value,
        })
        return update

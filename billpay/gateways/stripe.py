"""
Stripe gateway: direct capture through confirmed PaymentIntents.

The PaymentIntent is created and confirmed in one call, so most payments
come back ``completed`` or ``failed`` straight away. Bank debits may stay
``processing`` and are then reported as ``pending``.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx

from billpay.engine.errors import ConfigurationError, ProviderError
from billpay.gateways.base import (
    DEFAULT_TIMEOUT,
    HTTPGateway,
    PaymentRequest,
    PaymentResponse,
    PaymentStatus,
    new_transaction_id,
    utcnow,
    verify_signature,
)
from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, PaymentState, Provider

logger = logging.getLogger("billpay.gateway.stripe")

_METHOD_TYPES = {
    PaymentMethod.CARD: "card",
    PaymentMethod.BANK_TRANSFER: "us_bank_account",
}


@dataclass(frozen=True)
class StripeCredentials:
    secret_key: str
    stripe_account: str
    base_url: str
    webhook_secret: Optional[str] = None

    @classmethod
    def parse(cls, config: Mapping[str, Any]) -> "StripeCredentials":
        for required in ("secret_key", "stripe_account", "base_url"):
            if not config.get(required):
                raise ConfigurationError(
                    f"Missing Stripe credential: {required}",
                    field=required,
                )
        return cls(
            secret_key=config["secret_key"],
            stripe_account=config["stripe_account"],
            base_url=config["base_url"].rstrip("/"),
            webhook_secret=config.get("webhook_secret"),
        )


def map_status(raw: Optional[str]) -> PaymentState:
    if raw == "succeeded":
        return PaymentState.COMPLETED
    if raw in ("processing", "requires_capture", "requires_action"):
        return PaymentState.PENDING
    return PaymentState.FAILED


def _from_minor(amount: Optional[int]) -> Optional[Decimal]:
    if amount is None:
        return None
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class StripeGateway(HTTPGateway):
    """Gateway bound to one connected Stripe account."""

    def __init__(
        self,
        credentials: Mapping[str, Any],
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credentials = StripeCredentials.parse(credentials)
        super().__init__(client=client, timeout=timeout)

    @property
    def name(self) -> str:
        return Provider.STRIPE.value

    @property
    def stripe_account(self) -> str:
        return self.credentials.stripe_account

    @property
    def supports_webhooks(self) -> bool:
        return True

    def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.credentials.secret_key}",
            "Stripe-Account": self.stripe_account,
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        transaction_id = new_transaction_id("pi")
        logger.info(
            "Creating payment %s: %s %s on account %s",
            transaction_id,
            request.amount,
            request.currency,
            self.stripe_account,
        )

        form = {
            "amount": str(request.amount_minor),
            "currency": request.currency.lower(),
            "confirm": "true",
            "payment_method_types[]": _METHOD_TYPES.get(request.payment_method, "card"),
            "metadata[transaction_id]": transaction_id,
            "metadata[biller_id]": request.biller_id,
            "metadata[account_id]": request.account_id,
        }
        if request.customer_info and request.customer_info.email:
            form["receipt_email"] = request.customer_info.email

        result = await self._request(
            "create_payment",
            "POST",
            f"{self.credentials.base_url}/payment_intents",
            data=form,
            headers=self._headers(idempotency_key=transaction_id),
        )

        status = map_status(result.get("status"))
        redirect = (result.get("next_action") or {}).get("redirect_to_url") or {}
        messages = {
            PaymentState.COMPLETED: "Payment captured",
            PaymentState.PENDING: "Payment is processing",
            PaymentState.FAILED: "Payment was declined",
        }
        return PaymentResponse(
            transaction_id=transaction_id,
            status=status,
            gateway=self.name,
            message=messages[status],
            payment_url=redirect.get("url"),
            metadata={
                "stripeAccount": self.stripe_account,
                "accountId": request.account_id,
                "paymentIntent": result.get("id"),
            },
        )

    async def get_payment_status(self, transaction_id: str) -> PaymentStatus:
        result = await self._request(
            "get_payment_status",
            "GET",
            f"{self.credentials.base_url}/payment_intents/search",
            params={"query": f"metadata['transaction_id']:'{transaction_id}'"},
            headers=self._headers(),
        )
        matches = result.get("data") or []
        if not matches:
            raise ProviderError(
                f"No PaymentIntent for transaction {transaction_id}",
                provider=self.name,
                operation="get_payment_status",
                status_code=404,
            )
        intent = matches[0]
        return PaymentStatus(
            transaction_id=transaction_id,
            status=map_status(intent.get("status")),
            gateway=self.name,
            updated_at=utcnow(),
            amount=_from_minor(intent.get("amount")),
            currency=(intent.get("currency") or "").upper() or None,
            metadata={"stripeAccount": self.stripe_account, "paymentIntent": intent.get("id")},
        )

    async def validate_biller(self, biller: BillerRecord, account_id: str) -> bool:
        logger.debug("Validating biller %s for account %s", biller.biller_id, account_id)
        return (
            biller.provider == Provider.STRIPE
            and biller.provider_credentials.get("stripe_account") == self.stripe_account
        )

    def supported_methods(self) -> frozenset[PaymentMethod]:
        return frozenset(_METHOD_TYPES)

    @staticmethod
    def webhook_transaction_id(event: Mapping[str, Any]) -> Optional[str]:
        intent = (event.get("data") or {}).get("object") or {}
        return (intent.get("metadata") or {}).get("transaction_id")

    async def handle_webhook(self, payload: bytes, signature: Optional[str] = None) -> Optional[PaymentStatus]:
        verify_signature(self.credentials.webhook_secret, payload, signature)
        event = json.loads(payload)
        if not str(event.get("type", "")).startswith("payment_intent."):
            logger.info("Ignoring Stripe event %s", event.get("type"))
            return None

        transaction_id = self.webhook_transaction_id(event)
        if not transaction_id:
            logger.info("Ignoring PaymentIntent event without transaction_id metadata")
            return None

        intent = event["data"]["object"]
        return PaymentStatus(
            transaction_id=transaction_id,
            status=map_status(intent.get("status")),
            gateway=self.name,
            updated_at=utcnow(),
            amount=_from_minor(intent.get("amount")),
            currency=(intent.get("currency") or "").upper() or None,
            metadata={"stripeAccount": self.stripe_account, "event": event.get("type")},
        )

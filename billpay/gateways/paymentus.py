"""
Paymentus gateway: hosted checkout, asynchronous settlement.

A created payment is always ``pending``; the customer completes it on the
Paymentus checkout page and the final state arrives by webhook or by a
later status query.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx

from billpay.engine.errors import ConfigurationError
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

logger = logging.getLogger("billpay.gateway.paymentus")

# Paymentus payment states -> ours
_STATUS_MAP = {
    "PENDING": PaymentState.PENDING,
    "PROCESSING": PaymentState.PENDING,
    "ACCEPTED": PaymentState.COMPLETED,
    "SETTLED": PaymentState.COMPLETED,
    "DECLINED": PaymentState.FAILED,
    "CANCELLED": PaymentState.FAILED,
    "FAILED": PaymentState.FAILED,
}


@dataclass(frozen=True)
class PaymentusCredentials:
    api_key: str
    biller_code: str
    base_url: str
    checkout_url: str
    webhook_secret: Optional[str] = None

    @classmethod
    def parse(cls, config: Mapping[str, Any]) -> "PaymentusCredentials":
        for required in ("api_key", "biller_code", "base_url"):
            if not config.get(required):
                raise ConfigurationError(
                    f"Missing Paymentus credential: {required}",
                    field=required,
                )
        return cls(
            api_key=config["api_key"],
            biller_code=config["biller_code"],
            base_url=config["base_url"].rstrip("/"),
            checkout_url=(config.get("checkout_url") or config["base_url"]).rstrip("/"),
            webhook_secret=config.get("webhook_secret"),
        )


def map_status(raw: Optional[str]) -> PaymentState:
    return _STATUS_MAP.get((raw or "").upper(), PaymentState.PENDING)


class PaymentusGateway(HTTPGateway):
    """Gateway bound to one Paymentus biller code."""

    def __init__(
        self,
        credentials: Mapping[str, Any],
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.credentials = PaymentusCredentials.parse(credentials)
        super().__init__(client=client, timeout=timeout)

    @property
    def name(self) -> str:
        return Provider.PAYMENTUS.value

    @property
    def biller_code(self) -> str:
        return self.credentials.biller_code

    @property
    def supports_webhooks(self) -> bool:
        return True

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials.api_key}"}

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        transaction_id = new_transaction_id("pay")
        logger.info(
            "Creating payment %s: %s %s for biller code %s",
            transaction_id,
            request.amount,
            request.currency,
            self.biller_code,
        )

        body = {
            "referenceId": transaction_id,
            "billerCode": self.biller_code,
            "accountNumber": request.account_id,
            "amount": f"{request.amount:.2f}",
            "currency": request.currency,
            "paymentMethod": request.payment_method.value,
        }
        if request.customer_info:
            body["customer"] = {
                k: v
                for k, v in vars(request.customer_info).items()
                if v is not None
            }
        if request.metadata:
            body["metadata"] = request.metadata

        result = await self._request(
            "create_payment",
            "POST",
            f"{self.credentials.base_url}/payments",
            json=body,
            headers=self._headers(),
        )

        return PaymentResponse(
            transaction_id=transaction_id,
            status=PaymentState.PENDING,
            gateway=self.name,
            message="Payment initiated successfully",
            payment_url=f"{self.credentials.checkout_url}/checkout/{transaction_id}",
            metadata={
                "billerCode": self.biller_code,
                "accountId": request.account_id,
                "providerStatus": result.get("status"),
            },
        )

    async def get_payment_status(self, transaction_id: str) -> PaymentStatus:
        result = await self._request(
            "get_payment_status",
            "GET",
            f"{self.credentials.base_url}/payments/{transaction_id}",
            headers=self._headers(),
        )
        amount = result.get("amount")
        return PaymentStatus(
            transaction_id=transaction_id,
            status=map_status(result.get("status")),
            gateway=self.name,
            updated_at=utcnow(),
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=result.get("currency"),
            metadata={"billerCode": self.biller_code},
        )

    async def validate_biller(self, biller: BillerRecord, account_id: str) -> bool:
        logger.debug("Validating biller %s for account %s", biller.biller_id, account_id)
        return (
            biller.provider == Provider.PAYMENTUS
            and biller.provider_credentials.get("biller_code") == self.biller_code
        )

    def supported_methods(self) -> frozenset[PaymentMethod]:
        return frozenset({PaymentMethod.ACH, PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER})

    @staticmethod
    def webhook_transaction_id(event: Mapping[str, Any]) -> Optional[str]:
        return event.get("referenceId")

    async def handle_webhook(self, payload: bytes, signature: Optional[str] = None) -> Optional[PaymentStatus]:
        verify_signature(self.credentials.webhook_secret, payload, signature)
        event = json.loads(payload)
        transaction_id = self.webhook_transaction_id(event)
        if not transaction_id:
            logger.info("Ignoring Paymentus event without referenceId")
            return None

        amount = event.get("amount")
        return PaymentStatus(
            transaction_id=transaction_id,
            status=map_status(event.get("status")),
            gateway=self.name,
            updated_at=utcnow(),
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=event.get("currency"),
            metadata={"billerCode": self.biller_code, "event": event.get("eventType", "")},
        )

"""
Abstract payment gateway interface.

Every payment provider (Paymentus, Stripe, and the null gateway for billers
without online payment) implements this interface. A gateway instance is
bound to one biller's credentials; the GatewayFactory owns instance
lifetimes.
"""

import asyncio
import hashlib
import hmac
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import httpx

from billpay.engine.errors import (
    ProviderError,
    ProviderTimeoutError,
    UnsupportedProviderError,
    WebhookVerificationError,
)
from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, PaymentState

logger = logging.getLogger("billpay.gateway")

DEFAULT_TIMEOUT = 30.0


@dataclass
class CustomerInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class PaymentRequest:
    """One payment attempt."""

    amount: Decimal  # Positive, in major currency units
    currency: str  # ISO 4217
    account_id: str
    biller_id: str
    payment_method: PaymentMethod
    customer_info: Optional[CustomerInfo] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def amount_minor(self) -> int:
        return int((self.amount * 100).to_integral_value())


@dataclass
class PaymentResponse:
    """Result of creating a payment."""

    transaction_id: str
    status: PaymentState
    gateway: str
    message: str = ""
    payment_url: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentStatus:
    """Result of a status query."""

    transaction_id: str
    status: PaymentState
    gateway: str
    updated_at: datetime
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


def new_transaction_id(prefix: str) -> str:
    """Clock component plus 48 random bits, e.g. ``pay_1718000000000_3f9a0c1b7d2e``."""
    return f"{prefix}_{time.time_ns() // 1_000_000}_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def verify_signature(secret: Optional[str], payload: bytes, signature: Optional[str]) -> None:
    """
    Check an HMAC-SHA256 hex signature over the raw webhook body.

    Raises:
        WebhookVerificationError: No secret configured, no signature sent,
            or the signature does not match.
    """
    if not secret:
        raise WebhookVerificationError("Webhook secret is not configured")
    if not signature:
        raise WebhookVerificationError("Missing webhook signature")
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise WebhookVerificationError("Webhook signature mismatch")


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable gateway identifier (e.g. 'paymentus'), used in responses and cache keys."""
        ...

    @abstractmethod
    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        """
        Submit a payment to the provider.

        Asynchronous providers answer ``pending``; synchronous ones answer
        ``completed`` or ``failed``.

        Raises:
            ProviderError: The provider call failed or timed out.
            UnsupportedProviderError: The gateway cannot take payments.
        """
        ...

    @abstractmethod
    async def get_payment_status(self, transaction_id: str) -> PaymentStatus:
        ...

    @abstractmethod
    async def validate_biller(self, biller: BillerRecord, account_id: str) -> bool:
        """True only if ``biller`` is configured for this very gateway instance."""
        ...

    @abstractmethod
    def supported_methods(self) -> frozenset[PaymentMethod]:
        ...

    @property
    def supports_webhooks(self) -> bool:
        return False

    async def handle_webhook(self, payload: bytes, signature: Optional[str] = None) -> Optional[PaymentStatus]:
        """
        Verify and parse an asynchronous status callback.

        Returns the status update carried by the callback, or None when the
        event does not concern a payment.
        """
        raise UnsupportedProviderError(f"Gateway {self.name} does not accept webhooks")


class HTTPGateway(PaymentGateway):
    """
    Base for gateways that talk to a provider REST API.

    Every call is a single attempt bounded by ``timeout`` seconds.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = DEFAULT_TIMEOUT):
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, **kwargs),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error("%s %s timed out after %.1fs", self.name, operation, self._timeout)
            raise ProviderTimeoutError(
                f"{self.name} {operation} timed out",
                provider=self.name,
                operation=operation,
            ) from e
        except httpx.HTTPError as e:
            logger.error("%s %s transport error: %s", self.name, operation, e)
            raise ProviderError(
                f"{self.name} {operation} failed: {type(e).__name__}",
                provider=self.name,
                operation=operation,
            ) from e

        if response.status_code >= 400:
            logger.error(
                "%s %s returned HTTP %d",
                self.name,
                operation,
                response.status_code,
            )
            logger.debug("%s %s error body: %s", self.name, operation, response.text[:500])
            raise ProviderError(
                f"{self.name} {operation} returned HTTP {response.status_code}",
                provider=self.name,
                operation=operation,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} {operation} returned a non-JSON body",
                provider=self.name,
                operation=operation,
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise ProviderError(
                f"{self.name} {operation} returned a JSON {type(body).__name__}, expected an object",
                provider=self.name,
                operation=operation,
                status_code=response.status_code,
            )
        return body

"""
Gateway factory: one cached gateway per (provider, biller).

Gateways are validated against a specific biller code or connected account
when they are built, so two billers on the same provider never share an
instance. Construction happens under a lock, which makes the
check/construct/insert sequence atomic for concurrent first requests.
"""

import logging
import threading
from typing import Any, Optional

import httpx

from billpay.config import Settings
from billpay.engine.errors import UnsupportedProviderError
from billpay.gateways.base import PaymentGateway
from billpay.gateways.paymentus import PaymentusGateway
from billpay.gateways.simulator import ProviderSimulator
from billpay.gateways.stripe import StripeGateway
from billpay.gateways.unsupported import UnsupportedGateway
from billpay.models.biller import BillerRecord
from billpay.models.enums import Provider

logger = logging.getLogger("billpay.gateway.factory")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for all provider calls; simulated unless switched off."""
    transport = None
    if settings.provider_simulation:
        transport = ProviderSimulator(
            latency_ms=settings.mock_latency_ms,
            failure_rate=settings.mock_failure_rate,
            token_prefix=settings.paymentus_token_prefix,
        )
    return httpx.AsyncClient(timeout=settings.provider_timeout_seconds, transport=transport)


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Biller-level values win over environment defaults; empty values do not count."""
    merged = {k: v for k, v in defaults.items() if v}
    merged.update({k: v for k, v in overrides.items() if v})
    return merged


class GatewayFactory:
    """Resolves a biller to its gateway and owns the gateway cache."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._client = client or build_http_client(settings)
        self._gateways: dict[tuple[str, str], PaymentGateway] = {}
        self._lock = threading.Lock()

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def create_gateway(self, biller: BillerRecord) -> PaymentGateway:
        """
        Return the cached gateway for ``biller``, building it on first use.

        Raises:
            ConfigurationError: Required credentials are missing.
            UnsupportedProviderError: The provider is outside the supported set.
        """
        key = (biller.provider_name, biller.biller_id)
        with self._lock:
            gateway = self._gateways.get(key)
            if gateway is None:
                gateway = self._build(biller)
                self._gateways[key] = gateway
                logger.info("Created %s gateway for biller %s", gateway.name, biller.biller_id)
            return gateway

    def _build(self, biller: BillerRecord) -> PaymentGateway:
        s = self._settings
        timeout = s.provider_timeout_seconds

        match biller.provider:
            case Provider.PAYMENTUS:
                credentials = _merge(
                    {
                        "api_key": s.paymentus_api_key,
                        "base_url": s.paymentus_base_url,
                        "checkout_url": s.paymentus_checkout_url,
                        "webhook_secret": s.paymentus_webhook_secret,
                    },
                    biller.provider_credentials,
                )
                return PaymentusGateway(credentials, client=self._client, timeout=timeout)
            case Provider.STRIPE:
                credentials = _merge(
                    {
                        "secret_key": s.stripe_secret_key,
                        "base_url": s.stripe_base_url,
                        "webhook_secret": s.stripe_webhook_secret,
                    },
                    biller.provider_credentials,
                )
                return StripeGateway(credentials, client=self._client, timeout=timeout)
            case Provider.NONE:
                return UnsupportedGateway()
            case _:
                raise UnsupportedProviderError(f"Unsupported payment provider: {biller.provider_name}")

    def clear_cache(self) -> None:
        with self._lock:
            self._gateways.clear()
        logger.info("Gateway cache cleared")

    def cached_gateways(self) -> list[str]:
        with self._lock:
            return [f"{provider}_{biller_id}" for provider, biller_id in self._gateways]

    async def aclose(self) -> None:
        await self._client.aclose()

"""Shared test fixtures."""

import hashlib
import hmac
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from billpay.auth.token_service import AuthConfig, AuthTokenService
from billpay.config import Settings
from billpay.directory.biller_directory import BillerDirectory
from billpay.engine.orchestrator import PaymentOrchestrator
from billpay.gateways.factory import GatewayFactory
from billpay.gateways.simulator import ProviderSimulator
from billpay.main import create_app

PAYMENTUS_WEBHOOK_SECRET = "whsec_paymentus_test"
STRIPE_WEBHOOK_SECRET = "whsec_stripe_test"
PRE_SHARED_KEY = "test-pre-shared-key-0123456789abcdef"


def sign(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def build_orchestrator(
    settings: Settings,
    transport: httpx.AsyncBaseTransport,
    directory: Optional[BillerDirectory] = None,
) -> PaymentOrchestrator:
    client = httpx.AsyncClient(transport=transport)
    factory = GatewayFactory(settings, client=client)
    return PaymentOrchestrator(
        directory=directory or BillerDirectory.with_defaults(settings),
        factory=factory,
        auth_service=AuthTokenService(AuthConfig.from_settings(settings), client=client),
        default_currency=settings.default_currency,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        provider_simulation=True,
        mock_latency_ms=0,
        mock_failure_rate=0.0,
        paymentus_webhook_secret=PAYMENTUS_WEBHOOK_SECRET,
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        paymentus_pre_shared_key=PRE_SHARED_KEY,
    )


@pytest.fixture
def simulator() -> ProviderSimulator:
    return ProviderSimulator()


@pytest.fixture
def http_client(simulator: ProviderSimulator) -> httpx.AsyncClient:
    # In-memory transport, nothing to close
    return httpx.AsyncClient(transport=simulator)


@pytest.fixture
def directory(settings: Settings) -> BillerDirectory:
    return BillerDirectory.with_defaults(settings)


@pytest.fixture
def factory(settings: Settings, http_client: httpx.AsyncClient) -> GatewayFactory:
    return GatewayFactory(settings, client=http_client)


@pytest.fixture
def orchestrator(
    settings: Settings,
    directory: BillerDirectory,
    factory: GatewayFactory,
    http_client: httpx.AsyncClient,
) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        directory=directory,
        factory=factory,
        auth_service=AuthTokenService(AuthConfig.from_settings(settings), client=http_client),
        default_currency=settings.default_currency,
    )


@pytest_asyncio.fixture
async def api(settings: Settings, orchestrator: PaymentOrchestrator):
    """HTTP client bound to an app that uses the test orchestrator."""
    app = create_app(settings, orchestrator=orchestrator)
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

"""Tests for the provider gateways."""

import json
from decimal import Decimal

import httpx
import pytest

from billpay.engine.errors import (
    ConfigurationError,
    ProviderError,
    ProviderTimeoutError,
    UnsupportedProviderError,
    WebhookVerificationError,
)
from billpay.gateways.base import PaymentRequest, new_transaction_id
from billpay.gateways.paymentus import PaymentusGateway
from billpay.gateways.simulator import ProviderSimulator
from billpay.gateways.stripe import StripeGateway
from billpay.gateways.unsupported import UnsupportedGateway
from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, PaymentState, Provider

from conftest import PAYMENTUS_WEBHOOK_SECRET, STRIPE_WEBHOOK_SECRET, sign

PAYMENTUS_CREDS = {
    "api_key": "key_test",
    "biller_code": "ACME_WATER_001",
    "base_url": "https://api.paymentus.test/v1",
    "checkout_url": "https://checkout.paymentus.test",
    "webhook_secret": PAYMENTUS_WEBHOOK_SECRET,
}
STRIPE_CREDS = {
    "secret_key": "sk_test",
    "stripe_account": "acct_water",
    "base_url": "https://api.stripe.test/v1",
    "webhook_secret": STRIPE_WEBHOOK_SECRET,
}


def _request(method=PaymentMethod.ACH, biller_id="UTIL123", amount="50.00"):
    return PaymentRequest(
        amount=Decimal(amount),
        currency="USD",
        account_id="ACCT-1",
        biller_id=biller_id,
        payment_method=method,
    )


def _failing_client(status=500):
    def handler(request):
        return httpx.Response(status, json={"error": "internal provider detail"})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestTransactionIds:
    def test_prefix_and_shape(self):
        tx = new_transaction_id("pay")
        prefix, millis, rand = tx.split("_")
        assert prefix == "pay"
        assert millis.isdigit()
        assert len(rand) == 12

    def test_unique(self):
        ids = {new_transaction_id("pay") for _ in range(2000)}
        assert len(ids) == 2000


class TestPaymentusGateway:
    @pytest.mark.asyncio
    async def test_create_payment_is_pending_with_checkout_url(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        response = await gateway.create_payment(_request())

        assert response.status == PaymentState.PENDING
        assert response.gateway == "paymentus"
        assert response.transaction_id.startswith("pay_")
        assert response.payment_url == f"https://checkout.paymentus.test/checkout/{response.transaction_id}"
        assert response.metadata["billerCode"] == "ACME_WATER_001"

    @pytest.mark.asyncio
    async def test_create_payment_sends_biller_code(self, http_client, simulator):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        await gateway.create_payment(_request())

        sent = simulator.requests[-1]
        body = json.loads(sent.content)
        assert sent.headers["Authorization"] == "Bearer key_test"
        assert body["billerCode"] == "ACME_WATER_001"
        assert body["amount"] == "50.00"
        assert body["paymentMethod"] == "ACH"

    @pytest.mark.asyncio
    async def test_status_round_trip(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        response = await gateway.create_payment(_request())
        status = await gateway.get_payment_status(response.transaction_id)

        assert status.transaction_id == response.transaction_id
        assert status.gateway == response.gateway
        assert status.status == PaymentState.PENDING
        assert status.amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_status_after_settlement(self, http_client, simulator):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        response = await gateway.create_payment(_request())
        simulator.set_status(response.transaction_id, "ACCEPTED")

        status = await gateway.get_payment_status(response.transaction_id)
        assert status.status == PaymentState.COMPLETED

    @pytest.mark.asyncio
    async def test_validate_biller_matching_code(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        biller = BillerRecord("UTIL123", "Acme", Provider.PAYMENTUS, {"biller_code": "ACME_WATER_001"})
        assert await gateway.validate_biller(biller, "ACCT-1") is True

    @pytest.mark.asyncio
    async def test_validate_biller_rejects_other_code(self, http_client):
        """Same provider, different merchant code: must not route through this gateway."""
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        biller = BillerRecord("ELEC001", "Power", Provider.PAYMENTUS, {"biller_code": "POWER_GRID_001"})
        assert await gateway.validate_biller(biller, "ACCT-1") is False

    @pytest.mark.asyncio
    async def test_validate_biller_rejects_other_provider(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        biller = BillerRecord("X", "X", Provider.STRIPE, {"biller_code": "ACME_WATER_001"})
        assert await gateway.validate_biller(biller, "ACCT-1") is False

    def test_supported_methods(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        assert gateway.supported_methods() == {PaymentMethod.ACH, PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER}

    @pytest.mark.parametrize("missing", ["api_key", "biller_code", "base_url"])
    def test_missing_credential_fails_at_construction(self, missing, http_client):
        creds = {k: v for k, v in PAYMENTUS_CREDS.items() if k != missing}
        with pytest.raises(ConfigurationError) as exc:
            PaymentusGateway(creds, client=http_client)
        assert exc.value.field == missing
        assert missing in exc.value.message


class TestStripeGateway:
    @pytest.mark.asyncio
    async def test_card_payment_completes(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        response = await gateway.create_payment(_request(PaymentMethod.CARD, biller_id="INS456"))

        assert response.status == PaymentState.COMPLETED
        assert response.gateway == "stripe"
        assert response.transaction_id.startswith("pi_")
        assert response.payment_url is None

    @pytest.mark.asyncio
    async def test_bank_debit_is_pending(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        response = await gateway.create_payment(_request(PaymentMethod.BANK_TRANSFER, biller_id="GAS002"))
        assert response.status == PaymentState.PENDING

    @pytest.mark.asyncio
    async def test_request_shape(self, http_client, simulator):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        response = await gateway.create_payment(_request(PaymentMethod.CARD, amount="12.34"))

        sent = simulator.requests[-1]
        assert sent.headers["Stripe-Account"] == "acct_water"
        assert sent.headers["Idempotency-Key"] == response.transaction_id
        form = dict(httpx.QueryParams(sent.content.decode()))
        assert form["amount"] == "1234"
        assert form["currency"] == "usd"
        assert form["confirm"] == "true"

    @pytest.mark.asyncio
    async def test_status_round_trip(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        response = await gateway.create_payment(_request(PaymentMethod.CARD, amount="12.34"))
        status = await gateway.get_payment_status(response.transaction_id)

        assert status.transaction_id == response.transaction_id
        assert status.gateway == "stripe"
        assert status.status == PaymentState.COMPLETED
        assert status.amount == Decimal("12.34")
        assert status.currency == "USD"

    @pytest.mark.asyncio
    async def test_status_unknown_transaction(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        with pytest.raises(ProviderError):
            await gateway.get_payment_status("pi_0_missing")

    @pytest.mark.asyncio
    async def test_validate_biller_rejects_other_account(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        ours = BillerRecord("INS456", "Ins", Provider.STRIPE, {"stripe_account": "acct_water"})
        theirs = BillerRecord("GAS002", "Gas", Provider.STRIPE, {"stripe_account": "acct_gas"})
        assert await gateway.validate_biller(ours, "A") is True
        assert await gateway.validate_biller(theirs, "A") is False

    def test_supported_methods(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        assert gateway.supported_methods() == {PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER}


class TestUnsupportedGateway:
    @pytest.mark.asyncio
    async def test_create_payment_names_biller(self):
        with pytest.raises(UnsupportedProviderError) as exc:
            await UnsupportedGateway().create_payment(_request(biller_id="GOV789"))
        assert "GOV789" in exc.value.message

    @pytest.mark.asyncio
    async def test_status_always_fails(self):
        with pytest.raises(UnsupportedProviderError):
            await UnsupportedGateway().get_payment_status("anything")

    @pytest.mark.asyncio
    async def test_never_validates(self):
        biller = BillerRecord("GOV789", "City Tax", Provider.NONE)
        assert await UnsupportedGateway().validate_biller(biller, "ACCT-1") is False

    def test_no_methods(self):
        assert UnsupportedGateway().supported_methods() == frozenset()
        assert UnsupportedGateway().name == "none"

    @pytest.mark.asyncio
    async def test_no_webhooks(self):
        with pytest.raises(UnsupportedProviderError):
            await UnsupportedGateway().handle_webhook(b"{}", "sig")


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_http_error_becomes_provider_error(self):
        async with _failing_client(500) as client:
            gateway = PaymentusGateway(PAYMENTUS_CREDS, client=client)
            with pytest.raises(ProviderError) as exc:
                await gateway.create_payment(_request())
        assert exc.value.provider == "paymentus"
        assert exc.value.operation == "create_payment"
        assert exc.value.upstream_status == 500
        assert "internal provider detail" not in exc.value.message

    @pytest.mark.asyncio
    async def test_connection_error_becomes_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            gateway = StripeGateway(STRIPE_CREDS, client=client)
            with pytest.raises(ProviderError):
                await gateway.create_payment(_request(PaymentMethod.CARD))

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        async with httpx.AsyncClient(transport=ProviderSimulator(latency_ms=500)) as client:
            gateway = PaymentusGateway(PAYMENTUS_CREDS, client=client, timeout=0.05)
            with pytest.raises(ProviderTimeoutError):
                await gateway.create_payment(_request())

    @pytest.mark.asyncio
    async def test_simulated_outage(self):
        async with httpx.AsyncClient(transport=ProviderSimulator(failure_rate=1.0)) as client:
            gateway = PaymentusGateway(PAYMENTUS_CREDS, client=client)
            with pytest.raises(ProviderError) as exc:
                await gateway.create_payment(_request())
        assert exc.value.upstream_status == 503

    @pytest.mark.asyncio
    async def test_reply_that_is_not_an_object(self):
        def handler(request):
            return httpx.Response(200, json=["PENDING"])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            gateway = PaymentusGateway(PAYMENTUS_CREDS, client=client)
            with pytest.raises(ProviderError) as exc:
                await gateway.get_payment_status("pay_1_abc")
        assert exc.value.operation == "get_payment_status"
        assert exc.value.upstream_status == 200


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_paymentus_signed_webhook(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        payload = json.dumps({"referenceId": "pay_1_abc", "status": "ACCEPTED", "amount": "50.00"}).encode()

        update = await gateway.handle_webhook(payload, sign(PAYMENTUS_WEBHOOK_SECRET, payload))
        assert update.transaction_id == "pay_1_abc"
        assert update.status == PaymentState.COMPLETED
        assert update.amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        payload = b'{"referenceId": "pay_1_abc", "status": "ACCEPTED"}'
        with pytest.raises(WebhookVerificationError):
            await gateway.handle_webhook(payload, sign("wrong-secret", payload))

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, http_client):
        gateway = PaymentusGateway(PAYMENTUS_CREDS, client=http_client)
        with pytest.raises(WebhookVerificationError):
            await gateway.handle_webhook(b'{"referenceId": "pay_1_abc"}', None)

    @pytest.mark.asyncio
    async def test_no_secret_configured_rejects_everything(self, http_client):
        creds = {k: v for k, v in PAYMENTUS_CREDS.items() if k != "webhook_secret"}
        gateway = PaymentusGateway(creds, client=http_client)
        payload = b'{"referenceId": "pay_1_abc"}'
        with pytest.raises(WebhookVerificationError):
            await gateway.handle_webhook(payload, sign(PAYMENTUS_WEBHOOK_SECRET, payload))

    @pytest.mark.asyncio
    async def test_stripe_payment_intent_event(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        payload = json.dumps({
            "type": "payment_intent.payment_failed",
            "data": {"object": {
                "id": "pi_x",
                "status": "requires_payment_method",
                "amount": 5000,
                "currency": "usd",
                "metadata": {"transaction_id": "pi_1_abc"},
            }},
        }).encode()

        update = await gateway.handle_webhook(payload, sign(STRIPE_WEBHOOK_SECRET, payload))
        assert update.transaction_id == "pi_1_abc"
        assert update.status == PaymentState.FAILED
        assert update.amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_stripe_ignores_other_events(self, http_client):
        gateway = StripeGateway(STRIPE_CREDS, client=http_client)
        payload = b'{"type": "customer.created", "data": {"object": {}}}'
        assert await gateway.handle_webhook(payload, sign(STRIPE_WEBHOOK_SECRET, payload)) is None

"""
In-process provider simulator for development and tests.

Answers the Paymentus, Stripe and Paymentus auth endpoints that the
gateways call, so the whole payment flow runs without network access:
  - Configurable latency (default 100ms)
  - Configurable failure rate (HTTP 503)
  - Remembers created payments so status queries and webhooks line up

Plug it in as the transport of the shared httpx client. With
``provider_simulation`` switched off the same client talks to the real
provider base URLs.
"""

import asyncio
import json
import random
import re
import uuid
from typing import Any, Optional
from urllib.parse import parse_qs

import httpx

_SEARCH_KEY = re.compile(r"metadata\['transaction_id'\]:'([^']+)'")


class ProviderSimulator(httpx.AsyncBaseTransport):
    """Fake provider backend served through httpx."""

    def __init__(
        self,
        latency_ms: int = 0,
        failure_rate: float = 0.0,
        token_prefix: str = "pyt_",
    ):
        self.latency_ms = latency_ms
        self.failure_rate = failure_rate
        self.token_prefix = token_prefix
        self.payments: dict[str, dict[str, Any]] = {}
        self.intents: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []

    def set_status(self, transaction_id: str, status: str) -> None:
        """Move a stored payment to a provider-native status (e.g. 'ACCEPTED', 'succeeded')."""
        if transaction_id in self.payments:
            self.payments[transaction_id]["status"] = status
        elif transaction_id in self.intents:
            self.intents[transaction_id]["status"] = status
        else:
            raise KeyError(transaction_id)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)

        if self.latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self.latency_ms * jitter / 1000)

        if random.random() < self.failure_rate:
            return httpx.Response(503, json={"error": "Simulated provider outage"})

        parts = [p for p in request.url.path.split("/") if p]
        method = request.method

        if method == "POST" and parts[-1:] == ["payments"]:
            return self._create_paymentus(request)
        if method == "GET" and parts[-2:-1] == ["payments"]:
            return self._get_stored(self.payments, parts[-1])
        if method == "GET" and parts[-2:] == ["payment_intents", "search"]:
            return self._search_intents(request)
        if method == "POST" and parts[-1:] == ["payment_intents"]:
            return self._create_intent(request)
        if method == "POST" and parts[-3:-1] == ["api", "token"]:
            return self._issue_token(request)

        return httpx.Response(404, json={"error": f"No simulated route for {method} {request.url.path}"})

    def _create_paymentus(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        reference = body.get("referenceId")
        if not reference or not body.get("billerCode"):
            return httpx.Response(400, json={"error": "referenceId and billerCode are required"})
        self.payments[reference] = {
            "referenceId": reference,
            "status": "PENDING",
            "amount": body.get("amount"),
            "currency": body.get("currency"),
            "billerCode": body.get("billerCode"),
        }
        return httpx.Response(201, json=self.payments[reference])

    def _create_intent(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        transaction_id = form.get("metadata[transaction_id]")
        if not transaction_id:
            return httpx.Response(400, json={"error": {"message": "metadata[transaction_id] required"}})
        bank_debit = form.get("payment_method_types[]") == "us_bank_account"
        intent = {
            "id": f"pi_sim_{uuid.uuid4().hex[:16]}",
            "object": "payment_intent",
            "amount": int(form.get("amount", "0")),
            "currency": form.get("currency"),
            "status": "processing" if bank_debit else "succeeded",
            "metadata": {"transaction_id": transaction_id},
        }
        self.intents[transaction_id] = intent
        return httpx.Response(200, json=intent)

    def _search_intents(self, request: httpx.Request) -> httpx.Response:
        match = _SEARCH_KEY.search(request.url.params.get("query", ""))
        found = self.intents.get(match.group(1)) if match else None
        return httpx.Response(200, json={"object": "search_result", "data": [found] if found else []})

    def _issue_token(self, request: httpx.Request) -> httpx.Response:
        if not request.headers.get("Authorization", "").startswith("Bearer "):
            return httpx.Response(401, json={"error": "missing assertion"})
        return httpx.Response(200, json={"token": f"{self.token_prefix}{uuid.uuid4().hex}"})

    @staticmethod
    def _get_stored(store: dict[str, dict[str, Any]], key: str) -> httpx.Response:
        record: Optional[dict[str, Any]] = store.get(key)
        if record is None:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=record)

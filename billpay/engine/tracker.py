"""
In-process record of payments created by this process.

Maps a transaction id to the gateway instance that created it so status
queries and webhooks reach the right biller's credentials. Entries live as
long as the process; nothing is persisted.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from billpay.gateways.base import PaymentGateway, PaymentResponse, utcnow
from billpay.models.enums import PaymentState

TERMINAL_STATES = frozenset({PaymentState.COMPLETED, PaymentState.FAILED})


@dataclass
class TrackedPayment:
    transaction_id: str
    biller_id: str
    gateway: PaymentGateway
    amount: Decimal
    currency: str
    status: PaymentState
    created_at: datetime
    updated_at: datetime


class TransactionTracker:
    def __init__(self):
        self._payments: dict[str, TrackedPayment] = {}
        self._lock = threading.Lock()

    def record(
        self,
        response: PaymentResponse,
        gateway: PaymentGateway,
        biller_id: str,
        amount: Decimal,
        currency: str,
    ) -> TrackedPayment:
        now = utcnow()
        tracked = TrackedPayment(
            transaction_id=response.transaction_id,
            biller_id=biller_id,
            gateway=gateway,
            amount=amount,
            currency=currency,
            status=response.status,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._payments[response.transaction_id] = tracked
        return tracked

    def get(self, transaction_id: Optional[str]) -> Optional[TrackedPayment]:
        if not transaction_id:
            return None
        with self._lock:
            return self._payments.get(transaction_id)

    def update_status(self, transaction_id: str, status: PaymentState) -> bool:
        """
        Move a payment to ``status``. Completed and failed payments never
        change again, so late or replayed updates are refused.
        """
        with self._lock:
            tracked = self._payments.get(transaction_id)
            if tracked is None:
                return False
            if tracked.status in TERMINAL_STATES and status != tracked.status:
                return False
            tracked.status = status
            tracked.updated_at = utcnow()
            return True

    def __len__(self) -> int:
        return len(self._payments)

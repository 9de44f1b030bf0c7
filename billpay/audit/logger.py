"""
Audit trail for payment operations.

Every significant payment event gets one structured log line with:
  - Biller ID
  - Transaction ID (once the provider call returned one)
  - Action (what happened)
  - Details (context, rejection reasons, provider/operation on failure)

Storage of these lines is left to the log pipeline; this module never
writes transaction state anywhere.
"""

import json
import logging
from typing import Any, Optional

logger = logging.getLogger("billpay.audit")


def log_event(
    action: str,
    biller_id: Optional[str] = None,
    transaction_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    level: int = logging.INFO,
) -> None:
    """
    Emit one audit line.

    Args:
        action: What happened (e.g. "payment_requested", "payment_created", "webhook_rejected").
        biller_id: The biller the event concerns.
        transaction_id: Provider transaction id, if one exists yet.
        details: Arbitrary context (serialized to JSON, truncated).
        level: Log level for the line.
    """
    logger.log(
        level,
        "AUDIT | biller=%s txn=%s action=%s | %s",
        biller_id or "-",
        transaction_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )

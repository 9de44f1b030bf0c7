"""
Payment request validation with categorized rejection reasons.

Before any provider is contacted we verify:
  1. All required fields are present, and text fields are strings
  2. Amount parses as a positive decimal
  3. The biller has a payment provider
  4. The biller offers the requested payment method
  5. The resolved gateway can process that method

Each check returns a structured result so the orchestrator can turn it into
the matching error without reaching the gateway.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, RejectReason

REQUIRED_FIELDS = ("billerId", "amount", "accountId", "paymentMethod")
TEXT_FIELDS = ("billerId", "accountId", "paymentMethod", "currency")

CENTS = Decimal("0.01")


@dataclass
class ValidationResult:
    """Result of a request check."""

    valid: bool
    reason: Optional[RejectReason] = None
    message: str = ""
    missing: list[str] = field(default_factory=list)
    allowed_methods: list[str] = field(default_factory=list)


def missing_fields(body: dict[str, Any], required: Iterable[str] = REQUIRED_FIELDS) -> list[str]:
    return [name for name in required if body.get(name) in (None, "")]


def invalid_text_fields(body: dict[str, Any], names: Iterable[str] = TEXT_FIELDS) -> list[str]:
    """Fields that are present but not strings."""
    return [name for name in names if body.get(name) is not None and not isinstance(body[name], str)]


def parse_amount(raw: Any) -> Optional[Decimal]:
    """Positive amount quantized to cents, or None."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        amount = Decimal(str(raw)).quantize(CENTS)
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def check_fields(body: dict[str, Any]) -> ValidationResult:
    """Checks 1-2: run before the biller is resolved."""
    missing = missing_fields(body)
    if missing:
        return ValidationResult(
            valid=False,
            reason=RejectReason.MISSING_FIELDS,
            message=f"Missing required fields: {', '.join(missing)}",
            missing=missing,
        )

    invalid = invalid_text_fields(body)
    if invalid:
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_FIELDS,
            message=f"Fields must be strings: {', '.join(invalid)}",
        )

    if parse_amount(body.get("amount")) is None:
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_AMOUNT,
            message=f"Invalid amount: {body.get('amount')}",
        )

    return ValidationResult(valid=True)


def check_biller_support(
    biller: BillerRecord,
    payment_method: Optional[str],
    gateway_methods: Optional[frozenset[PaymentMethod]] = None,
) -> ValidationResult:
    """Checks 3-5: run against the resolved biller and, once built, its gateway."""
    if not biller.supports_payments:
        return ValidationResult(
            valid=False,
            reason=RejectReason.UNSUPPORTED_PROVIDER,
            message="This biller does not support online payments. Please contact them directly.",
        )

    allowed = [m.value for m in biller.supported_methods]
    if not payment_method or not biller.supports_method(payment_method):
        return ValidationResult(
            valid=False,
            reason=RejectReason.UNSUPPORTED_METHOD,
            message=f"This biller only supports: {', '.join(allowed)}",
            allowed_methods=allowed,
        )

    if gateway_methods is not None and PaymentMethod(payment_method) not in gateway_methods:
        offered = [m.value for m in biller.supported_methods if m in gateway_methods]
        return ValidationResult(
            valid=False,
            reason=RejectReason.METHOD_NOT_OFFERED_BY_GATEWAY,
            message=f"This biller only supports: {', '.join(offered)}",
            allowed_methods=offered,
        )

    return ValidationResult(valid=True)

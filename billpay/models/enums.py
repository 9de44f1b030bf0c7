"""Enumerations for the bill payment domain model."""

from enum import Enum


class Provider(str, Enum):
    """Payment providers a biller can be assigned to."""

    PAYMENTUS = "paymentus"
    STRIPE = "stripe"
    NONE = "none"


class PaymentMethod(str, Enum):
    """Payment methods a biller may offer."""

    ACH = "ACH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class PaymentState(str, Enum):
    """Lifecycle states reported for a payment."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RejectReason(str, Enum):
    """Categorized reasons for rejecting a payment request."""

    MISSING_FIELDS = "missing_fields"
    INVALID_FIELDS = "invalid_fields"
    INVALID_AMOUNT = "invalid_amount"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    UNSUPPORTED_METHOD = "unsupported_method"
    METHOD_NOT_OFFERED_BY_GATEWAY = "method_not_offered_by_gateway"

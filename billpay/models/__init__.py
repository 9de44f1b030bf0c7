from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, PaymentState, Provider, RejectReason

__all__ = [
    "BillerRecord",
    "PaymentMethod",
    "PaymentState",
    "Provider",
    "RejectReason",
]

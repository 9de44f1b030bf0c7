"""Null gateway for billers that do not accept online payment."""

from billpay.engine.errors import UnsupportedProviderError
from billpay.gateways.base import PaymentGateway, PaymentRequest, PaymentResponse, PaymentStatus
from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, Provider


class UnsupportedGateway(PaymentGateway):
    """Refuses every payment operation."""

    @property
    def name(self) -> str:
        return Provider.NONE.value

    async def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        raise UnsupportedProviderError(f"Payment not supported for biller: {request.biller_id}")

    async def get_payment_status(self, transaction_id: str) -> PaymentStatus:
        raise UnsupportedProviderError("Payment not supported")

    async def validate_biller(self, biller: BillerRecord, account_id: str) -> bool:
        return False

    def supported_methods(self) -> frozenset[PaymentMethod]:
        return frozenset()

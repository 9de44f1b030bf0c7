"""Normalized bill handed over by the document intake pipeline."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from billpay.gateways.base import CustomerInfo, PaymentRequest
from billpay.models.enums import PaymentMethod


class NormalizedBill(BaseModel):
    """
    The only shape this service accepts from ingestion and annotation.

    How the fields were extracted (OCR, PDF text, language model) is not
    visible here.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    biller_id: str
    biller_name: Optional[str] = None
    account_id: str
    total_owed: Decimal = Field(gt=0)
    currency: Optional[str] = None

    def to_payment_request(
        self,
        payment_method: PaymentMethod,
        default_currency: str = "USD",
        customer_info: Optional[CustomerInfo] = None,
    ) -> PaymentRequest:
        return PaymentRequest(
            amount=self.total_owed.quantize(Decimal("0.01")),
            currency=self.currency or default_currency,
            account_id=self.account_id,
            biller_id=self.biller_id,
            payment_method=payment_method,
            customer_info=customer_info,
            metadata={"source": "bill_intake", "biller_name": self.biller_name or ""},
        )

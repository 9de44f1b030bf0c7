"""
Demo biller registry.

Five billers covering every provider: two on Paymentus (hosted checkout),
two on Stripe (direct capture) and one without online payment. In
production these records would be loaded from the biller database.
"""

from billpay.config import Settings
from billpay.models.biller import BillerRecord
from billpay.models.enums import PaymentMethod, Provider


def default_billers(settings: Settings) -> list[BillerRecord]:
    return [
        BillerRecord(
            biller_id="UTIL123",
            name="Acme Water Co.",
            provider=Provider.PAYMENTUS,
            provider_credentials={
                "api_key": settings.paymentus_api_key,
                "biller_code": "ACME_WATER_001",
            },
            supported_methods=[PaymentMethod.ACH, PaymentMethod.CARD],
        ),
        BillerRecord(
            biller_id="INS456",
            name="Best Health Insurance",
            provider=Provider.STRIPE,
            provider_credentials={"stripe_account": settings.stripe_account_id},
            supported_methods=[PaymentMethod.CARD],
        ),
        BillerRecord(
            biller_id="GOV789",
            name="City Tax Department",
            provider=Provider.NONE,
        ),
        BillerRecord(
            biller_id="ELEC001",
            name="Power Grid Electric",
            provider=Provider.PAYMENTUS,
            provider_credentials={
                "api_key": settings.paymentus_api_key,
                "biller_code": "POWER_GRID_001",
            },
            supported_methods=[PaymentMethod.ACH, PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER],
        ),
        BillerRecord(
            biller_id="GAS002",
            name="Natural Gas Co.",
            provider=Provider.STRIPE,
            provider_credentials={"stripe_account": settings.stripe_account_id},
            supported_methods=[PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER],
        ),
    ]

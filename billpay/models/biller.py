"""Biller registry records."""

from dataclasses import dataclass, field, fields, replace
from typing import Any

from billpay.engine.errors import ValidationError
from billpay.models.enums import PaymentMethod, Provider


@dataclass
class BillerRecord:
    """
    Identity and payment configuration for one billing entity.

    ``provider_credentials`` is the raw credential bag as configured. It is
    not checked here: each gateway parses it into its own typed credentials
    when it is constructed, so a record with missing fields is still
    returned by lookups and only fails once a payment is attempted.
    """

    biller_id: str
    name: str
    provider: Provider | str
    provider_credentials: dict[str, str] = field(default_factory=dict)
    supported_methods: list[PaymentMethod] = field(default_factory=list)
    is_active: bool = True

    def __post_init__(self):
        try:
            self.provider = Provider(self.provider)
        except ValueError:
            # Kept as-is; the gateway factory rejects it as unsupported.
            pass
        self.supported_methods = [PaymentMethod(m) for m in self.supported_methods]
        self.provider_credentials = dict(self.provider_credentials or {})

    @property
    def provider_name(self) -> str:
        return self.provider.value if isinstance(self.provider, Provider) else str(self.provider)

    @property
    def supports_payments(self) -> bool:
        return self.provider != Provider.NONE

    def supports_method(self, method: PaymentMethod | str) -> bool:
        try:
            return PaymentMethod(method) in self.supported_methods
        except ValueError:
            return False

    def merged(self, updates: dict[str, Any]) -> "BillerRecord":
        """
        Return a copy with ``updates`` applied; ``biller_id`` never changes.

        Raises:
            ValidationError: ``updates`` names a field records do not have.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(k for k in updates if k not in known)
        if unknown:
            raise ValidationError(f"Unknown biller fields: {', '.join(unknown)}", error="Invalid biller update")
        return replace(self, **{k: v for k, v in updates.items() if k != "biller_id"})

"""
Error taxonomy for the payment layer.

Every error carries a user-facing ``message`` and the HTTP status the API
layer answers with. Validation and lookup errors are raised before any
provider is contacted; ``ProviderError`` is raised by gateways when the
downstream call fails and must never carry the provider's raw body into
its message.
"""

from typing import Iterable, Optional


class PaymentError(Exception):
    """Base exception for the payment layer."""

    status_code = 500
    error = "Payment error"

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error:
            self.error = error

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class ValidationError(PaymentError):
    """Malformed or missing request fields."""

    status_code = 400
    error = "Missing required fields"

    def __init__(self, message: str, required: Iterable[str] = (), error: Optional[str] = None):
        super().__init__(message, error=error)
        self.required = list(required)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.required:
            body["required"] = self.required
        return body


class BillerNotFoundError(PaymentError):
    """Biller id not present, or present but inactive."""

    status_code = 404
    error = "Biller not found"

    def __init__(self, biller_id: str):
        super().__init__("This biller is not registered in our system")
        self.biller_id = biller_id


class UnsupportedProviderError(PaymentError):
    """Biller has no payment provider, or one outside the supported set."""

    status_code = 400
    error = "Payment not supported"


class UnsupportedMethodError(PaymentError):
    """Requested payment method is not offered for this biller."""

    status_code = 400
    error = "Payment method not supported"

    def __init__(self, message: str, supported_methods: Iterable[str] = ()):
        super().__init__(message)
        self.supported_methods = list(supported_methods)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["supportedMethods"] = self.supported_methods
        return body


class InvalidAccountError(PaymentError):
    """Gateway rejected the biller/account pairing."""

    status_code = 400
    error = "Invalid account"


class ConfigurationError(PaymentError):
    """Missing or malformed provider credentials, found at gateway construction."""

    status_code = 500
    error = "Gateway configuration error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ProviderError(PaymentError):
    """The downstream payment provider call failed."""

    status_code = 502
    error = "Payment processing failed"

    def __init__(
        self,
        message: str,
        provider: str = "",
        operation: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.operation = operation
        self.upstream_status = status_code

    def to_dict(self) -> dict:
        # Provider details stay in the logs
        return {"error": self.error, "message": "Payment processing failed"}


class ProviderTimeoutError(ProviderError):
    """The downstream provider did not answer within the configured timeout."""

    status_code = 504


class TokenGenerationError(PaymentError):
    """The auth provider could not issue a checkout token."""

    status_code = 500
    error = "Failed to generate Paymentus token"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class WebhookVerificationError(PaymentError):
    """Webhook signature missing or not matching."""

    status_code = 401
    error = "Webhook verification failed"

"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"
    default_currency: str = "USD"
    provider_timeout_seconds: float = 30.0

    # Serve provider endpoints from the in-process simulator instead of the network
    provider_simulation: bool = True
    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 100  # Simulated provider latency

    # Placeholder ids that resolve to "any active Paymentus biller"
    fallback_biller_ids: list[str] = ["default-paymentus-biller"]

    paymentus_api_key: str = "mock_paymentus_key"
    paymentus_base_url: str = "https://api.paymentus.com/v1"
    paymentus_checkout_url: str = "https://api.paymentus.com/v1"
    paymentus_webhook_secret: str | None = None
    paymentus_auth_base_url: str = "https://secure1.paymentus.com"
    paymentus_pre_shared_key: str = "mock-pre-shared-key"
    paymentus_tla: str = "TLA"
    paymentus_kid: str = "001"
    paymentus_pixels: list[str] = ["user-checkout-pixel"]
    paymentus_audience: str = "WEB_SDK"
    paymentus_token_prefix: str = "pyt_"

    stripe_secret_key: str = "mock_stripe_key"
    stripe_account_id: str = "acct_mock_stripe"
    stripe_base_url: str = "https://api.stripe.com/v1"
    stripe_webhook_secret: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()

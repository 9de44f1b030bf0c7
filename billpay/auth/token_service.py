"""
Checkout widget token issuance (Paymentus User Checkout Pixel).

The widget needs a short-lived token scoped to one user, account and
biller. We sign an HS256 assertion with the pre-shared key and exchange it
at the Paymentus auth endpoint for the widget token.

``expires_at`` is always "now + 1 hour". The returned token is opaque to
us and never parsed, so its real expiry may differ.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import jwt

from billpay.config import Settings
from billpay.engine.errors import TokenGenerationError
from billpay.models.biller import BillerRecord

logger = logging.getLogger("billpay.auth")

TOKEN_TTL = timedelta(hours=1)


@dataclass(frozen=True)
class AuthConfig:
    base_url: str
    pre_shared_key: str
    tla: str
    kid: str
    pixels: tuple[str, ...]
    audience: str
    token_prefix: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            base_url=settings.paymentus_auth_base_url.rstrip("/"),
            pre_shared_key=settings.paymentus_pre_shared_key,
            tla=settings.paymentus_tla,
            kid=settings.paymentus_kid,
            pixels=tuple(settings.paymentus_pixels),
            audience=settings.paymentus_audience,
            token_prefix=settings.paymentus_token_prefix,
        )


@dataclass
class AuthToken:
    token: str
    expires_at: datetime
    user_login: str
    account_number: str
    biller_id: str


class AuthTokenService:
    def __init__(self, config: AuthConfig, client: httpx.AsyncClient, timeout: float = 30.0):
        self._config = config
        self._client = client
        self._timeout = timeout

    def get_config(self) -> dict:
        """Non-secret configuration, for diagnostics."""
        return {
            "baseUrl": self._config.base_url,
            "tla": self._config.tla,
            "pixels": list(self._config.pixels),
            "aud": self._config.audience,
        }

    def _assertion(self, user_login: str, account_number: str, biller: BillerRecord) -> str:
        now = datetime.now(timezone.utc)
        payment = {"accountNumber": account_number}
        biller_code = biller.provider_credentials.get("biller_code")
        if biller_code:
            payment["billerCode"] = biller_code
        claims = {
            "iss": self._config.tla,
            "aud": self._config.audience,
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "jti": uuid.uuid4().hex,
            "pixels": list(self._config.pixels),
            "userLogin": user_login,
            "paymentsData": [payment],
        }
        return jwt.encode(
            claims,
            self._config.pre_shared_key,
            algorithm="HS256",
            headers={"kid": self._config.kid},
        )

    async def generate_token(self, user_login: str, account_number: str, biller: BillerRecord) -> AuthToken:
        """
        Issue a widget token for ``user_login`` paying ``account_number`` at ``biller``.

        Raises:
            TokenGenerationError: The auth provider call failed, timed out, or
                answered without a token.
        """
        url = f"{self._config.base_url}/api/token/{self._config.tla}"
        try:
            assertion = self._assertion(user_login, account_number, biller)
            response = await asyncio.wait_for(
                self._client.post(url, headers={"Authorization": f"Bearer {assertion}"}),
                timeout=self._timeout,
            )
            response.raise_for_status()
            body = response.json()
            token = body.get("token") if isinstance(body, dict) else None
            if not token:
                raise ValueError("auth response carried no token")
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError, jwt.PyJWTError) as e:
            logger.error("Token generation failed for biller %s: %s", biller.biller_id, e)
            raise TokenGenerationError(
                f"Failed to generate Paymentus token: {type(e).__name__}",
                cause=e,
            ) from e

        logger.info("Token generated for biller %s", biller.biller_id)
        return AuthToken(
            token=token,
            expires_at=datetime.now(timezone.utc) + TOKEN_TTL,
            user_login=user_login,
            account_number=account_number,
            biller_id=biller.biller_id,
        )

    def validate_token(self, token: Optional[str]) -> bool:
        """Format check only: this is not a signature or provider-side validation."""
        return bool(token) and token.startswith(self._config.token_prefix) and len(token) > len(self._config.token_prefix)

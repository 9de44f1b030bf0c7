"""
Bill Pay: multi-provider bill payment API.

Resolves a biller from the directory, routes the payment through the
biller's provider gateway (Paymentus hosted checkout or Stripe direct
capture) and issues checkout widget tokens.

Start the server:
    uvicorn billpay.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from billpay.api.health import router as health_router
from billpay.api.payments import router as payments_router
from billpay.auth.token_service import AuthConfig, AuthTokenService
from billpay.config import Settings, settings
from billpay.directory.biller_directory import BillerDirectory
from billpay.engine.errors import PaymentError, ValidationError
from billpay.engine.orchestrator import PaymentOrchestrator
from billpay.gateways.factory import GatewayFactory

logger = logging.getLogger("billpay")


def build_orchestrator(config: Settings) -> PaymentOrchestrator:
    """Wire directory, gateway factory and token service for one process."""
    factory = GatewayFactory(config)
    auth_service = AuthTokenService(
        AuthConfig.from_settings(config),
        client=factory.client,
        timeout=config.provider_timeout_seconds,
    )
    return PaymentOrchestrator(
        directory=BillerDirectory.with_defaults(config),
        factory=factory,
        auth_service=auth_service,
        default_currency=config.default_currency,
    )


def _request_error(exc: RequestValidationError) -> ValidationError:
    """Malformed request bodies and parameters answer like any other validation failure."""
    errors = exc.errors()
    if any(e.get("type") == "json_invalid" for e in errors):
        return ValidationError("Request body is not valid JSON", error="Invalid request body")

    fields = sorted({".".join(str(p) for p in e["loc"][1:]) for e in errors if len(e.get("loc", ())) > 1})
    if not fields:
        return ValidationError("Request body must be a JSON object", error="Invalid request body")
    if fields == ["amount"]:
        return ValidationError("Invalid amount", error="Invalid amount")
    return ValidationError(f"Invalid request fields: {', '.join(fields)}", error="Invalid request fields")


def create_app(config: Settings = settings, orchestrator: PaymentOrchestrator | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = build_orchestrator(config)
        logger.info(
            "Loaded %d billers (provider simulation %s)",
            len(app.state.orchestrator.directory),
            "on" if config.provider_simulation else "off",
        )
        yield
        await app.state.orchestrator.factory.aclose()

    app = FastAPI(
        title="Bill Pay",
        description=(
            "Multi-provider bill payment API. Looks up billers, validates accounts "
            "against the biller's payment provider, executes payments and issues "
            "checkout widget tokens."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = _request_error(exc)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": "Payment processing failed"},
        )

    app.include_router(health_router)
    app.include_router(payments_router, prefix="/api")
    return app


logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()

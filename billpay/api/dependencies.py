"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Request

from billpay.engine.orchestrator import PaymentOrchestrator


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    """The orchestrator built by the application lifespan."""
    return request.app.state.orchestrator


Orchestrator = Annotated[PaymentOrchestrator, Depends(get_orchestrator)]

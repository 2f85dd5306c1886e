"""FastAPI application for the Checkout Service."""

from typing import Optional

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.checkout_service.routers import (
    cart_router,
    checkout_router,
    history_router,
    session_router,
    wallet_router,
)
from services.checkout_service.routers._helpers import add_exception_handlers
from services.checkout_service.services.checkout_flow import SessionRegistry


def create_app(sessions: Optional[SessionRegistry] = None) -> FastAPI:
    """Create and configure the Checkout Service FastAPI app."""
    app = FastAPI(
        title="Cafeteria Checkout Service",
        version="0.1.0",
        description="Cart, food card and payment orchestration for the cafeteria client.",
    )
    app.state.sessions = sessions or SessionRegistry()

    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "checkout"}

    app.include_router(cart_router)
    app.include_router(checkout_router)
    app.include_router(wallet_router)
    app.include_router(history_router)
    app.include_router(session_router)

    return app


app = create_app()

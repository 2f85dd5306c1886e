"""Routers package."""

from services.checkout_service.routers.cart import router as cart_router
from services.checkout_service.routers.checkout import router as checkout_router
from services.checkout_service.routers.history import router as history_router
from services.checkout_service.routers.session import router as session_router
from services.checkout_service.routers.wallet import router as wallet_router

__all__ = [
    "cart_router",
    "checkout_router",
    "history_router",
    "session_router",
    "wallet_router",
]

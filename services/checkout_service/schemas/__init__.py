"""Checkout service schemas package."""

from services.checkout_service.schemas.main import (
    AddLineRequest,
    BalanceResponse,
    CartLineResponse,
    CartResponse,
    CheckoutRequest,
    GatewayCallbackRequest,
    GatewayCheckoutResponse,
    LedgerEntryResponse,
    LedgerPageResponse,
    OrderResponse,
    PaymentIntentResponse,
    SetQuantityRequest,
    TopUpRequest,
    UnrecordedOrderResponse,
)

__all__ = [
    "AddLineRequest",
    "BalanceResponse",
    "CartLineResponse",
    "CartResponse",
    "CheckoutRequest",
    "GatewayCallbackRequest",
    "GatewayCheckoutResponse",
    "LedgerEntryResponse",
    "LedgerPageResponse",
    "OrderResponse",
    "PaymentIntentResponse",
    "SetQuantityRequest",
    "TopUpRequest",
    "UnrecordedOrderResponse",
]

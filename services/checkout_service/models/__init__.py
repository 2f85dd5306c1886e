"""Checkout engine domain models.

Re-exports the value types and enums so callers can write
``from services.checkout_service.models import PaymentIntent``.
"""

from services.checkout_service.models.balance import StoredValueBalance  # noqa: F401
from services.checkout_service.models.cart import (  # noqa: F401
    CartLine,
    MenuItem,
    PricedOrder,
)
from services.checkout_service.models.enums import (  # noqa: F401
    BalanceOrigin,
    FailureKind,
    IntentStatus,
    LedgerKind,
    LedgerStatus,
    OrderPaymentStatus,
    PaymentMethod,
    PaymentPurpose,
)
from services.checkout_service.models.ledger import LedgerEntry, LedgerPage  # noqa: F401
from services.checkout_service.models.order import Order  # noqa: F401
from services.checkout_service.models.payment import (  # noqa: F401
    ALLOWED_TRANSITIONS,
    GatewayReceipt,
    GatewaySession,
    PaymentIntent,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BalanceOrigin",
    "CartLine",
    "FailureKind",
    "GatewayReceipt",
    "GatewaySession",
    "IntentStatus",
    "LedgerEntry",
    "LedgerKind",
    "LedgerPage",
    "LedgerStatus",
    "MenuItem",
    "Order",
    "OrderPaymentStatus",
    "PaymentIntent",
    "PaymentMethod",
    "PaymentPurpose",
    "PricedOrder",
    "StoredValueBalance",
]

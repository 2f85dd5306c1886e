"""Committed order as returned by the backend."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from services.checkout_service.models.cart import CartLine
from services.checkout_service.models.enums import OrderPaymentStatus, PaymentMethod


@dataclass(frozen=True, slots=True)
class Order:
    order_id: str
    order_number: str
    lines: tuple[CartLine, ...]
    total: Decimal
    payment_intent_id: str
    payment_method: PaymentMethod
    payment_status: OrderPaymentStatus
    created_at: datetime
    status: Optional[str] = None

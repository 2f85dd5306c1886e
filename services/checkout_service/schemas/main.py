"""Request/response schemas for the checkout HTTP surface."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from services.checkout_service.models import (
    BalanceOrigin,
    FailureKind,
    IntentStatus,
    LedgerKind,
    LedgerStatus,
    OrderPaymentStatus,
    PaymentMethod,
    PaymentPurpose,
)

# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


class AddLineRequest(BaseModel):
    item_id: str = Field(..., min_length=1)
    name: str
    unit_price: Decimal = Field(..., gt=0, decimal_places=2)
    vendor_id: str = ""
    quantity: int = Field(1, ge=1)


class SetQuantityRequest(BaseModel):
    """Zero or less removes the line."""

    quantity: int


class CartLineResponse(BaseModel):
    item_id: str
    name: str
    unit_price: Decimal
    quantity: int
    vendor_id: str
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CartResponse(BaseModel):
    lines: list[CartLineResponse]
    item_count: int
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    currency: str

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    method: PaymentMethod
    description: str = ""


class PaymentIntentResponse(BaseModel):
    intent_id: str
    amount: Decimal
    method: PaymentMethod
    purpose: PaymentPurpose
    status: IntentStatus
    currency: str
    gateway_order_ref: Optional[str] = None
    failure: Optional[FailureKind] = None
    failure_detail: Optional[str] = None
    retryable: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GatewayCheckoutResponse(BaseModel):
    """Returned while the gateway modal waits for the user."""

    intent: PaymentIntentResponse
    public_key: str
    amount_minor_units: int
    currency: str
    order_ref: str
    description: str


class GatewayCallbackRequest(BaseModel):
    """Success payload relayed from the gateway modal."""

    gateway_payment_ref: str = Field(
        validation_alias=AliasChoices("gateway_payment_ref", "razorpay_payment_id")
    )
    gateway_order_ref: str = Field(
        validation_alias=AliasChoices("gateway_order_ref", "razorpay_order_id")
    )
    signature: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("signature", "razorpay_signature")
    )


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    lines: list[CartLineResponse]
    total: Decimal
    payment_intent_id: str
    payment_method: PaymentMethod
    payment_status: OrderPaymentStatus
    created_at: datetime
    status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UnrecordedOrderResponse(BaseModel):
    intent_id: str
    total: Decimal
    method: PaymentMethod
    item_count: int


# ---------------------------------------------------------------------------
# Food card
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    amount: Decimal
    source_timestamp: datetime
    origin: BalanceOrigin
    pending: bool = False

    model_config = ConfigDict(from_attributes=True)


class TopUpRequest(BaseModel):
    amount: Decimal
    method: PaymentMethod = PaymentMethod.RAZORPAY


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    id: str
    kind: LedgerKind
    amount: Decimal
    method: str
    status: LedgerStatus
    timestamp: datetime
    description: str = ""
    related_order_id: Optional[str] = None
    related_order_number: Optional[str] = None
    related_payment_ref: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LedgerPageResponse(BaseModel):
    content: list[LedgerEntryResponse]
    total_elements: int
    total_pages: int
    current_page: int
    size: int

    model_config = ConfigDict(from_attributes=True)

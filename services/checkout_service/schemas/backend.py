"""Wire schemas for the cafeteria backend (camelCase JSON)."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from pydantic.alias_generators import to_camel
from libs.common.currency import round2
from services.checkout_service.models import (
    OrderPaymentStatus,
    PaymentMethod,
    PaymentPurpose,
)

# The backend takes amounts as JSON numbers in rupees, not decimal strings.
# Quantised to whole paise first, so the float is the nearest double to an
# exact two-decimal amount and reads back as the same value.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(round2(v)), return_type=float, when_used="json"),
]


class BackendModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


# ============================================================================
# PAYMENTS
# ============================================================================


class PaymentIntentCreateRequest(BackendModel):
    idempotency_key: str
    amount: Money
    method: PaymentMethod
    purpose: PaymentPurpose
    description: str = ""
    currency: str = "INR"


class PaymentIntentCreateResponse(BackendModel):
    # Echo of the idempotency key; older backends omit it
    intent_id: Optional[str] = None
    currency: str = "INR"
    gateway_order_ref: Optional[str] = None
    gateway_key_public: Optional[str] = None


class PaymentVerifyRequest(BackendModel):
    intent_id: str
    gateway_payment_ref: str
    gateway_order_ref: str
    signature: Optional[str] = None


class PaymentVerifyResponse(BackendModel):
    status: Literal["SUCCEEDED", "FAILED"]
    message: Optional[str] = None


# ============================================================================
# ORDERS
# ============================================================================


class OrderLinePayload(BackendModel):
    menu_item_id: str
    name: str
    price: Money
    quantity: int = Field(..., ge=1)
    vendor: str = ""


class OrderCreateRequest(BackendModel):
    idempotency_key: str
    lines: list[OrderLinePayload]
    total_amount: Money
    payment_method: PaymentMethod
    payment_status: OrderPaymentStatus = OrderPaymentStatus.COMPLETED
    gateway_payment_ref: Optional[str] = None
    gateway_order_ref: Optional[str] = None


class OrderCreateResponse(BackendModel):
    order_id: str = Field(validation_alias=AliasChoices("orderId", "order_id", "id"))
    order_number: str
    status: str
    created_at: Optional[datetime] = None

    @field_validator("order_id", "order_number", mode="before")
    @classmethod
    def stringify_ids(cls, v):
        # The backend issues numeric order IDs
        return str(v) if isinstance(v, int) else v


# ============================================================================
# FOOD CARD
# ============================================================================


class BalanceFetchResponse(BackendModel):
    amount: Decimal
    as_of: Optional[datetime] = None

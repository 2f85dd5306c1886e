"""Payment intent state machine and gateway value types."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from libs.common.datetime_utils import utc_now
from services.checkout_service.errors import IllegalTransition
from services.checkout_service.models.enums import (
    FailureKind,
    IntentStatus,
    PaymentMethod,
    PaymentPurpose,
)

# CREATED -> AWAITING_GATEWAY | SUCCEEDED, AWAITING_GATEWAY -> VERIFYING | CANCELLED,
# VERIFYING -> SUCCEEDED | FAILED. Every non-terminal state may fail hard.
ALLOWED_TRANSITIONS: dict[IntentStatus, frozenset[IntentStatus]] = {
    IntentStatus.CREATED: frozenset(
        {IntentStatus.AWAITING_GATEWAY, IntentStatus.SUCCEEDED, IntentStatus.FAILED}
    ),
    IntentStatus.AWAITING_GATEWAY: frozenset(
        {IntentStatus.VERIFYING, IntentStatus.CANCELLED, IntentStatus.FAILED}
    ),
    IntentStatus.VERIFYING: frozenset({IntentStatus.SUCCEEDED, IntentStatus.FAILED}),
    IntentStatus.SUCCEEDED: frozenset(),
    IntentStatus.FAILED: frozenset(),
    IntentStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class GatewayReceipt:
    """What the gateway hands back on success. Not proof of payment by itself."""

    gateway_payment_ref: str
    gateway_order_ref: str
    signature: Optional[str] = None

    @classmethod
    def from_callback(cls, payload: Mapping[str, Any]) -> "GatewayReceipt":
        """Build a receipt from an SDK success payload.

        Accepts both the neutral keys and the Razorpay handler keys.
        """
        payment_ref = payload.get("gateway_payment_ref") or payload.get(
            "razorpay_payment_id"
        )
        order_ref = payload.get("gateway_order_ref") or payload.get("razorpay_order_id")
        if not payment_ref or not order_ref:
            raise ValueError("Gateway success payload is missing payment or order reference")
        return cls(
            gateway_payment_ref=str(payment_ref),
            gateway_order_ref=str(order_ref),
            signature=payload.get("signature") or payload.get("razorpay_signature"),
        )


@dataclass(frozen=True, slots=True)
class GatewaySession:
    """Backend answer to intent creation: what the SDK needs to open its modal."""

    intent_id: str
    currency: str
    gateway_order_ref: Optional[str] = None
    gateway_key_public: Optional[str] = None


@dataclass(eq=False)
class PaymentIntent:
    """One checkout or top-up attempt, keyed by a client-generated intent_id.

    Status only moves along ``ALLOWED_TRANSITIONS``; once terminal the intent is
    frozen and any further write raises ``IllegalTransition``.
    """

    intent_id: str
    amount: Decimal
    method: PaymentMethod
    purpose: PaymentPurpose
    description: str = ""
    currency: str = "INR"
    status: IntentStatus = IntentStatus.CREATED
    gateway_order_ref: Optional[str] = None
    receipt: Optional[GatewayReceipt] = None
    failure: Optional[FailureKind] = None
    failure_detail: Optional[str] = None
    retryable: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_initialised", True)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_initialised") and self.status.is_terminal:
            raise IllegalTransition(self, value if name == "status" else name)
        object.__setattr__(self, name, value)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def can_transition(self, target: IntentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: IntentStatus, **changes: Any) -> "PaymentIntent":
        """Move to ``target``, applying ``changes`` first. Terminal states seal the intent."""
        if not self.can_transition(target):
            raise IllegalTransition(self, target)
        for name, value in changes.items():
            setattr(self, name, value)
        self.updated_at = utc_now()
        self.status = target
        return self

    def fail(
        self, kind: FailureKind, detail: str, *, retryable: bool
    ) -> "PaymentIntent":
        return self.transition(
            IntentStatus.FAILED,
            failure=kind,
            failure_detail=detail,
            retryable=retryable,
        )

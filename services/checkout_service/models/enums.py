"""Enums for the checkout engine."""

import enum


class PaymentMethod(str, enum.Enum):
    FOOD_CARD = "FOOD_CARD"
    RAZORPAY = "RAZORPAY"

    @property
    def is_stored_value(self) -> bool:
        return self is PaymentMethod.FOOD_CARD

    @property
    def label(self) -> str:
        return "Food Card" if self.is_stored_value else "Razorpay"


class PaymentPurpose(str, enum.Enum):
    ORDER_PAYMENT = "ORDER_PAYMENT"
    BALANCE_TOPUP = "BALANCE_TOPUP"


class IntentStatus(str, enum.Enum):
    CREATED = "CREATED"
    AWAITING_GATEWAY = "AWAITING_GATEWAY"
    VERIFYING = "VERIFYING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {IntentStatus.SUCCEEDED, IntentStatus.FAILED, IntentStatus.CANCELLED}
)


class FailureKind(str, enum.Enum):
    TRANSIENT_NETWORK = "TRANSIENT_NETWORK"
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    BACKEND_REJECTED = "BACKEND_REJECTED"


class BalanceOrigin(str, enum.Enum):
    LOCAL = "LOCAL"
    REMOTE = "REMOTE"


class LedgerKind(str, enum.Enum):
    TOP_UP = "TOP_UP"
    ORDER_PAYMENT = "ORDER_PAYMENT"


class LedgerStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


class OrderPaymentStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    FAILED = "FAILED"

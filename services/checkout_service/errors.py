"""Typed failures raised by the checkout engine.

Every failure carries a user-facing ``message`` and whether the same step may be
tried again (``retryable``). The routers translate these into HTTP responses;
nothing in the engine swallows them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from libs.common.currency import format_rupees

if TYPE_CHECKING:
    from services.checkout_service.models.cart import PricedOrder
    from services.checkout_service.models.payment import PaymentIntent


class CheckoutError(Exception):
    """Base class for checkout engine failures."""

    retryable: bool = False

    def __init__(self, message: str, *, intent: Optional["PaymentIntent"] = None):
        self.message = message
        self.intent = intent
        super().__init__(message)


# -- Preconditions (resolved locally: back to method selection) ---------------


class InsufficientFunds(CheckoutError):
    """Food card balance does not cover the amount. No intent is created."""

    retryable = True

    def __init__(self, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient food card balance. Need {format_rupees(required)}, "
            f"have {format_rupees(available)}. Top up or choose another method."
        )
        self.required = required
        self.available = available


class CheckoutInProgress(CheckoutError):
    """Another payment intent for this session has not finished yet."""

    def __init__(self, intent: Optional["PaymentIntent"] = None):
        super().__init__(
            "A payment is already in progress. Finish or cancel it first.",
            intent=intent,
        )


class EmptyCart(CheckoutError):
    def __init__(self) -> None:
        super().__init__("Your cart is empty.")


class InvalidTopUpAmount(CheckoutError):
    def __init__(self, amount: Decimal, minimum: Decimal, maximum: Decimal):
        super().__init__(
            f"Top-up amount must be between {format_rupees(minimum)} and "
            f"{format_rupees(maximum)}, got {format_rupees(amount)}."
        )
        self.amount = amount


class LineNotFound(CheckoutError, KeyError):
    def __init__(self, item_id: str):
        CheckoutError.__init__(self, f"Item {item_id} is not in the cart.")
        self.item_id = item_id

    def __str__(self) -> str:
        return self.message


# -- Payment outcomes ---------------------------------------------------------


class GatewayCancelled(CheckoutError):
    """User dismissed the gateway modal. Start over with a new intent."""

    retryable = True

    def __init__(self, intent: "PaymentIntent"):
        super().__init__("Payment cancelled.", intent=intent)


class VerificationFailed(CheckoutError):
    """Backend rejected the gateway receipt. Not retryable with the same intent."""

    def __init__(self, intent: "PaymentIntent", detail: str = ""):
        message = "We could not verify this payment with the gateway."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, intent=intent)


class TransientNetwork(CheckoutError):
    """A network step failed or timed out. Safe to retry at the caller's discretion."""

    retryable = True

    def __init__(
        self,
        message: str = "Network problem while talking to the payment service. Please try again.",
        *,
        intent: Optional["PaymentIntent"] = None,
    ):
        super().__init__(message, intent=intent)


class GatewayUnavailable(TransientNetwork):
    """The gateway SDK is not configured or could not be loaded."""

    def __init__(self, detail: str, *, intent: Optional["PaymentIntent"] = None):
        super().__init__(f"Payment gateway unavailable: {detail}", intent=intent)


# -- Commit outcomes ----------------------------------------------------------


class PreconditionMismatch(CheckoutError):
    """Intent and order disagree (status, purpose or amount). Fatal for this flow."""

    def __init__(self, detail: str, *, intent: Optional["PaymentIntent"] = None):
        super().__init__(f"Checkout aborted: {detail}", intent=intent)


class PaidOrderNotRecorded(CheckoutError):
    """Payment went through but the order write failed.

    Only the commit may be retried, with the same intent. Never re-pay.
    """

    retryable = True

    def __init__(
        self,
        intent: "PaymentIntent",
        priced: "PricedOrder",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            "Your payment was received but the order could not be recorded. "
            "Do not pay again; retry the order or contact support with "
            f"reference {intent.intent_id}.",
            intent=intent,
        )
        self.priced = priced
        self.cause = cause


class IllegalTransition(CheckoutError):
    def __init__(self, intent: "PaymentIntent", target: object):
        super().__init__(
            f"Payment {intent.intent_id} cannot move from "
            f"{intent.status.value} to {getattr(target, 'value', target)}.",
            intent=intent,
        )


class PaymentRejected(CheckoutError):
    """Backend refused to start the payment (bad request, unknown user, ...)."""

    def __init__(self, detail: str, *, intent: Optional["PaymentIntent"] = None):
        super().__init__(f"Payment could not be started: {detail}", intent=intent)


class UnrecordedOrdersPending(CheckoutError):
    """Sign-out refused while paid orders still wait for their commit retry."""

    def __init__(self, count: int):
        super().__init__(
            f"{count} paid order(s) have not been recorded yet. "
            "Retry them before signing out."
        )
        self.count = count

"""In-process doubles for the cafeteria backend and the gateway SDK."""

import asyncio
from decimal import Decimal
from typing import Any, Optional

import httpx
from libs.common.datetime_utils import utc_now
from services.checkout_service.gateway_sdk import GatewayOptions
from services.checkout_service.models import (
    BalanceOrigin,
    GatewayReceipt,
    GatewaySession,
    OrderPaymentStatus,
    PaymentMethod,
    PaymentPurpose,
    StoredValueBalance,
)
from services.checkout_service.schemas.backend import OrderCreateResponse


class FakeBackend:
    """Backend double with idempotent order creation and scriptable failures."""

    def __init__(self, balance: Decimal = Decimal("0"), *, verify_result: bool = True):
        self.balance = Decimal(balance)
        self.verify_result = verify_result
        self.verify_delay = 0.0
        self.verify_error: Optional[Exception] = None
        self.intent_error: Optional[Exception] = None
        self.balance_error: Optional[Exception] = None
        # Block fetch_balance until set, to interleave a local mutation
        self.balance_gate: Optional[asyncio.Event] = None
        # Number of upcoming create_order calls that drop the connection
        self.order_failures = 0

        self.intent_calls: list[dict[str, Any]] = []
        self.verify_calls: list[tuple[str, GatewayReceipt]] = []
        self.order_calls: list[str] = []
        self.balance_fetches = 0
        self.orders: dict[str, OrderCreateResponse] = {}

    async def create_payment_intent(
        self,
        *,
        intent_id: str,
        amount: Decimal,
        method: PaymentMethod,
        purpose: PaymentPurpose,
        description: str = "",
        currency: str = "INR",
    ) -> GatewaySession:
        self.intent_calls.append(
            {"intent_id": intent_id, "amount": amount, "method": method, "purpose": purpose}
        )
        if self.intent_error is not None:
            raise self.intent_error
        return GatewaySession(
            intent_id=intent_id,
            currency=currency,
            gateway_order_ref=f"order_{intent_id[:12]}",
            gateway_key_public="rzp_test_key",
        )

    async def verify_payment(self, intent_id: str, receipt: GatewayReceipt) -> bool:
        self.verify_calls.append((intent_id, receipt))
        if self.verify_delay:
            await asyncio.sleep(self.verify_delay)
        if self.verify_error is not None:
            raise self.verify_error
        return self.verify_result

    async def create_order(
        self,
        *,
        idempotency_key: str,
        lines,
        total: Decimal,
        payment_method: PaymentMethod,
        payment_status: OrderPaymentStatus = OrderPaymentStatus.COMPLETED,
        receipt: Optional[GatewayReceipt] = None,
    ) -> OrderCreateResponse:
        self.order_calls.append(idempotency_key)
        if self.order_failures > 0:
            self.order_failures -= 1
            raise httpx.ConnectError("connection dropped")
        if idempotency_key not in self.orders:
            number = len(self.orders) + 1
            self.orders[idempotency_key] = OrderCreateResponse(
                order_id=f"ord-{number}",
                order_number=f"A{1000 + number}",
                status="PLACED",
            )
            if payment_method.is_stored_value:
                self.balance -= total
        return self.orders[idempotency_key]

    async def fetch_balance(self) -> StoredValueBalance:
        self.balance_fetches += 1
        # Read before blocking: this is the value "on the wire"
        amount = self.balance
        if self.balance_gate is not None:
            await self.balance_gate.wait()
        if self.balance_error is not None:
            raise self.balance_error
        return StoredValueBalance(
            amount=amount, source_timestamp=utc_now(), origin=BalanceOrigin.REMOTE
        )


class ScriptedSdk:
    """Gateway SDK double. Each open() plays the next scripted outcome.

    Outcomes: "success", "dismiss", "hang" (never answers), "bad-payload",
    or an exception instance to raise from open().
    """

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes)
        self.opened: list[GatewayOptions] = []

    def __call__(self, options: GatewayOptions) -> "ScriptedModal":
        return ScriptedModal(self, options)


class ScriptedModal:
    def __init__(self, sdk: ScriptedSdk, options: GatewayOptions):
        self._sdk = sdk
        self.options = options

    def open(self) -> None:
        self._sdk.opened.append(self.options)
        outcome = self._sdk.outcomes.pop(0) if self._sdk.outcomes else "success"
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "success":
            self.options.on_success(success_payload(self.options.order_ref))
        elif outcome == "dismiss":
            self.options.on_dismiss()
        elif outcome == "bad-payload":
            self.options.on_success({"razorpay_signature": "sig"})


def success_payload(order_ref: str, payment_ref: str = "pay_test_1") -> dict[str, str]:
    return {
        "razorpay_payment_id": payment_ref,
        "razorpay_order_id": order_ref,
        "razorpay_signature": "sig_test",
    }

"""
Order committer: turns a SUCCEEDED payment intent into exactly one order.

The intent_id is the idempotency key for the order write, so repeating a commit
(after a network drop, or a user pressing retry) never creates a second order.
When the payment went through but the write did not, the failure is surfaced as
``PaidOrderNotRecorded`` and the pair is remembered until a retry succeeds.
Nothing here retries automatically.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError

from libs.common.datetime_utils import parse_timestamp, utc_now
from libs.common.logging import get_logger
from services.checkout_service.backend_client import BackendError
from services.checkout_service.errors import PaidOrderNotRecorded, PreconditionMismatch
from services.checkout_service.models import (
    CartLine,
    GatewayReceipt,
    IntentStatus,
    LedgerKind,
    LedgerStatus,
    Order,
    OrderPaymentStatus,
    PaymentIntent,
    PaymentMethod,
    PaymentPurpose,
    PricedOrder,
)
from services.checkout_service.schemas.backend import OrderCreateResponse
from services.checkout_service.services.balance_reconciler import BalanceReconciler
from services.checkout_service.services.cart_ops import CartAggregator
from services.checkout_service.services.transaction_ledger import (
    TransactionLedger,
    new_entry,
)

logger = get_logger(__name__)


class OrderBackend(Protocol):
    async def create_order(
        self,
        *,
        idempotency_key: str,
        lines: tuple[CartLine, ...],
        total: Decimal,
        payment_method: PaymentMethod,
        payment_status: OrderPaymentStatus = OrderPaymentStatus.COMPLETED,
        receipt: Optional[GatewayReceipt] = None,
    ) -> OrderCreateResponse: ...


class OrderCommitter:
    def __init__(
        self,
        backend: OrderBackend,
        cart: CartAggregator,
        balance: BalanceReconciler,
        ledger: TransactionLedger,
    ):
        self._backend = backend
        self._cart = cart
        self._balance = balance
        self._ledger = ledger
        self._committed: dict[str, Order] = {}
        self._unrecorded: dict[str, tuple[PricedOrder, PaymentIntent]] = {}

    def unrecorded(self) -> list[tuple[PricedOrder, PaymentIntent]]:
        """Paid intents whose order write has not gone through yet."""
        return list(self._unrecorded.values())

    def committed(self, intent_id: str) -> Optional[Order]:
        return self._committed.get(intent_id)

    async def commit(self, priced: PricedOrder, intent: PaymentIntent) -> Order:
        """Persist the order for a SUCCEEDED intent.

        Raises:
            PreconditionMismatch: the intent is not a succeeded order payment
                for exactly this total.
            PaidOrderNotRecorded: the order write failed after payment.
        """
        self._check_preconditions(priced, intent)

        existing = self._committed.get(intent.intent_id)
        if existing is not None:
            logger.info(
                "Intent %s already committed as order %s",
                intent.intent_id,
                existing.order_number,
            )
            return existing

        try:
            response = await self._backend.create_order(
                idempotency_key=intent.intent_id,
                lines=priced.lines,
                total=priced.total,
                payment_method=intent.method,
                payment_status=OrderPaymentStatus.COMPLETED,
                receipt=intent.receipt,
            )
        except (httpx.RequestError, BackendError, ValidationError) as exc:
            self._mark_unrecorded(priced, intent, exc)
            raise PaidOrderNotRecorded(intent, priced, exc) from exc

        order = Order(
            order_id=response.order_id,
            order_number=response.order_number,
            lines=priced.lines,
            total=priced.total,
            payment_intent_id=intent.intent_id,
            payment_method=intent.method,
            payment_status=OrderPaymentStatus.COMPLETED,
            created_at=parse_timestamp(response.created_at) or utc_now(),
            status=response.status,
        )

        # Debit lands before anything else can await a balance fetch
        if intent.method.is_stored_value:
            self._apply_debit(priced.total, intent)

        self._committed[intent.intent_id] = order
        self._unrecorded.pop(intent.intent_id, None)
        self._cart.clear()
        self._ledger.append(
            new_entry(
                kind=LedgerKind.ORDER_PAYMENT,
                amount=priced.total,
                method=intent.method.value,
                status=LedgerStatus.SUCCESS,
                description=f"Order #{order.order_number}",
                related_order_id=order.order_id,
                related_order_number=order.order_number,
                related_payment_ref=intent.intent_id,
            )
        )
        logger.info(
            "Order %s recorded for intent %s (%s)",
            order.order_number,
            intent.intent_id,
            priced.total,
        )
        return order

    async def retry(self, intent_id: str) -> Order:
        """Retry the order write for a paid-but-unrecorded intent."""
        pending = self._unrecorded.get(intent_id)
        if pending is None:
            committed = self._committed.get(intent_id)
            if committed is not None:
                return committed
            raise KeyError(intent_id)
        priced, intent = pending
        return await self.commit(priced, intent)

    def _check_preconditions(self, priced: PricedOrder, intent: PaymentIntent) -> None:
        problem = None
        if intent.status != IntentStatus.SUCCEEDED:
            problem = f"payment {intent.intent_id} is {intent.status.value}, not SUCCEEDED"
        elif intent.purpose != PaymentPurpose.ORDER_PAYMENT:
            problem = f"payment {intent.intent_id} is a {intent.purpose.value}"
        elif intent.amount != priced.total:
            problem = (
                f"payment {intent.intent_id} is for {intent.amount} "
                f"but the order totals {priced.total}"
            )
        if problem:
            logger.error("Refusing to commit order: %s", problem)
            raise PreconditionMismatch(problem, intent=intent)

    def _mark_unrecorded(
        self, priced: PricedOrder, intent: PaymentIntent, exc: Exception
    ) -> None:
        first_failure = intent.intent_id not in self._unrecorded
        self._unrecorded[intent.intent_id] = (priced, intent)
        logger.error(
            "Payment %s succeeded but the order was not recorded: %s",
            intent.intent_id,
            exc,
        )
        if first_failure:
            self._ledger.append(
                new_entry(
                    kind=LedgerKind.ORDER_PAYMENT,
                    amount=priced.total,
                    method=intent.method.value,
                    status=LedgerStatus.PENDING,
                    description="Paid, order not yet recorded",
                    related_payment_ref=intent.intent_id,
                )
            )

    def _apply_debit(self, total: Decimal, intent: PaymentIntent) -> None:
        try:
            self._balance.apply_delta(-total)
        except ValueError:
            # Backend has already debited; the next refresh corrects the cache
            logger.error(
                "Cached food card balance %s is below order %s total %s",
                self._balance.available(),
                intent.intent_id,
                total,
            )

"""
Payment orchestrator: drives one PaymentIntent from CREATED to a terminal state.

Food card payments succeed immediately once the cached balance covers the
amount. Gateway payments go through the backend (gateway order reference), the
checkout SDK (user-paced modal) and the backend again (signature verification).
Only a verified response moves an intent to SUCCEEDED.

The orchestrator never touches the cart, the balance or orders; that happens
after the intent has SUCCEEDED.
"""

from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal
from typing import Optional, Protocol

import httpx
from pydantic import ValidationError
from libs.common.config import get_settings
from libs.common.currency import rupees_to_paise, to_decimal
from libs.common.logging import get_logger
from services.checkout_service.backend_client import BackendError
from services.checkout_service.errors import (
    CheckoutError,
    CheckoutInProgress,
    GatewayCancelled,
    GatewayUnavailable,
    InsufficientFunds,
    PaymentRejected,
    TransientNetwork,
    VerificationFailed,
)
from services.checkout_service.gateway_sdk import GatewayBridge
from services.checkout_service.models import (
    FailureKind,
    GatewayReceipt,
    GatewaySession,
    IntentStatus,
    PaymentIntent,
    PaymentMethod,
    PaymentPurpose,
)
from services.checkout_service.services.balance_reconciler import BalanceReconciler

logger = get_logger(__name__)


class PaymentBackend(Protocol):
    async def create_payment_intent(
        self,
        *,
        intent_id: str,
        amount: Decimal,
        method: PaymentMethod,
        purpose: PaymentPurpose,
        description: str = "",
        currency: str = "INR",
    ) -> GatewaySession: ...

    async def verify_payment(self, intent_id: str, receipt: GatewayReceipt) -> bool: ...


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (httpx.RequestError, asyncio.TimeoutError)):
        return True
    return isinstance(exc, BackendError) and exc.is_server_error


class PaymentOrchestrator:
    """One intent at a time per session."""

    def __init__(
        self,
        backend: PaymentBackend,
        gateway: GatewayBridge,
        balance: BalanceReconciler,
        *,
        currency: Optional[str] = None,
        verify_timeout: Optional[float] = None,
        public_key: Optional[str] = None,
    ):
        settings = get_settings()
        self._backend = backend
        self._gateway = gateway
        self._balance = balance
        self.currency = currency or settings.CURRENCY
        self.verify_timeout = (
            verify_timeout if verify_timeout is not None else settings.VERIFY_TIMEOUT_SECONDS
        )
        self.public_key = public_key if public_key is not None else settings.GATEWAY_PUBLIC_KEY
        self._current: Optional[PaymentIntent] = None

    @property
    def current_intent(self) -> Optional[PaymentIntent]:
        """The most recent intent, terminal or not."""
        return self._current

    @property
    def busy(self) -> bool:
        return self._current is not None and not self._current.is_terminal

    def _next_intent_id(self, amount: Decimal, purpose: PaymentPurpose) -> str:
        # Same amount/purpose after a retryable failure is the same logical attempt
        last = self._current
        if (
            last is not None
            and last.status == IntentStatus.FAILED
            and last.retryable
            and last.amount == amount
            and last.purpose == purpose
        ):
            logger.info("Reusing intent %s for retry", last.intent_id)
            return last.intent_id
        return uuid.uuid4().hex

    async def pay(
        self,
        amount: Decimal,
        method: PaymentMethod,
        purpose: PaymentPurpose,
        description: str = "",
    ) -> PaymentIntent:
        """Run one payment attempt and return the SUCCEEDED intent.

        Raises:
            CheckoutInProgress: another intent is still running.
            InsufficientFunds: food card balance too low (no intent created).
            GatewayCancelled: the user dismissed the gateway modal.
            VerificationFailed: the backend rejected the gateway receipt.
            TransientNetwork: a network step failed or timed out (retryable).
            PaymentRejected: the backend refused to create the gateway order.
        """
        if self.busy:
            raise CheckoutInProgress(self._current)

        amount = to_decimal(amount)
        if amount <= 0:
            raise ValueError(f"Payment amount must be positive, got {amount}")

        if method.is_stored_value:
            return self._pay_with_food_card(amount, purpose, description)
        return await self._pay_with_gateway(amount, method, purpose, description)

    # ------------------------------------------------------------------
    # Food card
    # ------------------------------------------------------------------

    def _pay_with_food_card(
        self, amount: Decimal, purpose: PaymentPurpose, description: str
    ) -> PaymentIntent:
        if purpose == PaymentPurpose.BALANCE_TOPUP:
            raise ValueError("The food card cannot be used to top itself up")

        available = self._balance.available()
        if amount > available:
            logger.info("Food card payment of %s refused, balance %s", amount, available)
            raise InsufficientFunds(required=amount, available=available)

        intent = PaymentIntent(
            intent_id=uuid.uuid4().hex,
            amount=amount,
            method=PaymentMethod.FOOD_CARD,
            purpose=purpose,
            description=description,
            currency=self.currency,
        )
        self._current = intent
        intent.transition(IntentStatus.SUCCEEDED)
        logger.info("Food card payment %s authorised for %s", intent.intent_id, amount)
        return intent

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    async def _pay_with_gateway(
        self,
        amount: Decimal,
        method: PaymentMethod,
        purpose: PaymentPurpose,
        description: str,
    ) -> PaymentIntent:
        intent = PaymentIntent(
            intent_id=self._next_intent_id(amount, purpose),
            amount=amount,
            method=method,
            purpose=purpose,
            description=description,
            currency=self.currency,
        )
        self._current = intent
        intent.transition(IntentStatus.AWAITING_GATEWAY)

        try:
            receipt = await self._collect_receipt(intent)
            await self._verify(intent, receipt)
        except asyncio.CancelledError:
            # Task torn down mid-flight (shutdown, session dropped)
            if not intent.is_terminal:
                intent.fail(
                    FailureKind.TRANSIENT_NETWORK, "checkout interrupted", retryable=True
                )
            raise
        except CheckoutError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error during payment %s", intent.intent_id)
            if not intent.is_terminal:
                intent.fail(FailureKind.BACKEND_REJECTED, str(exc), retryable=False)
            raise PaymentRejected("unexpected error", intent=intent) from exc
        return intent

    async def _collect_receipt(self, intent: PaymentIntent) -> GatewayReceipt:
        try:
            session = await self._backend.create_payment_intent(
                intent_id=intent.intent_id,
                amount=intent.amount,
                method=intent.method,
                purpose=intent.purpose,
                description=intent.description,
                currency=intent.currency,
            )
        except Exception as exc:
            if _is_transient(exc):
                logger.warning(
                    "Gateway order creation for %s failed: %s", intent.intent_id, exc
                )
                intent.fail(FailureKind.TRANSIENT_NETWORK, str(exc), retryable=True)
                raise TransientNetwork(intent=intent) from exc
            if isinstance(exc, BackendError):
                logger.error(
                    "Backend refused payment intent %s: %s", intent.intent_id, exc.message
                )
                intent.fail(FailureKind.BACKEND_REJECTED, exc.message, retryable=False)
                raise PaymentRejected(exc.message, intent=intent) from exc
            if isinstance(exc, ValidationError):
                logger.error(
                    "Unreadable payment intent reply for %s: %s", intent.intent_id, exc
                )
                intent.fail(
                    FailureKind.BACKEND_REJECTED, "unreadable backend reply", retryable=False
                )
                raise PaymentRejected("unreadable backend reply", intent=intent) from exc
            raise

        if not session.gateway_order_ref:
            intent.fail(
                FailureKind.BACKEND_REJECTED, "no gateway order reference", retryable=False
            )
            raise PaymentRejected("no gateway order reference", intent=intent)
        intent.gateway_order_ref = session.gateway_order_ref

        try:
            receipt = await self._gateway.checkout(
                public_key=session.gateway_key_public or self.public_key,
                amount_minor_units=rupees_to_paise(intent.amount),
                currency=session.currency or intent.currency,
                order_ref=session.gateway_order_ref,
                description=intent.description,
            )
        except GatewayUnavailable as exc:
            logger.error("Gateway unavailable for %s: %s", intent.intent_id, exc.message)
            intent.fail(FailureKind.GATEWAY_UNAVAILABLE, exc.message, retryable=True)
            exc.intent = intent
            raise
        except ValueError as exc:
            logger.error("Malformed gateway callback for %s: %s", intent.intent_id, exc)
            intent.fail(FailureKind.VERIFICATION_FAILED, str(exc), retryable=False)
            raise VerificationFailed(intent, str(exc)) from exc

        if receipt is None:
            intent.transition(IntentStatus.CANCELLED)
            logger.info("Payment %s cancelled by user", intent.intent_id)
            raise GatewayCancelled(intent)
        return receipt

    async def _verify(self, intent: PaymentIntent, receipt: GatewayReceipt) -> None:
        intent.transition(IntentStatus.VERIFYING, receipt=receipt)

        if receipt.gateway_order_ref != intent.gateway_order_ref:
            detail = "receipt belongs to a different gateway order"
            logger.error(
                "Receipt for %s names order %s, expected %s",
                intent.intent_id,
                receipt.gateway_order_ref,
                intent.gateway_order_ref,
            )
            intent.fail(FailureKind.VERIFICATION_FAILED, detail, retryable=False)
            raise VerificationFailed(intent, detail)

        try:
            verified = await asyncio.wait_for(
                self._backend.verify_payment(intent.intent_id, receipt),
                timeout=self.verify_timeout,
            )
        except Exception as exc:
            if _is_transient(exc):
                detail = str(exc) or "verification timed out"
                logger.warning("Verification for %s failed: %s", intent.intent_id, detail)
                intent.fail(FailureKind.TRANSIENT_NETWORK, detail, retryable=True)
                raise TransientNetwork(intent=intent) from exc
            if isinstance(exc, BackendError):
                logger.error(
                    "Verification rejected for %s: %s", intent.intent_id, exc.message
                )
                intent.fail(FailureKind.VERIFICATION_FAILED, exc.message, retryable=False)
                raise VerificationFailed(intent, exc.message) from exc
            if isinstance(exc, ValidationError):
                # Anything other than a well-formed verdict is not proof of payment
                detail = "unreadable verification reply"
                logger.error("Verification reply for %s unreadable: %s", intent.intent_id, exc)
                intent.fail(FailureKind.VERIFICATION_FAILED, detail, retryable=False)
                raise VerificationFailed(intent, detail) from exc
            raise

        if not verified:
            logger.error(
                "Payment %s failed signature verification (gateway payment %s)",
                intent.intent_id,
                receipt.gateway_payment_ref,
            )
            intent.fail(
                FailureKind.VERIFICATION_FAILED, "signature check failed", retryable=False
            )
            raise VerificationFailed(intent)

        intent.transition(IntentStatus.SUCCEEDED)
        logger.info(
            "Payment %s verified (gateway payment %s)",
            intent.intent_id,
            receipt.gateway_payment_ref,
        )

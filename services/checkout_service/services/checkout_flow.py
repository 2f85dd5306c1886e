"""
Checkout session: one user's cart, food card and payment flows wired together.

    cart.priced() -> payments.pay() -> orders.commit() -> ledger / balance

A session owns one instance of each component. Only one payment flow (checkout
or top-up) runs at a time; a second one is refused with ``CheckoutInProgress``
until the first has reached a terminal outcome.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from decimal import Decimal
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

import httpx
from pydantic import ValidationError

from libs.auth.models import AuthUser, StaticCredentials
from libs.common.config import Settings, get_settings
from libs.common.currency import to_decimal
from libs.common.logging import get_logger
from libs.db.kv_store import KeyValueStore, NamespacedStore, build_kv_store
from services.checkout_service.backend_client import BackendError, CafeteriaBackendClient
from services.checkout_service.errors import (
    CheckoutInProgress,
    EmptyCart,
    InvalidTopUpAmount,
    UnrecordedOrdersPending,
    VerificationFailed,
)
from services.checkout_service.gateway_sdk import GatewayBridge
from services.checkout_service.models import (
    CartLine,
    LedgerKind,
    LedgerPage,
    LedgerStatus,
    MenuItem,
    Order,
    PaymentMethod,
    PaymentPurpose,
    StoredValueBalance,
)
from services.checkout_service.services.balance_reconciler import BalanceReconciler
from services.checkout_service.services.cart_ops import CartAggregator
from services.checkout_service.services.order_committer import OrderCommitter
from services.checkout_service.services.payment_orchestrator import PaymentOrchestrator
from services.checkout_service.services.transaction_ledger import (
    TransactionLedger,
    new_entry,
)

logger = get_logger(__name__)

T = TypeVar("T")


class CheckoutSession:
    def __init__(
        self,
        backend: CafeteriaBackendClient,
        store: KeyValueStore,
        *,
        gateway: Optional[GatewayBridge] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.backend = backend
        self.gateway = gateway or GatewayBridge(settings.GATEWAY_SDK_PATH)
        self.cart = CartAggregator(settings.TAX_RATE, settings.CURRENCY)
        self.balance = BalanceReconciler(store)
        self.ledger = TransactionLedger(store, capacity=settings.LEDGER_CAPACITY)
        self.payments = PaymentOrchestrator(
            backend,
            self.gateway,
            self.balance,
            currency=settings.CURRENCY,
            verify_timeout=settings.VERIFY_TIMEOUT_SECONDS,
            public_key=settings.GATEWAY_PUBLIC_KEY,
        )
        self.orders = OrderCommitter(backend, self.cart, self.balance, self.ledger)
        self.topup_min = settings.TOPUP_MIN_AMOUNT
        self.topup_max = settings.TOPUP_MAX_AMOUNT
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return (
            self._in_flight
            or self.payments.busy
            or (self._task is not None and not self._task.done())
        )

    @property
    def pending_task(self) -> Optional[asyncio.Task]:
        return self._task

    # ========================================================================
    # CART
    # ========================================================================

    def add_to_cart(self, item: MenuItem, qty: int = 1) -> CartLine:
        self._ensure_cart_editable()
        return self.cart.add_line(item, qty)

    def set_cart_quantity(self, item_id: str, qty: int) -> Optional[CartLine]:
        self._ensure_cart_editable()
        return self.cart.set_quantity(item_id, qty)

    def remove_from_cart(self, item_id: str) -> Optional[CartLine]:
        self._ensure_cart_editable()
        return self.cart.remove_line(item_id)

    def clear_cart(self) -> None:
        self._ensure_cart_editable()
        self.cart.clear()

    def _ensure_cart_editable(self) -> None:
        # The running flow priced the cart already and clears it on commit
        if self.busy:
            raise CheckoutInProgress(self.payments.current_intent)

    # ========================================================================
    # BALANCE
    # ========================================================================

    async def bootstrap(self) -> Optional[StoredValueBalance]:
        """Reconcile the cached food card balance with the backend once."""
        return await self.refresh_balance()

    async def refresh_balance(self) -> Optional[StoredValueBalance]:
        """Reconcile with the backend; on failure keep serving the cached value."""
        try:
            return await self.balance.refresh(self.backend)
        except (httpx.RequestError, BackendError, ValidationError) as exc:
            logger.warning("Could not refresh food card balance: %s", exc)
            return self.balance.get()

    # ========================================================================
    # FLOWS
    # ========================================================================

    async def checkout(self, method: PaymentMethod, description: str = "") -> Order:
        """Pay for the current cart and record the order."""
        if self.cart.is_empty:
            raise EmptyCart()
        with self._exclusive():
            priced = self.cart.priced()
            intent = await self.payments.pay(
                priced.total,
                method,
                PaymentPurpose.ORDER_PAYMENT,
                description or f"Cafeteria order ({priced.item_count} items)",
            )
            order = await self.orders.commit(priced, intent)
        if method.is_stored_value:
            await self.refresh_balance()
        return order

    async def top_up(
        self, amount: Decimal, method: PaymentMethod = PaymentMethod.RAZORPAY
    ) -> Optional[StoredValueBalance]:
        """Credit the food card through the gateway."""
        amount = to_decimal(amount)
        if amount < self.topup_min or amount > self.topup_max:
            raise InvalidTopUpAmount(amount, self.topup_min, self.topup_max)
        if method.is_stored_value:
            raise ValueError("Top-ups must be paid through the gateway")

        with self._exclusive():
            try:
                intent = await self.payments.pay(
                    amount, method, PaymentPurpose.BALANCE_TOPUP, "Food card top-up"
                )
            except VerificationFailed as exc:
                self.ledger.append(
                    new_entry(
                        kind=LedgerKind.TOP_UP,
                        amount=amount,
                        method=method.value,
                        status=LedgerStatus.FAILED,
                        description="Top-up could not be verified",
                        related_payment_ref=exc.intent.intent_id if exc.intent else None,
                    )
                )
                raise

            self.balance.apply_delta(amount)
            self.ledger.append(
                new_entry(
                    kind=LedgerKind.TOP_UP,
                    amount=amount,
                    method=method.value,
                    status=LedgerStatus.SUCCESS,
                    description="Food card top-up",
                    related_payment_ref=intent.intent_id,
                )
            )
            logger.info("Food card topped up by %s (intent %s)", amount, intent.intent_id)
        return await self.refresh_balance()

    async def retry_commit(self, intent_id: str) -> Order:
        """Retry recording an order that was paid for but not saved."""
        with self._exclusive():
            order = await self.orders.retry(intent_id)
        if order.payment_method.is_stored_value:
            await self.refresh_balance()
        return order

    def history(self, page_index: int = 0, page_size: int = 10) -> LedgerPage:
        return self.ledger.page(page_index, page_size)

    # ========================================================================
    # BACKGROUND RUNS (HTTP surface)
    # ========================================================================

    def start(self, flow: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """Run a flow as a task so a request can return while the modal is open."""
        if self.busy:
            raise CheckoutInProgress(self.payments.current_intent)
        self._task = asyncio.create_task(flow())
        return self._task

    async def run_until_gateway(self, task: "asyncio.Task[T]") -> Optional[T]:
        """Wait until the flow finishes or a gateway modal opens.

        Returns the flow's result when it finished, or None when it is now
        waiting for the user. Flow errors propagate.
        """
        opened = asyncio.create_task(self.gateway.wait_opened())
        try:
            await asyncio.wait({task, opened}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            opened.cancel()
        if task.done():
            return task.result()
        return None

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if self._in_flight:
            raise CheckoutInProgress(self.payments.current_intent)
        self._in_flight = True
        try:
            yield
        finally:
            self._in_flight = False


class SessionRegistry:
    """Keeps one CheckoutSession per signed-in user.

    All sessions share one physical key-value store, namespaced by user id.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        backend_factory: Optional[Callable[[StaticCredentials], CafeteriaBackendClient]] = None,
        gateway_factory: Optional[Callable[[], GatewayBridge]] = None,
    ):
        self._store = store
        self._backend_factory = backend_factory or CafeteriaBackendClient
        self._gateway_factory = gateway_factory
        self._sessions: dict[str, CheckoutSession] = {}
        self._credentials: dict[str, StaticCredentials] = {}

    async def get(self, user: AuthUser) -> CheckoutSession:
        session = self._sessions.get(user.user_id)
        if session is not None:
            # Tokens rotate; the session keeps the user's latest one
            self._credentials[user.user_id].update(user.bearer_token())
            return session

        if self._store is None:
            self._store = build_kv_store()
        credentials = StaticCredentials(user.bearer_token())
        session = CheckoutSession(
            self._backend_factory(credentials),
            NamespacedStore(self._store, user.user_id),
            gateway=self._gateway_factory() if self._gateway_factory else None,
        )
        self._credentials[user.user_id] = credentials
        self._sessions[user.user_id] = session
        logger.info("Opened checkout session for user %s", user.user_id)
        await session.bootstrap()
        return session

    def drop(self, user_id: str) -> bool:
        """Close a user's session on sign-out.

        The cached balance and ledger stay in the store so the next sign-in
        reconciles against them. Refused while a payment is running or a paid
        order is still unrecorded, since both live only in the session.
        """
        session = self._sessions.get(user_id)
        if session is None:
            return False
        if session.busy:
            raise CheckoutInProgress(session.payments.current_intent)
        unrecorded = session.orders.unrecorded()
        if unrecorded:
            raise UnrecordedOrdersPending(len(unrecorded))

        del self._sessions[user_id]
        self._credentials.pop(user_id, None)
        logger.info("Closed checkout session for user %s", user_id)
        return True

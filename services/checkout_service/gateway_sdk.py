"""
Gateway SDK bridge.

The checkout SDK is opaque: it is constructed with the payment options and two
callbacks, and ``open()`` hands control to the user (a modal in a browser). The
bridge loads the SDK on first use from a ``module:attribute`` path and turns the
callback pair into one awaitable result, so the orchestrator never sees
callback plumbing.

``RelayCheckout`` is the default SDK for the HTTP surface: ``open()`` only
records the checkout, and the UI's callbacks reach it through the checkout
router, which calls ``succeed`` or ``dismiss``.
"""

from __future__ import annotations

import asyncio
import importlib
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol

from libs.common.logging import get_logger
from services.checkout_service.errors import GatewayUnavailable
from services.checkout_service.models import GatewayReceipt

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewayOptions:
    public_key: str
    amount_minor_units: int
    currency: str
    order_ref: str
    description: str
    on_success: Callable[[Mapping[str, Any]], None]
    on_dismiss: Callable[[], None]


class GatewayModal(Protocol):
    def open(self) -> None: ...


class GatewaySdk(Protocol):
    def __call__(self, options: GatewayOptions) -> GatewayModal: ...


def load_sdk(path: str) -> GatewaySdk:
    """Import ``package.module:attribute`` and return the SDK constructor."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise GatewayUnavailable(f"invalid SDK path {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise GatewayUnavailable(f"could not load {module_name}") from exc
    try:
        sdk = getattr(module, attr)
    except AttributeError as exc:
        raise GatewayUnavailable(f"{module_name} has no {attr}") from exc
    if not callable(sdk):
        raise GatewayUnavailable(f"{path} is not callable")
    return sdk


class GatewayBridge:
    """Loads the SDK lazily and drives one modal at a time."""

    def __init__(self, sdk_path: Optional[str] = None, *, sdk: Optional[GatewaySdk] = None):
        self._sdk_path = sdk_path
        self._sdk = sdk
        self.active_modal: Optional[GatewayModal] = None
        self._opened = asyncio.Event()

    def load(self) -> GatewaySdk:
        if self._sdk is None:
            if not self._sdk_path:
                raise GatewayUnavailable("no gateway SDK configured")
            self._sdk = load_sdk(self._sdk_path)
            logger.info("Loaded gateway SDK from %s", self._sdk_path)
        return self._sdk

    async def wait_opened(self) -> None:
        """Block until a modal is open and waiting for the user."""
        await self._opened.wait()

    async def checkout(
        self,
        *,
        public_key: str,
        amount_minor_units: int,
        currency: str,
        order_ref: str,
        description: str = "",
    ) -> Optional[GatewayReceipt]:
        """Open the modal and wait for the user.

        Returns the receipt on success, or None when the user dismissed the
        modal. There is no timeout: the wait is user-paced. Callbacks that arrive
        after the first one are ignored.
        """
        sdk = self.load()
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[Optional[GatewayReceipt]] = loop.create_future()

        def settle(result: Optional[GatewayReceipt], error: Optional[BaseException]) -> None:
            if outcome.done():
                logger.warning(
                    "Ignoring late gateway callback for order %s", order_ref
                )
                return
            if error is not None:
                outcome.set_exception(error)
            else:
                outcome.set_result(result)

        def on_success(payload: Mapping[str, Any]) -> None:
            try:
                receipt = GatewayReceipt.from_callback(payload)
            except ValueError as exc:
                loop.call_soon_threadsafe(settle, None, exc)
                return
            loop.call_soon_threadsafe(settle, receipt, None)

        def on_dismiss() -> None:
            loop.call_soon_threadsafe(settle, None, None)

        try:
            modal = sdk(
                GatewayOptions(
                    public_key=public_key,
                    amount_minor_units=amount_minor_units,
                    currency=currency,
                    order_ref=order_ref,
                    description=description,
                    on_success=on_success,
                    on_dismiss=on_dismiss,
                )
            )
            self.active_modal = modal
            modal.open()
            self._opened.set()
        except GatewayUnavailable:
            raise
        except Exception as exc:
            raise GatewayUnavailable(f"SDK failed to open: {exc}") from exc

        try:
            return await outcome
        finally:
            self.active_modal = None
            self._opened.clear()


class RelayCheckout:
    """SDK stand-in whose callbacks are fired by the UI through the HTTP surface."""

    def __init__(self, options: GatewayOptions):
        self.options = options
        self.opened = False

    @property
    def order_ref(self) -> str:
        return self.options.order_ref

    def open(self) -> None:
        self.opened = True
        logger.info(
            "Gateway checkout opened for order %s (%d %s)",
            self.options.order_ref,
            self.options.amount_minor_units,
            self.options.currency,
        )

    def succeed(self, payload: Mapping[str, Any]) -> None:
        self.options.on_success(payload)

    def dismiss(self) -> None:
        self.options.on_dismiss()

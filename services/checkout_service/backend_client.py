"""
Async client for the cafeteria REST backend.

Provides async methods for:
- Creating payment intents (gateway order references)
- Verifying gateway receipts
- Creating orders
- Fetching the food card balance

Every call carries the caller's bearer token, the current request ID and, for
writes, an Idempotency-Key header.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import httpx
from libs.auth.models import CredentialProvider
from libs.common.config import get_settings
from libs.common.datetime_utils import parse_timestamp, utc_now
from libs.common.logging import get_logger, get_request_id
from services.checkout_service.models import (
    BalanceOrigin,
    CartLine,
    GatewayReceipt,
    GatewaySession,
    OrderPaymentStatus,
    PaymentMethod,
    PaymentPurpose,
    StoredValueBalance,
)
from services.checkout_service.schemas.backend import (
    BalanceFetchResponse,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderLinePayload,
    PaymentIntentCreateRequest,
    PaymentIntentCreateResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
)

logger = get_logger(__name__)


class BackendError(Exception):
    """Non-2xx answer from the cafeteria backend."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, response_data: Any = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data if response_data is not None else {}
        super().__init__(message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class CafeteriaBackendClient:
    """Async client for the order/payment/food-card endpoints."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS
        self._credentials = credentials
        self._transport = transport

    def _headers(self, idempotency_key: Optional[str]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._credentials.bearer_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Make a request and return the decoded JSON body.

        Raises:
            httpx.RequestError on connection failures and timeouts.
            BackendError on non-2xx responses.
        """
        url = f"{self.base_url}{path}"

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method,
                url,
                headers=self._headers(idempotency_key),
                json=json_data,
            )

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"raw": response.text}

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            logger.error(
                "Backend %s %s failed: %d - %s", method, path, response.status_code, data
            )
            raise BackendError(
                message=message or f"Backend returned {response.status_code}",
                status_code=response.status_code,
                response_data=data,
            )

        return data

    # =========================================================================
    # Payments
    # =========================================================================

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
        """
        Ask the backend for a gateway order reference for this intent.

        The intent_id is the idempotency key: repeating the call for the same
        intent returns the same gateway order instead of creating another one.
        """
        body = PaymentIntentCreateRequest(
            idempotency_key=intent_id,
            amount=amount,
            method=method,
            purpose=purpose,
            description=description,
            currency=currency,
        )
        data = await self._request(
            "POST",
            "/payments/intents",
            json_data=body.model_dump(mode="json", by_alias=True),
            idempotency_key=intent_id,
        )
        parsed = PaymentIntentCreateResponse.model_validate(data)
        return GatewaySession(
            intent_id=parsed.intent_id or intent_id,
            currency=parsed.currency,
            gateway_order_ref=parsed.gateway_order_ref,
            gateway_key_public=parsed.gateway_key_public,
        )

    async def verify_payment(self, intent_id: str, receipt: GatewayReceipt) -> bool:
        """
        Submit a gateway receipt for server-side signature verification.

        Returns:
            True only when the backend answers SUCCEEDED.
        """
        body = PaymentVerifyRequest(
            intent_id=intent_id,
            gateway_payment_ref=receipt.gateway_payment_ref,
            gateway_order_ref=receipt.gateway_order_ref,
            signature=receipt.signature,
        )
        data = await self._request(
            "POST",
            "/payments/verify",
            json_data=body.model_dump(mode="json", by_alias=True),
            idempotency_key=intent_id,
        )
        parsed = PaymentVerifyResponse.model_validate(data)
        if parsed.status != "SUCCEEDED":
            logger.warning(
                "Backend rejected receipt for intent %s: %s", intent_id, parsed.message
            )
        return parsed.status == "SUCCEEDED"

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(
        self,
        *,
        idempotency_key: str,
        lines: tuple[CartLine, ...],
        total: Decimal,
        payment_method: PaymentMethod,
        payment_status: OrderPaymentStatus = OrderPaymentStatus.COMPLETED,
        receipt: Optional[GatewayReceipt] = None,
    ) -> OrderCreateResponse:
        """Persist an order. Safe to repeat with the same idempotency key."""
        body = OrderCreateRequest(
            idempotency_key=idempotency_key,
            lines=[
                OrderLinePayload(
                    menu_item_id=line.item_id,
                    name=line.name,
                    price=line.unit_price,
                    quantity=line.quantity,
                    vendor=line.vendor_id,
                )
                for line in lines
            ],
            total_amount=total,
            payment_method=payment_method,
            payment_status=payment_status,
            gateway_payment_ref=receipt.gateway_payment_ref if receipt else None,
            gateway_order_ref=receipt.gateway_order_ref if receipt else None,
        )
        data = await self._request(
            "POST",
            "/orders",
            json_data=body.model_dump(mode="json", by_alias=True, exclude_none=True),
            idempotency_key=idempotency_key,
        )
        return OrderCreateResponse.model_validate(data)

    # =========================================================================
    # Food card
    # =========================================================================

    async def fetch_balance(self) -> StoredValueBalance:
        """Current food card balance as the backend sees it."""
        data = await self._request("GET", "/users/food-card/balance")
        parsed = BalanceFetchResponse.model_validate(data)
        return StoredValueBalance(
            amount=parsed.amount,
            source_timestamp=parse_timestamp(parsed.as_of) or utc_now(),
            origin=BalanceOrigin.REMOTE,
        )

"""Shared helpers for checkout service routers."""

from typing import Any, Awaitable, Callable, Union

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from services.checkout_service.errors import (
    CheckoutError,
    CheckoutInProgress,
    EmptyCart,
    GatewayCancelled,
    IllegalTransition,
    InsufficientFunds,
    InvalidTopUpAmount,
    LineNotFound,
    PaidOrderNotRecorded,
    PaymentRejected,
    PreconditionMismatch,
    TransientNetwork,
    UnrecordedOrdersPending,
    VerificationFailed,
)
from services.checkout_service.gateway_sdk import RelayCheckout
from services.checkout_service.models import Order, StoredValueBalance
from services.checkout_service.schemas import (
    BalanceResponse,
    GatewayCheckoutResponse,
    OrderResponse,
    PaymentIntentResponse,
)
from services.checkout_service.services.checkout_flow import CheckoutSession

logger = get_logger(__name__)

# First match wins, so subclasses go before their bases
STATUS_BY_ERROR: list[tuple[type[CheckoutError], int]] = [
    (PaidOrderNotRecorded, 502),
    (InsufficientFunds, 402),
    (VerificationFailed, 402),
    (GatewayCancelled, 409),
    (CheckoutInProgress, 409),
    (IllegalTransition, 409),
    (UnrecordedOrdersPending, 409),
    (PreconditionMismatch, 422),
    (PaymentRejected, 422),
    (EmptyCart, 400),
    (InvalidTopUpAmount, 400),
    (LineNotFound, 404),
    (TransientNetwork, 503),
]


def status_for(exc: CheckoutError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_body(exc: CheckoutError) -> dict[str, Any]:
    body: dict[str, Any] = {
        "error": type(exc).__name__,
        "message": exc.message,
        "retryable": exc.retryable,
    }
    if exc.intent is not None:
        body["intent_id"] = exc.intent.intent_id
    return body


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"detail": error_body(exc)})


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CheckoutError, checkout_error_handler)


async def get_session(
    request: Request, current_user: AuthUser = Depends(get_current_user)
) -> CheckoutSession:
    """The caller's checkout session, opened (and bootstrapped) on first use."""
    return await request.app.state.sessions.get(current_user)


def gateway_pending(session: CheckoutSession) -> GatewayCheckoutResponse:
    """Describe the open gateway modal so the UI can render the real one."""
    modal = session.gateway.active_modal
    intent = session.payments.current_intent
    if not isinstance(modal, RelayCheckout) or intent is None:
        raise HTTPException(
            status_code=501,
            detail="The configured gateway SDK cannot be driven over HTTP",
        )
    options = modal.options
    return GatewayCheckoutResponse(
        intent=PaymentIntentResponse.model_validate(intent),
        public_key=options.public_key,
        amount_minor_units=options.amount_minor_units,
        currency=options.currency,
        order_ref=options.order_ref,
        description=options.description,
    )


def flow_result(result: object) -> Union[OrderResponse, BalanceResponse]:
    if isinstance(result, Order):
        return OrderResponse.model_validate(result)
    if isinstance(result, StoredValueBalance):
        return BalanceResponse.model_validate(result)
    raise HTTPException(status_code=500, detail="Unexpected checkout result")


async def run_flow(
    session: CheckoutSession, flow: Callable[[], Awaitable[Any]], response: Response
) -> Union[OrderResponse, BalanceResponse, GatewayCheckoutResponse]:
    """Start a payment flow; answer 201 when it finished, 202 while the modal is open."""
    task = session.start(flow)
    result = await session.run_until_gateway(task)
    if task.done():
        response.status_code = status.HTTP_201_CREATED
        return flow_result(result)
    response.status_code = status.HTTP_202_ACCEPTED
    return gateway_pending(session)

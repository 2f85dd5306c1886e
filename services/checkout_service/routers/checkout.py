"""Checkout endpoints: pay for the cart, relay gateway callbacks, retry unrecorded orders."""

import asyncio
from typing import Union

from fastapi import APIRouter, Depends, HTTPException, Response
from libs.common.logging import get_logger
from services.checkout_service.gateway_sdk import RelayCheckout
from services.checkout_service.routers._helpers import flow_result, get_session, run_flow
from services.checkout_service.schemas import (
    BalanceResponse,
    CheckoutRequest,
    GatewayCallbackRequest,
    GatewayCheckoutResponse,
    OrderResponse,
    PaymentIntentResponse,
    UnrecordedOrderResponse,
)
from services.checkout_service.services.checkout_flow import CheckoutSession

router = APIRouter(prefix="/checkout", tags=["checkout"])
logger = get_logger(__name__)


def _waiting_modal(session: CheckoutSession) -> RelayCheckout:
    modal = session.gateway.active_modal
    task = session.pending_task
    if not isinstance(modal, RelayCheckout) or task is None or task.done():
        raise HTTPException(status_code=409, detail="No payment is waiting for the gateway")
    return modal


@router.post(
    "",
    response_model=Union[OrderResponse, GatewayCheckoutResponse],
    responses={202: {"model": GatewayCheckoutResponse}},
)
async def start_checkout(
    payload: CheckoutRequest,
    response: Response,
    session: CheckoutSession = Depends(get_session),
):
    """
    Pay for the current cart.

    Food card payments finish immediately and return the order (201).
    Gateway payments return the modal parameters (202); the UI then reports
    the outcome through /checkout/gateway/success or /checkout/gateway/dismiss.
    """
    return await run_flow(
        session, lambda: session.checkout(payload.method, payload.description), response
    )


@router.get("/current", response_model=PaymentIntentResponse)
async def get_current_intent(session: CheckoutSession = Depends(get_session)):
    intent = session.payments.current_intent
    if intent is None:
        raise HTTPException(status_code=404, detail="No payment has been started")
    return intent


@router.post(
    "/gateway/success",
    response_model=Union[OrderResponse, BalanceResponse],
    status_code=201,
)
async def gateway_success(
    payload: GatewayCallbackRequest, session: CheckoutSession = Depends(get_session)
):
    """
    Relay the gateway's success callback.
    The payment is verified with the backend before anything is recorded.
    """
    modal = _waiting_modal(session)
    if payload.gateway_order_ref != modal.order_ref:
        # Callback from an earlier, already finished attempt
        logger.warning(
            "Ignoring gateway callback for order %s while %s is open",
            payload.gateway_order_ref,
            modal.order_ref,
        )
        raise HTTPException(status_code=409, detail="Callback does not match the open payment")

    modal.succeed(payload.model_dump())
    # Shielded: a dropped connection must not abort verification or the order write
    result = await asyncio.shield(session.pending_task)
    return flow_result(result)


@router.post("/gateway/dismiss", status_code=204)
async def gateway_dismiss(session: CheckoutSession = Depends(get_session)):
    """Relay the gateway's dismiss callback. Answers 409 GatewayCancelled."""
    modal = _waiting_modal(session)
    modal.dismiss()
    await asyncio.shield(session.pending_task)


@router.get("/unrecorded", response_model=list[UnrecordedOrderResponse])
async def list_unrecorded(session: CheckoutSession = Depends(get_session)):
    """Paid orders the backend has not recorded yet."""
    return [
        UnrecordedOrderResponse(
            intent_id=intent.intent_id,
            total=priced.total,
            method=intent.method,
            item_count=priced.item_count,
        )
        for priced, intent in session.orders.unrecorded()
    ]


@router.post("/unrecorded/{intent_id}/retry", response_model=OrderResponse)
async def retry_unrecorded(intent_id: str, session: CheckoutSession = Depends(get_session)):
    """Retry recording a paid order. Never charges again."""
    try:
        order = await session.retry_commit(intent_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="No unrecorded order for this payment")
    return OrderResponse.model_validate(order)

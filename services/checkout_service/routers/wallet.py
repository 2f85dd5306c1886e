"""Food card endpoints: balance and gateway top-ups."""

from typing import Union

from fastapi import APIRouter, Depends, HTTPException, Response
from services.checkout_service.routers._helpers import get_session, run_flow
from services.checkout_service.schemas import (
    BalanceResponse,
    GatewayCheckoutResponse,
    TopUpRequest,
)
from services.checkout_service.services.checkout_flow import CheckoutSession

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(session: CheckoutSession = Depends(get_session)):
    balance = session.balance.get()
    if balance is None:
        raise HTTPException(status_code=404, detail="Food card balance not available yet")
    return balance


@router.post("/balance/refresh", response_model=BalanceResponse)
async def refresh_balance(session: CheckoutSession = Depends(get_session)):
    """Reconcile the cached balance with the backend."""
    balance = await session.refresh_balance()
    if balance is None:
        raise HTTPException(status_code=503, detail="Food card balance not available")
    return balance


@router.post(
    "/top-up",
    response_model=Union[BalanceResponse, GatewayCheckoutResponse],
    responses={202: {"model": GatewayCheckoutResponse}},
)
async def top_up(
    payload: TopUpRequest,
    response: Response,
    session: CheckoutSession = Depends(get_session),
):
    """
    Top up the food card through the payment gateway.
    Returns the modal parameters (202); the outcome arrives through the
    checkout gateway callbacks.
    """
    if payload.method.is_stored_value:
        raise HTTPException(status_code=400, detail="Top-ups must be paid through the gateway")
    return await run_flow(
        session, lambda: session.top_up(payload.amount, payload.method), response
    )

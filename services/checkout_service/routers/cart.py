"""Cart endpoints: add, update and remove lines, and see the priced cart."""

from fastapi import APIRouter, Depends, HTTPException, status
from services.checkout_service.models import MenuItem
from services.checkout_service.routers._helpers import get_session
from services.checkout_service.schemas import (
    AddLineRequest,
    CartResponse,
    SetQuantityRequest,
)
from services.checkout_service.services.checkout_flow import CheckoutSession

router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_response(session: CheckoutSession) -> CartResponse:
    return CartResponse.model_validate(session.cart.priced())


@router.get("", response_model=CartResponse)
async def get_cart(session: CheckoutSession = Depends(get_session)):
    """Current lines with subtotal, tax and total."""
    return _cart_response(session)


@router.post("/lines", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_line(
    payload: AddLineRequest, session: CheckoutSession = Depends(get_session)
):
    """
    Add an item to the cart.
    Adding an item that is already in the cart increases its quantity.
    """
    item = MenuItem(
        item_id=payload.item_id,
        name=payload.name,
        unit_price=payload.unit_price,
        vendor_id=payload.vendor_id,
    )
    try:
        session.add_to_cart(item, payload.quantity)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _cart_response(session)


@router.put("/lines/{item_id}", response_model=CartResponse)
async def set_quantity(
    item_id: str,
    payload: SetQuantityRequest,
    session: CheckoutSession = Depends(get_session),
):
    session.set_cart_quantity(item_id, payload.quantity)
    return _cart_response(session)


@router.delete("/lines/{item_id}", response_model=CartResponse)
async def remove_line(item_id: str, session: CheckoutSession = Depends(get_session)):
    session.remove_from_cart(item_id)
    return _cart_response(session)


@router.delete("", response_model=CartResponse)
async def clear_cart(session: CheckoutSession = Depends(get_session)):
    session.clear_cart()
    return _cart_response(session)

"""Payment history endpoints."""

from fastapi import APIRouter, Depends, Query
from services.checkout_service.routers._helpers import get_session
from services.checkout_service.schemas import LedgerPageResponse
from services.checkout_service.services.checkout_flow import CheckoutSession

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=LedgerPageResponse)
async def list_history(
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    session: CheckoutSession = Depends(get_session),
):
    """Newest first."""
    return session.history(page, size)

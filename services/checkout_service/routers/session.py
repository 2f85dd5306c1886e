"""Session endpoints."""

from fastapi import APIRouter, Depends, Request, Response, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser

router = APIRouter(prefix="/session", tags=["session"])


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    request: Request, current_user: AuthUser = Depends(get_current_user)
) -> Response:
    """
    Close the caller's checkout session.
    The food card balance and history stay cached for the next sign-in.
    """
    request.app.state.sessions.drop(current_user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

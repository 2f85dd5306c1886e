from typing import Optional, Protocol

from pydantic import BaseModel, EmailStr, Field


class CredentialProvider(Protocol):
    """Anything that can hand out the bearer token for backend calls."""

    def bearer_token(self) -> Optional[str]: ...


class AuthUser(BaseModel):
    """
    Identity of the signed-in cafeteria user, as carried by their verified token.

    The token itself is forwarded to the backend untouched.
    """

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "EMPLOYEE"
    token: Optional[str] = Field(default=None, exclude=True, repr=False)

    model_config = {"populate_by_name": True}

    def bearer_token(self) -> Optional[str]:
        return self.token


class StaticCredentials:
    """Credential provider around a fixed token (scripts, tests, service use)."""

    def __init__(self, token: Optional[str]):
        self._token = token

    def bearer_token(self) -> Optional[str]:
        return self._token

    def update(self, token: Optional[str]) -> None:
        self._token = token

from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global client settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Auth. Tokens are issued by the cafeteria identity provider (HS256 by default)
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHM: str = "HS256"

    # Cafeteria backend (orders, payments, food card)
    API_BASE_URL: str = "http://localhost:8083/api/v1"
    BACKEND_TIMEOUT_SECONDS: float = 10.0
    # Caller-imposed bound on the payment verification round-trip
    VERIFY_TIMEOUT_SECONDS: float = 15.0

    # Pricing
    CURRENCY: str = "INR"
    TAX_RATE: Decimal = Decimal("0.05")

    # Food card
    TOPUP_MIN_AMOUNT: Decimal = Decimal("10")
    TOPUP_MAX_AMOUNT: Decimal = Decimal("10000")
    LEDGER_CAPACITY: int = 100

    # Payment gateway SDK, as "package.module:attribute". Loaded on first use.
    GATEWAY_SDK_PATH: Optional[str] = "services.checkout_service.gateway_sdk:RelayCheckout"
    # Used when the backend does not hand out a key with the intent
    GATEWAY_PUBLIC_KEY: str = ""

    # Local persistence for the balance cache and ledger
    STORAGE_BACKEND: Literal["memory", "sql"] = "sql"
    STORAGE_URL: str = "sqlite:///./cafeteria_client.db"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("API_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("LEDGER_CAPACITY")
    @classmethod
    def positive_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("LEDGER_CAPACITY must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()

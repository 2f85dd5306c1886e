"""Stored-value (food card) balance reading."""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from services.checkout_service.models.enums import BalanceOrigin


@dataclass(frozen=True, slots=True)
class StoredValueBalance:
    amount: Decimal
    source_timestamp: datetime
    origin: BalanceOrigin
    # Set while a local-only mutation has not been reconciled with the backend
    pending: bool = False

    def settled(self) -> "StoredValueBalance":
        return replace(self, pending=False)

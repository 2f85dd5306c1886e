"""Transaction ledger records."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from services.checkout_service.models.enums import LedgerKind, LedgerStatus


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    id: str
    kind: LedgerKind
    amount: Decimal
    method: str
    status: LedgerStatus
    timestamp: datetime
    description: str = ""
    related_order_id: Optional[str] = None
    related_order_number: Optional[str] = None
    related_payment_ref: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LedgerPage:
    content: tuple[LedgerEntry, ...]
    total_elements: int
    total_pages: int
    current_page: int
    size: int

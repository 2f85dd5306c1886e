"""Transaction ledger: bounded, append-only payment history kept on the client."""

import math
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.kv_store import KeyValueStore
from services.checkout_service.models import (
    LedgerEntry,
    LedgerKind,
    LedgerPage,
    LedgerStatus,
)

logger = get_logger(__name__)

LEDGER_KEY = "payment_history"

_entries_adapter = TypeAdapter(list[LedgerEntry])


def new_entry(
    *,
    kind: LedgerKind,
    amount: Decimal,
    method: str,
    status: LedgerStatus,
    description: str = "",
    related_order_id: Optional[str] = None,
    related_order_number: Optional[str] = None,
    related_payment_ref: Optional[str] = None,
) -> LedgerEntry:
    """Build an entry with a fresh id and timestamp."""
    return LedgerEntry(
        id=uuid.uuid4().hex,
        kind=kind,
        amount=amount,
        method=method,
        status=status,
        timestamp=utc_now(),
        description=description,
        related_order_id=related_order_id,
        related_order_number=related_order_number,
        related_payment_ref=related_payment_ref,
    )


class TransactionLedger:
    """Newest-first by insertion order, capped at ``capacity`` entries.

    Entries are never edited. A later entry for the same payment supersedes an
    earlier one (e.g. SUCCESS after PENDING).
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        capacity: Optional[int] = None,
        key: str = LEDGER_KEY,
    ):
        self._store = store
        self._key = key
        self.capacity = capacity if capacity is not None else get_settings().LEDGER_CAPACITY
        if self.capacity < 1:
            raise ValueError("Ledger capacity must be at least 1")

    def entries(self) -> list[LedgerEntry]:
        raw = self._store.get(self._key)
        if raw is None:
            return []
        try:
            return _entries_adapter.validate_json(raw)
        except ValidationError:
            logger.error("Payment history under %s is unreadable; starting afresh", self._key)
            return []

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        history = [entry, *self.entries()]
        evicted = len(history) - self.capacity
        if evicted > 0:
            history = history[: self.capacity]
            logger.debug("Evicted %d oldest ledger entries", evicted)
        self._store.set(self._key, _entries_adapter.dump_json(history).decode())
        return entry

    def page(self, page_index: int = 0, page_size: int = 10) -> LedgerPage:
        if page_index < 0:
            raise ValueError("page_index cannot be negative")
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        history = self.entries()
        start = page_index * page_size
        return LedgerPage(
            content=tuple(history[start : start + page_size]),
            total_elements=len(history),
            total_pages=math.ceil(len(history) / page_size),
            current_page=page_index,
            size=page_size,
        )

    def latest_for_payment(self, payment_ref: str) -> Optional[LedgerEntry]:
        """Most recent entry recorded against a payment reference."""
        for entry in self.entries():
            if entry.related_payment_ref == payment_ref:
                return entry
        return None

    def clear(self) -> None:
        self._store.clear(self._key)

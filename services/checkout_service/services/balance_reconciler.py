"""Balance reconciler: owner of the food card balance cell.

The balance has two sources: the locally cached value (updated optimistically
after top-ups and food card payments) and the value the backend reports. The
reconciler merges them into one authoritative reading:

    authoritative = max(local, remote)   when a local value is cached
    authoritative = remote               otherwise

The remote value can lag a local mutation the backend has not indexed yet, so
the larger reading wins. A local value that was never confirmed server-side can
therefore overstate funds until it is superseded.

Remote readings whose fetch began before the latest local mutation are dropped:
the local debit must land before any later fetch is allowed to reconcile.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from libs.common.currency import to_decimal
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.db.kv_store import KeyValueStore
from services.checkout_service.models import BalanceOrigin, StoredValueBalance

logger = get_logger(__name__)

BALANCE_KEY = "food_card_balance"

_balance_adapter = TypeAdapter(StoredValueBalance)


class BalanceSource(Protocol):
    async def fetch_balance(self) -> StoredValueBalance: ...


class BalanceReconciler:
    def __init__(self, store: KeyValueStore, *, key: str = BALANCE_KEY):
        self._store = store
        self._key = key
        # Bumped on every local mutation; lets refresh() spot stale fetches
        self._generation = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self) -> Optional[StoredValueBalance]:
        """The cached balance, or None if nothing has been cached yet."""
        raw = self._store.get(self._key)
        if raw is None:
            return None
        try:
            return _balance_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cached balance under %s", self._key)
            self._store.clear(self._key)
            return None

    def available(self) -> Decimal:
        current = self.get()
        return current.amount if current else Decimal("0")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_delta(self, delta: Decimal) -> StoredValueBalance:
        """Apply a local, not-yet-confirmed change (top-up credit or order debit).

        Runs synchronously so it is visible before the caller awaits anything.
        """
        delta = to_decimal(delta)
        current = self.available()
        new_amount = current + delta
        if new_amount < 0:
            raise ValueError(
                f"Debit of {-delta} would take the food card below zero (have {current})"
            )
        updated = StoredValueBalance(
            amount=new_amount,
            source_timestamp=utc_now(),
            origin=BalanceOrigin.LOCAL,
            pending=True,
        )
        self._write(updated)
        self._generation += 1
        logger.info("Food card balance %s -> %s (local, pending)", current, new_amount)
        return updated

    def reconcile(self, remote: StoredValueBalance) -> StoredValueBalance:
        """Merge a remote reading with the cache and store the result."""
        local = self.get()
        if local is None or remote.amount >= local.amount:
            authoritative = replace(remote, pending=False)
        else:
            logger.info(
                "Keeping local balance %s over remote %s", local.amount, remote.amount
            )
            authoritative = local.settled()
        self._write(authoritative)
        return authoritative

    async def refresh(self, source: BalanceSource) -> StoredValueBalance:
        """Fetch the backend balance and reconcile it.

        If a local mutation happened while the fetch was in flight, the reading
        is stale and the cached value is returned untouched.
        """
        generation = self._generation
        remote = await source.fetch_balance()
        if generation != self._generation:
            logger.info(
                "Dropping stale remote balance %s fetched before a local change",
                remote.amount,
            )
            current = self.get()
            if current is not None:
                return current
        return self.reconcile(remote)

    def _write(self, balance: StoredValueBalance) -> None:
        self._store.set(self._key, _balance_adapter.dump_json(balance).decode())

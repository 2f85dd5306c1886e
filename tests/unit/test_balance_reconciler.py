"""Unit tests for the food card balance reconciler."""

import asyncio
from decimal import Decimal

import pytest
from libs.common.datetime_utils import utc_now
from services.checkout_service.models import BalanceOrigin, StoredValueBalance
from services.checkout_service.services.balance_reconciler import (
    BALANCE_KEY,
    BalanceReconciler,
)
from tests.fakes import FakeBackend


def _remote(amount) -> StoredValueBalance:
    return StoredValueBalance(
        amount=Decimal(amount), source_timestamp=utc_now(), origin=BalanceOrigin.REMOTE
    )


def _seed_local(reconciler: BalanceReconciler, amount) -> None:
    reconciler.apply_delta(Decimal(amount))


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_local_wins_when_larger(reconciler):
    _seed_local(reconciler, "80")

    result = reconciler.reconcile(_remote("50"))

    assert result.amount == Decimal("80")


@pytest.mark.unit
def test_remote_used_when_nothing_cached(reconciler):
    result = reconciler.reconcile(_remote("50"))

    assert result.amount == Decimal("50")
    assert result.origin == BalanceOrigin.REMOTE


@pytest.mark.unit
def test_remote_wins_when_larger(reconciler):
    _seed_local(reconciler, "30")

    result = reconciler.reconcile(_remote("120"))

    assert result.amount == Decimal("120")
    assert reconciler.get().amount == Decimal("120")


@pytest.mark.unit
def test_reconcile_clears_pending_marker(reconciler):
    _seed_local(reconciler, "80")
    assert reconciler.get().pending is True

    reconciler.reconcile(_remote("50"))

    assert reconciler.get().pending is False


@pytest.mark.unit
def test_unconfirmed_local_credit_overstates_funds(reconciler):
    """
    Accepted tradeoff: a local top-up credit the backend never confirmed keeps
    winning over the lower remote balance, overstating funds until the
    backend reports at least that much.
    """
    reconciler.reconcile(_remote("100"))
    # Optimistic top-up the gateway later reports as failed
    reconciler.apply_delta(Decimal("500"))

    result = reconciler.reconcile(_remote("100"))

    assert result.amount == Decimal("600")
    assert reconciler.available() == Decimal("600")


# ---------------------------------------------------------------------------
# apply_delta
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_apply_delta_marks_local_pending(reconciler):
    reconciler.reconcile(_remote("100"))

    updated = reconciler.apply_delta(Decimal("-40"))

    assert updated.amount == Decimal("60")
    assert updated.origin == BalanceOrigin.LOCAL
    assert updated.pending is True


@pytest.mark.unit
def test_apply_delta_refuses_negative_balance(reconciler):
    reconciler.reconcile(_remote("10"))

    with pytest.raises(ValueError):
        reconciler.apply_delta(Decimal("-10.01"))
    assert reconciler.available() == Decimal("10")


@pytest.mark.unit
def test_available_is_zero_before_first_reading(reconciler):
    assert reconciler.get() is None
    assert reconciler.available() == Decimal("0")


@pytest.mark.unit
def test_unreadable_cache_is_discarded(store):
    store.set(BALANCE_KEY, "{not json")
    reconciler = BalanceReconciler(store)

    assert reconciler.get() is None
    assert store.get(BALANCE_KEY) is None


@pytest.mark.unit
def test_balance_survives_a_new_reconciler_on_same_store(store):
    BalanceReconciler(store).reconcile(_remote("75.50"))

    assert BalanceReconciler(store).available() == Decimal("75.50")


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_reconciles_remote_reading(reconciler):
    backend = FakeBackend(balance=Decimal("90"))

    result = await reconciler.refresh(backend)

    assert result.amount == Decimal("90")
    assert backend.balance_fetches == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_started_before_local_debit_is_dropped(reconciler):
    """A fetch that was in flight when the debit landed must not overwrite it."""
    reconciler.reconcile(_remote("100"))
    backend = FakeBackend(balance=Decimal("100"))
    backend.balance_gate = asyncio.Event()

    fetch = asyncio.create_task(reconciler.refresh(backend))
    await asyncio.sleep(0)
    # Debit lands while the stale reading (100) is on the wire
    reconciler.apply_delta(Decimal("-70"))
    backend.balance_gate.set()
    result = await fetch

    assert result.amount == Decimal("30")
    assert reconciler.available() == Decimal("30")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_after_debit_reconciles_normally(reconciler):
    reconciler.reconcile(_remote("100"))
    reconciler.apply_delta(Decimal("-70"))
    backend = FakeBackend(balance=Decimal("30"))

    result = await reconciler.refresh(backend)

    assert result.amount == Decimal("30")
    assert result.pending is False

"""Cart aggregator: in-memory line set and deterministic pricing."""

from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import round2, to_decimal
from services.checkout_service.errors import LineNotFound
from services.checkout_service.models import CartLine, MenuItem, PricedOrder


class CartAggregator:
    """Holds the user's selected lines, unique by item_id.

    Persistence is the caller's concern; this class only owns the line set.
    """

    def __init__(self, tax_rate: Optional[Decimal] = None, currency: Optional[str] = None):
        settings = get_settings()
        self.tax_rate = to_decimal(tax_rate if tax_rate is not None else settings.TAX_RATE)
        self.currency = currency or settings.CURRENCY
        if self.tax_rate < 0:
            raise ValueError("Tax rate cannot be negative")
        # dicts keep insertion order, which is the display order
        self._lines: dict[str, CartLine] = {}

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def add_line(self, item: MenuItem, qty: int = 1) -> CartLine:
        """Add ``qty`` of ``item``; an existing line has its quantity increased."""
        if qty < 1:
            raise ValueError(f"Quantity must be at least 1, got {qty}")

        existing = self._lines.get(item.item_id)
        if existing:
            line = CartLine(
                item_id=existing.item_id,
                name=existing.name,
                unit_price=existing.unit_price,
                quantity=existing.quantity + qty,
                vendor_id=existing.vendor_id,
            )
        else:
            unit_price = to_decimal(item.unit_price)
            if unit_price <= 0:
                raise ValueError(f"Unit price must be positive, got {unit_price}")
            if unit_price != round2(unit_price):
                raise ValueError(f"Unit price must be whole paise, got {unit_price}")
            line = CartLine(
                item_id=item.item_id,
                name=item.name,
                unit_price=unit_price,
                quantity=qty,
                vendor_id=item.vendor_id,
            )
        self._lines[item.item_id] = line
        return line

    def remove_line(self, item_id: str) -> Optional[CartLine]:
        """Drop a line. Removing an absent item is a no-op."""
        return self._lines.pop(item_id, None)

    def set_quantity(self, item_id: str, qty: int) -> Optional[CartLine]:
        """Set a line's quantity; zero or less removes it."""
        if qty <= 0:
            self.remove_line(item_id)
            return None

        existing = self._lines.get(item_id)
        if existing is None:
            raise LineNotFound(item_id)

        line = CartLine(
            item_id=existing.item_id,
            name=existing.name,
            unit_price=existing.unit_price,
            quantity=qty,
            vendor_id=existing.vendor_id,
        )
        self._lines[item_id] = line
        return line

    def clear(self) -> None:
        self._lines.clear()

    def priced(self) -> PricedOrder:
        """Price the current lines.

        Unit prices are whole paise, so the subtotal and total are exact
        two-decimal amounts; rounding (half-up, 2dp) happens once, on the tax.
        """
        lines = self.lines
        subtotal = sum((line.line_total for line in lines), Decimal("0"))
        tax = round2(subtotal * self.tax_rate)
        return PricedOrder(
            lines=lines,
            subtotal=subtotal,
            tax_rate=self.tax_rate,
            tax=tax,
            total=subtotal + tax,
            currency=self.currency,
        )

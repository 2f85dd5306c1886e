"""Cart value types."""

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class MenuItem:
    """The slice of a catalog item the cart needs."""

    item_id: str
    name: str
    unit_price: Decimal
    vendor_id: str = ""


@dataclass(frozen=True, slots=True)
class CartLine:
    item_id: str
    name: str
    unit_price: Decimal
    quantity: int
    vendor_id: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class PricedOrder:
    lines: tuple[CartLine, ...]
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    currency: str = field(default="INR")

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

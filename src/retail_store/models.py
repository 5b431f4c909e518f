"""Domain entities handled by the :class:`~retail_store.core_logic.Store`.

Products, cashiers, desks and receipt lines are frozen dataclasses. The store
changes state by swapping in new snapshots, so an object handed out to a
caller can never be used to mutate the store behind its back. Customers
belong to the caller and only change through :meth:`Customer.pay`. Receipts
stay open for new lines until the store finalizes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Tuple

from .constants import GoodsType
from .errors import InsufficientBudgetError


def _as_money(field_name: str, value: Any) -> Decimal:
    """Coerce a money amount into a finite, non-negative :class:`Decimal`.

    Floats go through ``str`` so ``2.0`` becomes ``Decimal("2.0")``.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"{field_name} must be finite: {value!r}")
    if amount < Decimal("0"):
        raise ValueError(f"{field_name} cannot be negative: {amount}")
    return amount


@dataclass(frozen=True, eq=False)
class Product:
    """A stocked item. Two products are equal when their ids match."""

    product_id: str
    name: str
    purchase_price: Decimal
    category: GoodsType
    expiry: date
    quantity: int

    def __post_init__(self) -> None:
        if not self.product_id:
            raise ValueError("Product id cannot be empty")
        object.__setattr__(self, "purchase_price", _as_money("Purchase price", self.purchase_price))
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 0:
            raise ValueError(f"Quantity must be a non-negative integer: {self.quantity!r}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Product):
            return NotImplemented
        return self.product_id == other.product_id

    def __hash__(self) -> int:
        return hash(self.product_id)


@dataclass(frozen=True)
class Cashier:
    """A store employee who can be seated at one cash desk at a time."""

    cashier_id: str
    name: str
    monthly_salary: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "monthly_salary", _as_money("Monthly salary", self.monthly_salary))

    def __str__(self) -> str:
        return f"{self.name} ({self.cashier_id})"


@dataclass
class Customer:
    """A paying customer with a spendable balance."""

    customer_id: str
    name: str
    balance: Decimal

    def can_afford(self, amount: Decimal) -> bool:
        return self.balance >= amount

    def pay(self, amount: Decimal) -> None:
        """Deduct ``amount`` from the balance.

        Raises:
            InsufficientBudgetError: If the balance is lower than ``amount``.
                The balance is left untouched in that case.
        """
        if not self.can_afford(amount):
            raise InsufficientBudgetError(required=amount, balance=self.balance)
        self.balance -= amount

    def __str__(self) -> str:
        return f"{self.name} ({self.customer_id})"


@dataclass(frozen=True)
class CashDesk:
    """Snapshot of a cash desk. A desk is open exactly when a cashier sits at it."""

    desk_id: str
    cashier: Optional[Cashier] = None

    @property
    def is_open(self) -> bool:
        return self.cashier is not None

    @property
    def is_occupied(self) -> bool:
        return self.cashier is not None


@dataclass(frozen=True)
class ReceiptLine:
    """One sold item; ``unit_price`` is fixed at the moment of sale."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, eq=False)
class Receipt:
    """Numbered record of the items a cashier sold in one session.

    Number, cashier and timestamp are fixed at creation. Lines and the
    finalized flag change only through the owning store.
    """

    number: int
    cashier: Cashier
    created_at: datetime
    _lines: List[ReceiptLine] = field(default_factory=list, repr=False)
    _finalized: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        # copy so the caller's list is never shared with the receipt
        object.__setattr__(self, "_lines", list(self._lines))

    @classmethod
    def restore(
        cls,
        number: int,
        cashier: Cashier,
        created_at: datetime,
        lines: Iterable[ReceiptLine],
    ) -> "Receipt":
        """Rebuild a finalized receipt from persisted data."""
        return cls(number=number, cashier=cashier, created_at=created_at, _lines=list(lines), _finalized=True)

    @property
    def lines(self) -> Tuple[ReceiptLine, ...]:
        return tuple(self._lines)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def total(self) -> Decimal:
        return sum((line.total for line in self._lines), Decimal("0"))

    def _append(self, line: ReceiptLine) -> None:
        # Only the Store appends; it has already validated the line.
        self._lines.append(line)

    def _finalize(self) -> None:
        object.__setattr__(self, "_finalized", True)


__all__ = [
    "Product",
    "Cashier",
    "Customer",
    "CashDesk",
    "ReceiptLine",
    "Receipt",
]

"""Exception hierarchy for the retail store business layer.

Each business failure carries an :class:`~retail_store.constants.ErrorKind`
tag and the identifiers needed to explain it, so callers can branch either on
the exception type or on ``error.kind``.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, Optional

from .constants import ErrorKind


def _cents(amount: Decimal) -> Decimal:
    # widen precision so huge amounts still quantize instead of signalling
    if not amount.is_finite():
        return amount
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 4)
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ConfigurationError(ValueError):
    """Raised when pricing configuration values are out of range."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(f"Invalid configuration value for {field}={value!r}: {reason}")
        self.field = field
        self.value = value


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details: Dict[str, Any] = details


class DuplicateEntityError(BusinessRuleViolation):
    """Raised when an entity with the same identifier is already registered."""

    kind = ErrorKind.DUPLICATE_ENTITY

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} with id '{entity_id}' already exists", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, cashier, desk or receipt is unknown."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"Unknown {entity.lower()} id: {entity_id}", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class AssignmentConflictError(BusinessRuleViolation):
    """Raised when a desk or cashier already takes part in another assignment.

    ``cashier_*`` describe the cashier being assigned, ``desk_id`` the desk
    holding the conflicting state and ``holder_*`` the cashier currently on
    that desk.
    """

    kind = ErrorKind.STATE_CONFLICT

    def __init__(
        self,
        message: str,
        *,
        cashier_id: str,
        cashier_name: str,
        desk_id: str,
        holder_id: str,
        holder_name: str,
    ) -> None:
        super().__init__(
            message,
            cashier_id=cashier_id,
            cashier_name=cashier_name,
            desk_id=desk_id,
            holder_id=holder_id,
            holder_name=holder_name,
        )
        self.cashier_id = cashier_id
        self.cashier_name = cashier_name
        self.desk_id = desk_id
        self.holder_id = holder_id
        self.holder_name = holder_name


class ReceiptClosedError(BusinessRuleViolation):
    """Raised when lines are added to a receipt that was already finalized."""

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, receipt_number: int) -> None:
        super().__init__(f"Receipt #{receipt_number} is already finalized", receipt_number=receipt_number)
        self.receipt_number = receipt_number


class DeskNotAssignedError(BusinessRuleViolation):
    """Raised when a cashier without an open desk tries to sell."""

    kind = ErrorKind.DESK_NOT_ASSIGNED

    def __init__(self, cashier_id: str, cashier_name: str) -> None:
        super().__init__(
            f"Cashier {cashier_name} ({cashier_id}) is not assigned to an open cash desk",
            cashier_id=cashier_id,
            cashier_name=cashier_name,
        )
        self.cashier_id = cashier_id
        self.cashier_name = cashier_name


class InvalidQuantityError(BusinessRuleViolation, ValueError):
    """Raised for zero, negative or non-integer quantities."""

    kind = ErrorKind.INVALID_QUANTITY

    def __init__(self, quantity: Any) -> None:
        super().__init__(f"Quantity must be a positive integer: {quantity!r}", quantity=quantity)
        self.quantity = quantity


class ProductExpiredError(BusinessRuleViolation):
    """Raised when a sale targets a product whose expiry date has been reached."""

    kind = ErrorKind.PRODUCT_EXPIRED

    def __init__(self, product_id: str, expiry: date) -> None:
        super().__init__(
            f"Product '{product_id}' expired on {expiry.isoformat()}",
            product_id=product_id,
            expiry=expiry,
        )
        self.product_id = product_id
        self.expiry = expiry


class InsufficientStockError(BusinessRuleViolation):
    """Raised when the requested quantity exceeds the stock on hand."""

    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Need {requested - available} more of {product_id} "
            f"(requested {requested}, only {available} in stock)",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InsufficientBudgetError(BusinessRuleViolation):
    """Raised when a customer's balance does not cover the amount due."""

    kind = ErrorKind.INSUFFICIENT_BUDGET

    def __init__(self, required: Decimal, balance: Decimal) -> None:
        shortfall = required - balance
        super().__init__(
            f"Customer lacks {_cents(shortfall)} (required {_cents(required)}, balance {_cents(balance)})",
            required=required,
            balance=balance,
            shortfall=shortfall,
        )
        self.required = required
        self.balance = balance
        self.shortfall = shortfall


class ReceiptFormatError(ValueError):
    """Raised when a stored receipt record cannot be decoded."""

    def __init__(self, path: Any, reason: str) -> None:
        super().__init__(f"Unreadable receipt record '{path}': {reason}")
        self.path = path
        self.reason = reason


__all__ = [
    "ConfigurationError",
    "BusinessRuleViolation",
    "DuplicateEntityError",
    "MissingReferenceError",
    "AssignmentConflictError",
    "ReceiptClosedError",
    "DeskNotAssignedError",
    "InvalidQuantityError",
    "ProductExpiredError",
    "InsufficientStockError",
    "InsufficientBudgetError",
    "ReceiptFormatError",
]

"""Enumerations and fixed identifiers shared across the retail store modules.

Keeps the domain vocabulary in one place so the data layer, the business
layer and the CLI agree on category names, error kinds and file layouts.
"""

from __future__ import annotations

from enum import Enum


# Version expected in ``config.ini`` before the catalog workbook is used.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Version written into every receipt record; readers reject anything else.
RECEIPT_RECORD_VERSION = "1"

RECEIPT_FILE_PREFIX = "receipt-"
RECEIPT_TEXT_SUFFIX = ".txt"
RECEIPT_RECORD_SUFFIX = ".xlsx"


class GoodsType(str, Enum):
    """Product categories, each with its own markup."""

    GROCERIES = "GROCERIES"
    NON_FOODS = "NON_FOODS"


class ErrorKind(str, Enum):
    """Tag attached to every domain error so callers can branch on the kind."""

    CONFIGURATION = "CONFIGURATION"
    DUPLICATE_ENTITY = "DUPLICATE_ENTITY"
    NOT_FOUND = "NOT_FOUND"
    STATE_CONFLICT = "STATE_CONFLICT"
    DESK_NOT_ASSIGNED = "DESK_NOT_ASSIGNED"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    PRODUCT_EXPIRED = "PRODUCT_EXPIRED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"


class SheetName(str, Enum):
    """Worksheet names used by the catalog workbook and receipt records."""

    PRODUCTS = "Products"
    CASHIERS = "Cashiers"
    RECEIPT = "Receipt"
    LINES = "Lines"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "RECEIPT_RECORD_VERSION",
    "RECEIPT_FILE_PREFIX",
    "RECEIPT_TEXT_SUFFIX",
    "RECEIPT_RECORD_SUFFIX",
    "GoodsType",
    "ErrorKind",
    "SheetName",
]

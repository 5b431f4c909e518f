"""Data access layer for the retail store.

This module provides low-level helpers that read from and write to disk.
Business logic belongs in :mod:`retail_store.core_logic`.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the catalog workbook.
3. Sheet operations: loading catalog records and appending or updating
   individual rows.
4. Receipt storage: writing each finalized receipt as a human-readable text
   file plus a versioned ``.xlsx`` record, and reading the records back.
"""


from __future__ import annotations

import configparser
import re
import zipfile
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook

from . import log
from .constants import (
    RECEIPT_FILE_PREFIX,
    RECEIPT_RECORD_SUFFIX,
    RECEIPT_RECORD_VERSION,
    RECEIPT_TEXT_SUFFIX,
    SheetName,
)
from .errors import ConfigurationError, ReceiptFormatError
from .models import Cashier, Receipt, ReceiptLine


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
CASHIERS_SHEET = SheetName.CASHIERS.value
RECEIPT_SHEET = SheetName.RECEIPT.value
LINES_SHEET = SheetName.LINES.value

PRODUCT_COLUMNS = ["ProductID", "ProductName", "PurchasePrice", "Category", "ExpiryDate", "Quantity"]
CASHIER_COLUMNS = ["CashierID", "CashierName", "MonthlySalary"]
RECEIPT_FIELDS = ["RecordVersion", "ReceiptNumber", "CashierID", "CashierName", "MonthlySalary", "CreatedAt"]
LINE_COLUMNS = ["ProductID", "ProductName", "Quantity", "UnitPrice"]

DEFAULT_GROCERIES_MARKUP = "0.20"
DEFAULT_NON_FOODS_MARKUP = "0.25"
DEFAULT_NEAR_EXPIRY_DAYS = 5
DEFAULT_NEAR_EXPIRY_DISCOUNT = "0.30"
DEFAULT_DESK_COUNT = 2

_CENT = Decimal("0.01")
_RECEIPT_NAME_PATTERN = re.compile(
    r"^%s(\d+)(%s|%s)$" % (re.escape(RECEIPT_FILE_PREFIX), re.escape(RECEIPT_TEXT_SUFFIX), re.escape(RECEIPT_RECORD_SUFFIX))
)
_SEPARATOR = "-" * 40


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about.

    Pricing values are kept as read; :func:`retail_store.core_logic.build_store_config`
    validates them.
    """

    data_file: Path
    receipt_dir: Path
    store_name: str
    schema_version: str
    groceries_markup: str = DEFAULT_GROCERIES_MARKUP
    non_foods_markup: str = DEFAULT_NON_FOODS_MARKUP
    near_expiry_days: int = DEFAULT_NEAR_EXPIRY_DAYS
    near_expiry_discount: str = DEFAULT_NEAR_EXPIRY_DISCOUNT
    desk_count: int = DEFAULT_DESK_COUNT


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    product_name: str
    purchase_price: Decimal
    category: str
    expiry: date
    quantity: int


@dataclass(frozen=True)
class CashierRow:
    """In-memory view of a row from the ``Cashiers`` sheet."""

    cashier_id: str
    cashier_name: str
    monthly_salary: Decimal


@dataclass(frozen=True)
class ReceiptFiles:
    """Locations written by :func:`save_receipt`."""

    text_path: Path
    record_path: Path


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Return the ``config.ini`` the store should run from.

    An ``explicit_path`` (for example from ``--config``) wins and is passed
    through as given; :func:`read_config` reports it if it does not exist.
    Otherwise the current working directory and then each of its parents
    are checked for ``CONFIG_FILE_NAME``, so the CLI works from any folder
    inside a store directory.

    Raises:
        FileNotFoundError: If no directory up to the filesystem root holds a
            ``config.ini``.
    """

    if explicit_path is not None:
        return Path(explicit_path)

    start = Path.cwd()
    for directory in (start, *start.parents):
        if (directory / CONFIG_FILE_NAME).is_file():
            return directory / CONFIG_FILE_NAME

    raise FileNotFoundError(f"No {CONFIG_FILE_NAME} found in {start} or any parent directory")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Parse the store configuration file.

    Raises:
        FileNotFoundError: If ``config_path`` does not point to an existing
            file.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _resolve_path(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        path = base_path / path
    return path.resolve()


def _get_int(parser: configparser.ConfigParser, section: str, option: str, default: int) -> int:
    raw = parser.get(section, option, fallback=None)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{section}.{option}", raw, "expected an integer") from exc


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Build :class:`ConfigSettings` from the parsed ``config.ini``.

    ``[System]`` entries are mandatory. ``[Pricing]`` and ``[Desks]`` fall back
    to the store defaults when absent. Relative ``DataFile`` and
    ``ReceiptDir`` entries are expanded against ``base_path`` when provided,
    or against the current working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used as the anchor for relative
            paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ConfigurationError: If ``NearExpiryDays`` or ``Count`` is not an
            integer, or ``Count`` is negative.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        receipt_dir_raw = parser.get("System", "ReceiptDir")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    desk_count = _get_int(parser, "Desks", "Count", DEFAULT_DESK_COUNT)
    if desk_count < 0:
        raise ConfigurationError("Desks.Count", desk_count, "must be >= 0")

    return ConfigSettings(
        data_file=_resolve_path(data_file_raw, base_path),
        receipt_dir=_resolve_path(receipt_dir_raw, base_path),
        store_name=store_name,
        schema_version=schema_version,
        groceries_markup=parser.get("Pricing", "GroceriesMarkup", fallback=DEFAULT_GROCERIES_MARKUP),
        non_foods_markup=parser.get("Pricing", "NonFoodsMarkup", fallback=DEFAULT_NON_FOODS_MARKUP),
        near_expiry_days=_get_int(parser, "Pricing", "NearExpiryDays", DEFAULT_NEAR_EXPIRY_DAYS),
        near_expiry_discount=parser.get("Pricing", "NearExpiryDiscount", fallback=DEFAULT_NEAR_EXPIRY_DISCOUNT),
        desk_count=desk_count,
    )


# ----------------------------------------------------------------------
# Catalog workbook
# ----------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the catalog workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def _data_rows(workbook: Workbook, sheet_name: str) -> Iterator[tuple]:
    # row 1 is the header; blank rows left behind by manual edits are ignored
    for raw in workbook[sheet_name].iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Yield every product row of the catalog as a :class:`ProductRow`."""

    return (deserialize_product(raw) for raw in _data_rows(workbook, PRODUCTS_SHEET))


def iter_cashiers(workbook: Workbook) -> Iterable[CashierRow]:
    """Yield every cashier row of the catalog as a :class:`CashierRow`."""

    return (deserialize_cashier(raw) for raw in _data_rows(workbook, CASHIERS_SHEET))


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Add ``record`` as a new row at the bottom of the ``Products`` sheet.

    The caller is responsible for checking that the id is not already
    present; see :func:`locate_row`.
    """

    sheet = workbook[PRODUCTS_SHEET]
    sheet.append(serialize_product(record))


def append_cashier(workbook: Workbook, record: CashierRow) -> None:
    """Add ``record`` as a new row at the bottom of the ``Cashiers`` sheet."""

    sheet = workbook[CASHIERS_SHEET]
    sheet.append(serialize_cashier(record))


def update_product(workbook: Workbook, product_id: str, *, field_values: Dict[str, Any]) -> None:
    """Overwrite the named columns of one catalog product row.

    ``field_values`` maps header names such as ``"Quantity"`` to the new cell
    values; columns not named keep their content.

    Raises:
        KeyError: If no row carries ``product_id`` or a header is unknown.
    """

    row_index = locate_row(workbook, PRODUCTS_SHEET, "ProductID", product_id)
    if row_index is None:
        raise KeyError(f"Product not found: {product_id}")

    sheet = workbook[PRODUCTS_SHEET]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}

    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown product field: {field}")
        sheet.cell(row=row_index, column=header_map[field], value=value)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def serialize_product(record: ProductRow) -> List[object]:
    """Arrange a product as ``[ProductID, ProductName, PurchasePrice, Category, ExpiryDate, Quantity]``."""

    return [
        record.product_id,
        record.product_name,
        record.purchase_price,
        record.category,
        record.expiry,
        record.quantity,
    ]


def serialize_cashier(record: CashierRow) -> List[object]:
    """Arrange a cashier as ``[CashierID, CashierName, MonthlySalary]``."""

    return [record.cashier_id, record.cashier_name, record.monthly_salary]


def _to_date(raw: object) -> date:
    # openpyxl hands back datetimes for date-formatted cells
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw).strip())


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Numeric values become :class:`~decimal.Decimal` through ``str`` and
    identifiers are coerced to ``str`` so Excel's number guessing does not
    leak into the domain.
    """

    product_id, product_name, price_raw, category, expiry_raw, quantity_raw = raw_row[:6]

    purchase_price = Decimal(str(price_raw)) if price_raw is not None else Decimal("0.00")
    return ProductRow(
        product_id=str(product_id),
        product_name=str(product_name),
        purchase_price=purchase_price,
        category=str(category).strip().upper(),
        expiry=_to_date(expiry_raw),
        quantity=int(quantity_raw) if quantity_raw is not None else 0,
    )


def deserialize_cashier(raw_row: Sequence[object]) -> CashierRow:
    """Convert a raw ``Cashiers`` row into a :class:`CashierRow`.

    An empty salary cell reads as zero; numeric cells go through ``str`` so
    the salary stays an exact :class:`~decimal.Decimal`.
    """

    cashier_id, cashier_name, salary_raw = raw_row[:3]
    salary = Decimal(str(salary_raw)) if salary_raw is not None else Decimal("0.00")
    return CashierRow(cashier_id=str(cashier_id), cashier_name=str(cashier_name), monthly_salary=salary)


# ----------------------------------------------------------------------
# Receipts
# ----------------------------------------------------------------------


def format_money(amount: Decimal) -> str:
    """Render ``amount`` with two decimal places, rounding halves up."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 4)
        return str(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def render_receipt(receipt: Receipt) -> str:
    """Render a receipt as the plain-text slip saved next to its record."""

    lines = [
        f"RECEIPT #{receipt.number}",
        f"Date: {receipt.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Cashier: {receipt.cashier.name} (ID: {receipt.cashier.cashier_id})",
        _SEPARATOR,
        "ITEMS:",
    ]
    for line in receipt.lines:
        lines.append(
            f"{line.product_name:<20} {line.quantity:>3} x {format_money(line.unit_price):>7} "
            f"= {format_money(line.total):>8}"
        )
    lines.append(_SEPARATOR)
    lines.append(f"TOTAL: {format_money(receipt.total()):>33}")
    return "\n".join(lines) + "\n"


def receipt_paths(directory: Path, number: int) -> ReceiptFiles:
    directory = Path(directory)
    stem = f"{RECEIPT_FILE_PREFIX}{number}"
    return ReceiptFiles(
        text_path=directory / f"{stem}{RECEIPT_TEXT_SUFFIX}",
        record_path=directory / f"{stem}{RECEIPT_RECORD_SUFFIX}",
    )


def _build_receipt_workbook(receipt: Receipt) -> Workbook:
    workbook = Workbook()
    header_font = Font(bold=True)

    summary = workbook.active
    summary.title = RECEIPT_SHEET
    summary.append(["Field", "Value"])
    for values in (
        ("RecordVersion", RECEIPT_RECORD_VERSION),
        ("ReceiptNumber", receipt.number),
        ("CashierID", receipt.cashier.cashier_id),
        ("CashierName", receipt.cashier.name),
        ("MonthlySalary", str(receipt.cashier.monthly_salary)),
        ("CreatedAt", receipt.created_at.isoformat()),
    ):
        summary.append(list(values))

    lines = workbook.create_sheet(LINES_SHEET)
    lines.append(LINE_COLUMNS)
    for line in receipt.lines:
        # money as text so the value round-trips without float conversion
        lines.append([line.product_id, line.product_name, line.quantity, str(line.unit_price)])

    for sheet in (summary, lines):
        for cell in sheet[1]:
            cell.font = header_font
    return workbook


def save_receipt(receipt: Receipt, directory: Path) -> ReceiptFiles:
    """Write ``receipt`` as ``receipt-<n>.txt`` and ``receipt-<n>.xlsx``.

    The directory is created when missing. I/O errors propagate unchanged.

    Args:
        receipt (Receipt): Receipt to store, normally already finalized.
        directory (Path): Target directory.

    Returns:
        ReceiptFiles: Paths of the text slip and the structured record.
    """

    directory = Path(directory).expanduser().resolve()
    directory.mkdir(parents=True, exist_ok=True)
    paths = receipt_paths(directory, receipt.number)

    paths.text_path.write_text(render_receipt(receipt), encoding="utf-8")
    _build_receipt_workbook(receipt).save(paths.record_path)
    log.info("Saved receipt #%s to '%s'", receipt.number, directory)
    return paths


def _parse_decimal(path: Path, field: str, raw: object) -> Decimal:
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ReceiptFormatError(path, f"{field} is not a number: {raw!r}") from exc


def read_receipt_record(path: Path) -> Receipt:
    """Decode one ``.xlsx`` receipt record.

    Raises:
        ReceiptFormatError: If the file is not a receipt record, its record
            version is unknown or a field cannot be decoded.
        FileNotFoundError: If ``path`` does not exist.
    """

    path = Path(path)
    try:
        workbook = openpyxl.load_workbook(path, read_only=True)
    except (InvalidFileException, zipfile.BadZipFile) as exc:
        raise ReceiptFormatError(path, f"not a workbook ({exc})") from exc

    try:
        if RECEIPT_SHEET not in workbook.sheetnames or LINES_SHEET not in workbook.sheetnames:
            raise ReceiptFormatError(path, "missing receipt sheets")

        fields = {
            str(row[0]): row[1]
            for row in workbook[RECEIPT_SHEET].iter_rows(min_row=2, values_only=True)
            if row and row[0] is not None
        }
        missing = [name for name in RECEIPT_FIELDS if name not in fields]
        if missing:
            raise ReceiptFormatError(path, f"missing fields {', '.join(missing)}")

        version = str(fields["RecordVersion"])
        if version != RECEIPT_RECORD_VERSION:
            raise ReceiptFormatError(path, f"unsupported record version {version!r}")

        cashier = Cashier(
            cashier_id=str(fields["CashierID"]),
            name=str(fields["CashierName"]),
            monthly_salary=_parse_decimal(path, "MonthlySalary", fields["MonthlySalary"]),
        )
        try:
            number = int(fields["ReceiptNumber"])
            created_at = datetime.fromisoformat(str(fields["CreatedAt"]))
            lines = [
                ReceiptLine(
                    product_id=str(product_id),
                    product_name=str(product_name),
                    quantity=int(quantity),
                    unit_price=_parse_decimal(path, "UnitPrice", unit_price),
                )
                for product_id, product_name, quantity, unit_price in (
                    row[:4]
                    for row in workbook[LINES_SHEET].iter_rows(min_row=2, values_only=True)
                    if any(cell is not None for cell in row)
                )
            ]
        except ReceiptFormatError:
            raise
        except (TypeError, ValueError) as exc:
            raise ReceiptFormatError(path, str(exc)) from exc
    finally:
        workbook.close()

    return Receipt.restore(number=number, cashier=cashier, created_at=created_at, lines=lines)


def load_receipt(directory: Path, number: int) -> Optional[Receipt]:
    """Return receipt ``number`` from ``directory``, or ``None`` if it was never saved."""

    record_path = receipt_paths(Path(directory).expanduser(), number).record_path
    if not record_path.exists():
        return None
    return read_receipt_record(record_path)


def _receipt_number(path: Path) -> Optional[int]:
    match = _RECEIPT_NAME_PATTERN.match(path.name)
    return int(match.group(1)) if match else None


def load_all_receipts(directory: Path) -> List[Receipt]:
    """Load every readable receipt record in ``directory``, sorted by number.

    A missing directory yields an empty list. Records that cannot be decoded
    are logged and skipped.
    """

    directory = Path(directory).expanduser()
    if not directory.is_dir():
        return []

    receipts: List[Receipt] = []
    for path in directory.glob(f"{RECEIPT_FILE_PREFIX}*{RECEIPT_RECORD_SUFFIX}"):
        if _receipt_number(path) is None:
            continue
        try:
            receipts.append(read_receipt_record(path))
        except ReceiptFormatError as exc:
            log.warning("Skipping receipt record: %s", exc)
    receipts.sort(key=lambda receipt: receipt.number)
    return receipts


def latest_receipt_number(directory: Path) -> int:
    """Highest receipt number found in ``directory`` (``0`` when there is none)."""

    directory = Path(directory).expanduser()
    if not directory.is_dir():
        return 0
    numbers = [number for number in map(_receipt_number, directory.iterdir()) if number is not None]
    return max(numbers, default=0)


__all__ = [
    "CONFIG_FILE_NAME",
    "PRODUCTS_SHEET",
    "CASHIERS_SHEET",
    "RECEIPT_SHEET",
    "LINES_SHEET",
    "PRODUCT_COLUMNS",
    "CASHIER_COLUMNS",
    "LINE_COLUMNS",
    "ConfigSettings",
    "ProductRow",
    "CashierRow",
    "ReceiptFiles",
    "find_config_file",
    "read_config",
    "parse_settings",
    "open_workbook",
    "save_workbook",
    "iter_products",
    "iter_cashiers",
    "append_product",
    "append_cashier",
    "update_product",
    "locate_row",
    "serialize_product",
    "serialize_cashier",
    "deserialize_product",
    "deserialize_cashier",
    "format_money",
    "render_receipt",
    "receipt_paths",
    "save_receipt",
    "read_receipt_record",
    "load_receipt",
    "load_all_receipts",
    "latest_receipt_number",
]

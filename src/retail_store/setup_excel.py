"""Utility for initializing the retail store catalog workbook.

The module doubles as a script (``store-setup``) and as a library used by
tests. The catalog holds the ``Products`` and ``Cashiers`` sheets that seed
the store on every CLI run; ``--sample-data`` fills them with a small demo
assortment whose expiry dates are relative to the day of setup.
"""

from __future__ import annotations

import argparse
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple
import sys

import openpyxl
from openpyxl.styles import Font

from . import log
from .constants import GoodsType, SheetName
from .errors import ConfigurationError
from .data_manager import (
    CASHIER_COLUMNS,
    CONFIG_FILE_NAME,
    PRODUCT_COLUMNS,
    ConfigSettings,
    parse_settings,
    read_config,
)


SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.PRODUCTS.value: PRODUCT_COLUMNS,
    SheetName.CASHIERS.value: CASHIER_COLUMNS,
}

# (id, name, purchase price, category, days until expiry, quantity)
SAMPLE_PRODUCTS: Sequence[Tuple[str, str, str, GoodsType, int, int]] = (
    ("F1", "Milk", "1.50", GoodsType.GROCERIES, 10, 50),
    ("F2", "Bread", "1.00", GoodsType.GROCERIES, 3, 40),
    ("F3", "Eggs", "2.50", GoodsType.GROCERIES, 15, 30),
    ("F4", "Cheese", "3.50", GoodsType.GROCERIES, 20, 25),
    ("F5", "Yogurt", "1.20", GoodsType.GROCERIES, 4, 35),
    ("F6", "Tomatoes", "2.00", GoodsType.GROCERIES, 2, 15),
    ("N1", "Soap", "1.80", GoodsType.NON_FOODS, 365, 40),
    ("N2", "Toothpaste", "2.20", GoodsType.NON_FOODS, 730, 30),
    ("N3", "Shampoo", "4.00", GoodsType.NON_FOODS, 365, 20),
)

SAMPLE_CASHIERS: Sequence[Tuple[str, str, str]] = (
    ("C1", "John Smith", "1200"),
    ("C2", "Mary Johnson", "1150"),
    ("C3", "Peter Brown", "1100"),
)


def load_settings(config_path: Path) -> ConfigSettings:
    """Read ``config.ini`` the same way the CLI does.

    Relative paths inside the config file are resolved against the config
    file's directory.
    """

    config_path = Path(config_path).expanduser().resolve()
    return parse_settings(read_config(config_path), base_path=config_path.parent)


def create_catalog_workbook(
    destination: Path,
    *,
    with_sample_data: bool = False,
    today: Optional[date] = None,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the catalog workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists. Sample product expiry
    dates are computed from ``today`` (the current date when omitted).
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing catalog workbook: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if with_sample_data:
        today = today or date.today()
        products_sheet = workbook[SheetName.PRODUCTS.value]
        for product_id, name, price, category, days, quantity in SAMPLE_PRODUCTS:
            products_sheet.append(
                [product_id, name, Decimal(price), category.value, today + timedelta(days=days), quantity]
            )
        cashiers_sheet = workbook[SheetName.CASHIERS.value]
        for cashier_id, name, salary in SAMPLE_CASHIERS:
            cashiers_sheet.append([cashier_id, name, Decimal(salary)])

    workbook.save(destination)
    log.info("Created catalog workbook at '%s' (sample data: %s)", destination, with_sample_data)
    return destination


def run_from_config(config_path: Path, *, with_sample_data: bool = False, overwrite: bool = False) -> Path:
    settings = load_settings(config_path)
    return create_catalog_workbook(
        settings.data_file,
        with_sample_data=with_sample_data,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(prog="store-setup", description="Initialize the retail store catalog workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Fill the catalog with demo products and cashiers.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Retail Store Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, with_sample_data=args.sample_data, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except (KeyError, ConfigurationError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created catalog workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())

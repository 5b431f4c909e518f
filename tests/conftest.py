"""Shared pytest fixtures and utilities for retail store tests."""

from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from retail_store import cli, constants, core_logic, data_manager  # noqa: E402
from retail_store.constants import GoodsType  # noqa: E402
from retail_store.models import Cashier, Customer, Product  # noqa: E402
from retail_store.setup_excel import create_catalog_workbook  # noqa: E402

FIXED_NOW = datetime(2024, 5, 10, 9, 30, 0)
TODAY = FIXED_NOW.date()
DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "ReceiptDir = {receipt_dir}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Pricing]\n"
    "GroceriesMarkup = 0.20\n"
    "NonFoodsMarkup = 0.25\n"
    "NearExpiryDays = {near_expiry_days}\n"
    "NearExpiryDiscount = 0.30\n\n"
    "[Desks]\n"
    "Count = {desk_count}\n"
)


class FixedClock:
    """Callable clock whose moment tests can move forward."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, *, days: int) -> None:
        self.moment += timedelta(days=days)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    receipt_dir: Path
    schema_version: str
    store_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at ``FIXED_NOW``."""

    return FixedClock(FIXED_NOW)


@pytest.fixture
def store_config() -> core_logic.StoreConfig:
    return core_logic.StoreConfig()


@pytest.fixture
def store(store_config: core_logic.StoreConfig, clock: FixedClock) -> core_logic.Store:
    """Empty store driven by the fixed clock."""

    return core_logic.Store(store_config, clock=clock)


@pytest.fixture
def make_product() -> Callable[..., Product]:
    """Factory building products whose expiry is relative to ``TODAY``."""

    def _make(
        product_id: str = "F1",
        *,
        name: str = "Milk",
        price: str = "2.00",
        category: GoodsType = GoodsType.GROCERIES,
        days_until_expiry: int = 30,
        quantity: int = 10,
    ) -> Product:
        return Product(
            product_id=product_id,
            name=name,
            purchase_price=Decimal(price),
            category=category,
            expiry=TODAY + timedelta(days=days_until_expiry),
            quantity=quantity,
        )

    return _make


@pytest.fixture
def cashier() -> Cashier:
    return Cashier(cashier_id="C1", name="John Smith", monthly_salary=Decimal("1200"))


@pytest.fixture
def make_customer() -> Callable[..., Customer]:
    def _make(balance: str = "100.00", *, customer_id: str = "CU1", name: str = "Alice") -> Customer:
        return Customer(customer_id=customer_id, name=name, balance=Decimal(balance))

    return _make


@pytest.fixture
def staffed_store(store: core_logic.Store, cashier: Cashier) -> core_logic.Store:
    """Store with cashier ``C1`` seated at desk ``D1`` and a free desk ``D2``."""

    store.add_cashier(cashier)
    store.add_cash_desk()
    store.add_cash_desk()
    store.assign_cashier_to_desk(cashier.cashier_id, "D1")
    return store


# ---------------------------------------------------------------------------
# Filesystem fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates a catalog workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        with_sample_data: bool = True,
        filename: str = "catalog.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_catalog_workbook(workbook_path, with_sample_data=with_sample_data, today=TODAY, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Store",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        near_expiry_days: int = 5,
        desk_count: int = 2,
        with_sample_data: bool = True,
    ) -> ConfigBundle:
        bundle_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_name
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=bundle_name, with_sample_data=with_sample_data)
        receipt_dir = bundle_dir / "receipts"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=workbook_path.name if make_relative else str(workbook_path),
                receipt_dir="receipts" if make_relative else str(receipt_dir),
                store_name=store_name,
                schema_version=schema_version,
                near_expiry_days=near_expiry_days,
                desk_count=desk_count,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            receipt_dir=receipt_dir,
            schema_version=schema_version,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_bundle(config_factory: Callable[..., ConfigBundle]) -> ConfigBundle:
    return config_factory()


@pytest.fixture
def runtime_context(config_bundle: ConfigBundle, clock: FixedClock) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_bundle.config_path, clock=clock)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def patched_cli_context(
    monkeypatch: pytest.MonkeyPatch,
    runtime_context: core_logic.RuntimeContext,
) -> core_logic.RuntimeContext:
    """Make ``cli.main`` reuse the fixed-clock runtime context."""

    monkeypatch.setattr(cli, "load_runtime_context", lambda config_path=None: runtime_context)
    return runtime_context


@pytest.fixture
def today() -> date:
    return TODAY

"""Integration tests describing the end-to-end retail store workflows.

These scenarios run the configuration, catalog workbook, business logic and
CLI layers together against files in a temporary directory.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from retail_store import cli, core_logic, data_manager, setup_excel
from retail_store.models import Customer


def _catalog_quantities(workbook_path: Path) -> dict:
    workbook = data_manager.open_workbook(workbook_path)
    return {row.product_id: row.quantity for row in data_manager.iter_products(workbook)}


def test_runtime_context_seeds_store_from_catalog(runtime_context):
    """Loading a context turns the catalog rows into a ready store."""

    store = runtime_context.store

    assert [product.product_id for product in store.list_products()] == [
        "F1", "F2", "F3", "F4", "F5", "F6", "N1", "N2", "N3",
    ]
    assert [cashier.cashier_id for cashier in store.list_cashiers()] == ["C1", "C2", "C3"]
    assert [desk.desk_id for desk in store.list_cash_desks()] == ["D1", "D2"]
    assert all(not desk.is_open for desk in store.list_cash_desks())
    assert store.find("F1").purchase_price == Decimal("1.5")
    assert store.total_cost_of_all_goods_supplied() == Decimal("567.50")
    assert store.salary_expenses() == Decimal("3450")


def test_sale_lifecycle_flow(config_factory, clock):
    """Sell a near-expiry item, persist everything and reopen the catalog."""

    bundle = config_factory(near_expiry_days=3)
    context = core_logic.load_runtime_context(bundle.config_path, clock=clock)
    store = context.store

    store.assign_cashier_to_desk("C1", "D1")
    customer = Customer("CU1", "Alice", Decimal("10.00"))
    receipt = store.sell(store.find_cashier("C1"), "F6", 1, customer)

    assert receipt.number == 1
    assert receipt.lines[0].unit_price == Decimal("1.68")
    assert customer.balance == Decimal("8.32")
    assert store.turnover() == Decimal("1.68")
    assert store.cost_of_sold_goods() == Decimal("2.0")
    assert store.gross_profit() == Decimal("-0.32")

    files = core_logic.save_receipt(context, receipt)
    core_logic.persist_context(context)

    assert files.text_path.read_text().startswith("RECEIPT #1\n")
    assert _catalog_quantities(bundle.workbook_path)["F6"] == 14

    reloaded = core_logic.load_runtime_context(bundle.config_path, clock=clock)
    assert reloaded.store.find("F6").quantity == 14
    assert reloaded.store.turnover() == Decimal("0")

    saved = data_manager.load_receipt(bundle.receipt_dir, 1)
    assert saved.total() == Decimal("1.68")
    assert saved.cashier.name == "John Smith"


def test_receipt_numbering_continues_across_runs(config_bundle, clock):
    first = core_logic.load_runtime_context(config_bundle.config_path, clock=clock)
    first.store.assign_cashier_to_desk("C2", "D2")
    for _ in range(2):
        receipt = first.store.sell(first.store.find_cashier("C2"), "N1", 1, Customer("X", "X", Decimal("50")))
        core_logic.save_receipt(first, receipt)

    second = core_logic.load_runtime_context(config_bundle.config_path, clock=clock)
    second.store.assign_cashier_to_desk("C2", "D2")
    receipt = second.store.sell(second.store.find_cashier("C2"), "N1", 1, Customer("X", "X", Decimal("50")))

    assert receipt.number == 3
    assert second.store.receipt_count() == 1
    assert data_manager.latest_receipt_number(config_bundle.receipt_dir) == 2


def test_relative_paths_resolve_against_config_directory(config_factory, clock):
    bundle = config_factory(make_relative=True)

    context = core_logic.load_runtime_context(bundle.config_path, clock=clock)

    assert context.settings.data_file == bundle.workbook_path.resolve()
    assert context.settings.receipt_dir == bundle.receipt_dir.resolve()


def test_schema_mismatch_is_rejected(config_factory, clock):
    bundle = config_factory(schema_version="0.9.0")
    context = core_logic.load_runtime_context(bundle.config_path, clock=clock)

    with pytest.raises(RuntimeError, match="schema"):
        core_logic.ensure_schema_version(context)


# ---------------------------------------------------------------------------
# CLI end to end
# ---------------------------------------------------------------------------


def test_cli_restock_persists_catalog(config_bundle):
    exit_code = cli.main(["--config", str(config_bundle.config_path), "restock", "--product-id", "F1", "--quantity", "5"])

    assert exit_code == 0
    assert _catalog_quantities(config_bundle.workbook_path)["F1"] == 55


def test_cli_add_product_and_cashier_append_rows(config_bundle, clock):
    config = str(config_bundle.config_path)
    assert cli.main(
        [
            "--config", config, "add-product",
            "--product-id", "N4", "--name", "Sponges", "--purchase-price", "0.60",
            "--category", "NON_FOODS", "--expiry", "2099-12-31", "--quantity", "100",
        ]
    ) == 0
    assert cli.main(["--config", config, "add-cashier", "--cashier-id", "C4", "--name", "Nina Gray", "--salary", "980"]) == 0

    store = core_logic.load_runtime_context(config_bundle.config_path, clock=clock).store
    assert store.find("N4").quantity == 100
    assert store.find("N4").purchase_price == Decimal("0.6")
    assert store.find_cashier("C4").monthly_salary == Decimal("980")


def test_cli_business_error_leaves_catalog_untouched(config_bundle):
    before = config_bundle.workbook_path.read_bytes()

    exit_code = cli.main(["--config", str(config_bundle.config_path), "restock", "--product-id", "F1", "--quantity", "0"])

    assert exit_code == 2
    assert config_bundle.workbook_path.read_bytes() == before


def test_cli_reports_configuration_problems(config_factory):
    bundle = config_factory()
    text = bundle.config_path.read_text().replace("GroceriesMarkup = 0.20", "GroceriesMarkup = -1")
    bundle.config_path.write_text(text)

    assert cli.main(["--config", str(bundle.config_path), "products"]) == 4


def test_cli_reports_schema_mismatch(config_factory):
    bundle = config_factory(schema_version="2.0.0")

    assert cli.main(["--config", str(bundle.config_path), "desks"]) == 1


def test_cli_sell_then_list_receipts(patched_cli_context, config_bundle, capsys):
    assert cli.main(["sell", "--cashier-id", "C3", "--desk-id", "D2", "--product-id", "N2", "--quantity", "2", "--balance", "20"]) == 0
    assert _catalog_quantities(config_bundle.workbook_path)["N2"] == 28
    capsys.readouterr()

    assert cli.main(["receipts", "--number", "1"]) == 0
    output = capsys.readouterr().out
    assert "Toothpaste" in output
    assert "Cashier: Peter Brown (ID: C3)" in output
    assert "5.50" in output


# ---------------------------------------------------------------------------
# Setup script
# ---------------------------------------------------------------------------


def test_setup_script_creates_catalog_from_config(config_factory, capsys):
    bundle = config_factory()
    bundle.workbook_path.unlink()

    assert setup_excel.main(["--config", str(bundle.config_path), "--sample-data"]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out
    assert len(_catalog_quantities(bundle.workbook_path)) == len(setup_excel.SAMPLE_PRODUCTS)


def test_setup_script_refuses_to_overwrite_without_force(config_bundle, capsys):
    config = str(config_bundle.config_path)

    assert setup_excel.main(["--config", config]) == 1
    assert "--force" in capsys.readouterr().out

    assert setup_excel.main(["--config", config, "--force"]) == 0
    assert _catalog_quantities(config_bundle.workbook_path) == {}


def test_setup_script_reports_missing_config(tmp_path, capsys):
    assert setup_excel.main(["--config", str(tmp_path / "missing.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out


def test_create_catalog_workbook_raises_without_overwrite(workbook_factory):
    path = workbook_factory()

    with pytest.raises(FileExistsError):
        setup_excel.create_catalog_workbook(path)

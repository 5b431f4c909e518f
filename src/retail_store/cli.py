"""Command-line entry points for the retail store.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into domain objects for the business layer and
printing results. The ``menu`` command runs the interactive counter session;
its input and output callables are injectable so it can be driven from
tests.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, log
from .constants import GoodsType
from .models import CashDesk, Cashier, Customer, Product, Receipt


InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def decimal_argument(raw: str) -> Decimal:
    """argparse ``type`` for money values."""
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {raw!r}") from exc
    if not value.is_finite():
        raise argparse.ArgumentTypeError(f"invalid amount: {raw!r}")
    return value


def date_argument(raw: str) -> date:
    """argparse ``type`` for ISO dates (``YYYY-MM-DD``)."""
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {raw!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="store-cli",
        description="Command-line tools for the retail store.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upwards from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that change the store."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "add-cashier": register_add_cashier_command(subparsers),
        "restock": register_restock_command(subparsers),
        "sell": register_sell_command(subparsers),
        "menu": register_menu_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as listings and reports."""
    specs = {
        "products": register_products_command(subparsers),
        "cashiers": register_cashiers_command(subparsers),
        "desks": register_desks_command(subparsers),
        "financials": register_financials_command(subparsers),
        "receipts": register_receipts_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product and its initial stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--purchase-price", required=True, type=decimal_argument)
        parser.add_argument(
            "--category",
            choices=[member.value for member in GoodsType],
            required=True,
        )
        parser.add_argument("--expiry", required=True, type=date_argument, help="Expiry date (YYYY-MM-DD).")
        parser.add_argument("--quantity", required=True, type=int)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_add_cashier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-cashier``."""
    name = "add-cashier"
    help_text = "Register a new cashier."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--cashier-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--salary", required=True, type=decimal_argument, help="Monthly salary.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_cashier)


def register_restock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``restock``."""
    name = "restock"
    help_text = "Add stock to an existing product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True, type=int)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_restock)


def register_sell_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sell``."""
    name = "sell"
    help_text = "Seat a cashier at a desk, sell one product line and save the receipt."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--cashier-id", required=True)
        parser.add_argument("--desk-id", default="D1")
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True, type=int)
        parser.add_argument("--customer", default="Walk-in customer", help="Customer name printed in the log.")
        parser.add_argument("--balance", required=True, type=decimal_argument, help="Money the customer has.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sell)


def register_menu_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``menu``."""
    name = "menu"
    help_text = "Start the interactive counter menu."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_menu_command)


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    name = "products"
    help_text = "List products with today's sale price."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_products_report)


def register_cashiers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cashiers``."""
    name = "cashiers"
    help_text = "List cashiers and their salaries."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cashiers_report)


def register_desks_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``desks``."""
    name = "desks"
    help_text = "List cash desks."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_desks_report)


def register_financials_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``financials``."""
    name = "financials"
    help_text = "Display turnover, costs and profit."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_financials_report)


def register_receipts_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receipts``."""
    name = "receipts"
    help_text = "List saved receipts, or show one with --number."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--number", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_receipts_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations and check its schema."""
    context = core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ----------------------------------------------------------------------
# Translation and formatting
# ----------------------------------------------------------------------


def translate_add_product(args: argparse.Namespace) -> Product:
    """Translate CLI args into a product."""
    return Product(
        product_id=args.product_id,
        name=args.name,
        purchase_price=args.purchase_price,
        category=GoodsType(args.category),
        expiry=args.expiry,
        quantity=args.quantity,
    )


def translate_add_cashier(args: argparse.Namespace) -> Cashier:
    """Translate CLI args into a cashier."""
    return Cashier(cashier_id=args.cashier_id, name=args.name, monthly_salary=args.salary)


def translate_customer(args: argparse.Namespace) -> Customer:
    """Build the paying customer of a one-shot ``sell`` from CLI args."""
    return Customer(customer_id=args.customer, name=args.customer, balance=args.balance)


def format_product(product: Product, store: core_logic.Store) -> str:
    """One listing line with today's sale price and an expiry marker."""
    today = store.today()
    price = core_logic.sale_price(product, store.config, today)
    status = ""
    if core_logic.is_expired(product, today):
        status = " [expired]"
    elif core_logic.is_near_expiry(product, store.config, today):
        status = " [near expiry]"
    return (
        f"{product.product_id:<6} {product.name:<20} {product.category.value:<10} "
        f"cost {data_manager.format_money(product.purchase_price):>8} "
        f"price {data_manager.format_money(price):>8} "
        f"qty {product.quantity:>5}  expires {product.expiry.isoformat()}{status}"
    )


def format_desk(desk: CashDesk) -> str:
    """One listing line showing whether the desk is free or who holds it."""
    if desk.cashier is None:
        return f"{desk.desk_id:<4} free"
    return f"{desk.desk_id:<4} open  {desk.cashier}"


def format_financials(store: core_logic.Store) -> List[str]:
    """Report lines for the financial summary, followed by sold quantities."""
    summary = core_logic.calculate_financial_summary(store)
    money = data_manager.format_money
    lines = [
        f"Turnover:                  {money(summary['turnover']):>12}",
        f"Cost of sold goods:        {money(summary['cost_of_sold_goods']):>12}",
        f"Gross profit:              {money(summary['gross_profit']):>12}",
        f"Salary expenses:           {money(summary['salary_expenses']):>12}",
        f"Operating profit:          {money(summary['profit']):>12}",
        f"Total cost of goods supplied: {money(summary['total_cost_of_all_goods_supplied']):>9}",
    ]
    sold = store.sold_items()
    if sold:
        lines.append("Sold items:")
        for product_id, quantity in sold.items():
            product = store.find(product_id)
            name = product.name if product is not None else product_id
            lines.append(f"  {product_id:<6} {name:<20} {quantity:>5}")
    return lines


# ----------------------------------------------------------------------
# Executors
# ----------------------------------------------------------------------


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Register a product in the store."""
    product = context.store.add_product(translate_add_product(args))
    print(f"Added product {product.product_id} ({product.name}), quantity {product.quantity}.")
    return 0


def run_add_cashier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Register a cashier in the store."""
    cashier = context.store.add_cashier(translate_add_cashier(args))
    print(f"Added cashier {cashier}.")
    return 0


def run_restock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Add stock to an existing product."""
    product = context.store.restock(args.product_id, args.quantity)
    print(f"Restocked {product.product_id}: {product.quantity} in stock.")
    return 0


def run_sell(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a one-line sale and save its receipt.

    The cashier is seated at ``--desk-id`` first, so the command works on a
    freshly loaded store where every desk starts out free.
    """
    store = context.store
    store.assign_cashier_to_desk(args.cashier_id, args.desk_id)
    cashier = store.find_cashier(args.cashier_id)
    customer = translate_customer(args)
    receipt = store.sell(cashier, args.product_id, args.quantity, customer)
    files = core_logic.save_receipt(context, receipt)
    print(data_manager.render_receipt(receipt), end="")
    print(f"Customer balance left: {data_manager.format_money(customer.balance)}")
    print(f"Saved receipt to {files.text_path}")
    return 0


def run_menu_command(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Start the interactive menu on the console."""
    return run_menu(context)


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every product with its current sale price."""
    for product in context.store.list_products():
        print(format_product(product, context.store))
    return 0


def run_cashiers_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every cashier with the monthly salary."""
    for cashier in context.store.list_cashiers():
        print(f"{cashier.cashier_id:<6} {cashier.name:<20} {data_manager.format_money(cashier.monthly_salary):>10}")
    return 0


def run_desks_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the occupancy of each cash desk."""
    for desk in context.store.list_cash_desks():
        print(format_desk(desk))
    return 0


def run_financials_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the financial summary of the current session."""
    for line in format_financials(context.store):
        print(line)
    return 0


def run_receipts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print one saved receipt, or a one-line summary of every saved receipt."""
    receipt_dir = context.settings.receipt_dir
    if args.number is not None:
        receipt = data_manager.load_receipt(receipt_dir, args.number)
        if receipt is None:
            print(f"Receipt #{args.number} not found in {receipt_dir}")
            return 1
        print(data_manager.render_receipt(receipt), end="")
        return 0

    receipts = data_manager.load_all_receipts(receipt_dir)
    if not receipts:
        print("No saved receipts.")
    for receipt in receipts:
        print(
            f"#{receipt.number:<5} {receipt.created_at.strftime('%Y-%m-%d %H:%M:%S')}  "
            f"{receipt.cashier.name:<20} {data_manager.format_money(receipt.total()):>10}"
        )
    return 0


# ----------------------------------------------------------------------
# Interactive menu
# ----------------------------------------------------------------------


MENU_OPTIONS = (
    ("1", "List products"),
    ("2", "List cashiers"),
    ("3", "List cash desks"),
    ("4", "Assign cashier to desk"),
    ("5", "Release cash desk"),
    ("6", "Make a sale"),
    ("7", "Financial status"),
    ("8", "Saved receipts"),
    ("9", "Receipt count"),
    ("0", "Exit"),
)


class MenuSession:
    """Interactive counter session over a loaded runtime context."""

    def __init__(self, context: core_logic.RuntimeContext, *, input_fn: InputFn = input, output_fn: OutputFn = print):
        self.context = context
        self.store = context.store
        self.ask = input_fn
        self.say = output_fn
        self._handlers: Dict[str, Callable[[], None]] = {
            "1": self.list_products,
            "2": self.list_cashiers,
            "3": self.list_desks,
            "4": self.assign_cashier,
            "5": self.release_desk,
            "6": self.make_sale,
            "7": self.financial_status,
            "8": self.saved_receipts,
            "9": self.receipt_count,
        }

    def run(self) -> int:
        """Loop over the menu until ``0`` is chosen or input runs out."""
        self.say(f"=== {self.context.settings.store_name} ===")
        while True:
            for key, label in MENU_OPTIONS:
                self.say(f"{key}. {label}")
            try:
                choice = self.ask("Choose an option: ").strip()
            except EOFError:
                break
            if choice == "0":
                break
            handler = self._handlers.get(choice)
            if handler is None:
                self.say(f"Invalid option: {choice}")
                continue
            try:
                handler()
            except core_logic.BusinessRuleViolation as error:
                log.warning("Menu option %s failed: %s", choice, error)
                self.say(f"Error: {error}")
            except (ValueError, InvalidOperation) as error:
                self.say(f"Invalid input: {error}")
        self.say("Goodbye.")
        return 0

    def list_products(self) -> None:
        for product in self.store.list_products():
            self.say(format_product(product, self.store))

    def list_cashiers(self) -> None:
        for cashier in self.store.list_cashiers():
            desk = self.store.find_assigned_desk(cashier.cashier_id)
            seat = f"at {desk.desk_id}" if desk is not None else "not assigned"
            self.say(f"{cashier} salary {data_manager.format_money(cashier.monthly_salary)} {seat}")

    def list_desks(self) -> None:
        for desk in self.store.list_cash_desks():
            self.say(format_desk(desk))

    def assign_cashier(self) -> None:
        cashier_id = self.ask("Cashier id: ").strip()
        desk_id = self.ask("Desk id: ").strip()
        desk = self.store.assign_cashier_to_desk(cashier_id, desk_id)
        self.say(f"{desk.cashier} is now at desk {desk.desk_id}.")

    def release_desk(self) -> None:
        desk_id = self.ask("Desk id: ").strip()
        self.store.release_desk(desk_id)
        self.say(f"Desk {desk_id} is free.")

    def make_sale(self) -> None:
        """Run a multi-item sale on one receipt, then save it."""
        cashier_id = self.ask("Cashier id: ").strip()
        cashier = self.store.find_cashier(cashier_id)
        if cashier is None:
            self.say(f"Unknown cashier id: {cashier_id}")
            return
        customer_name = self.ask("Customer name: ").strip() or "Walk-in customer"
        balance = Decimal(self.ask("Customer balance: ").strip())
        customer = Customer(customer_id=customer_name, name=customer_name, balance=balance)

        receipt = self.store.create_receipt(cashier)
        while True:
            product_id = self.ask("Product id (empty to finish): ").strip()
            if not product_id:
                break
            try:
                quantity = int(self.ask("Quantity: ").strip())
                self.store.add_to_receipt(receipt, product_id, quantity, customer)
            except core_logic.BusinessRuleViolation as error:
                self.say(f"Error: {error}")
                continue
            except ValueError as error:
                self.say(f"Invalid input: {error}")
                continue
            self.say(f"Added. Running total: {data_manager.format_money(receipt.total())}")

        self.store.finalize_receipt(receipt)
        self._close_receipt(receipt, customer)

    def _close_receipt(self, receipt: Receipt, customer: Customer) -> None:
        if not receipt.lines:
            self.say(f"Receipt #{receipt.number} closed without items.")
            return
        files = core_logic.save_receipt(self.context, receipt)
        self.say(data_manager.render_receipt(receipt).rstrip("\n"))
        self.say(f"Customer balance left: {data_manager.format_money(customer.balance)}")
        self.say(f"Saved receipt to {files.text_path}")

    def financial_status(self) -> None:
        for line in format_financials(self.store):
            self.say(line)

    def saved_receipts(self) -> None:
        receipts = data_manager.load_all_receipts(self.context.settings.receipt_dir)
        if not receipts:
            self.say("No saved receipts.")
        for receipt in receipts:
            self.say(data_manager.render_receipt(receipt).rstrip("\n"))

    def receipt_count(self) -> None:
        self.say(f"Receipts issued this session: {self.store.receipt_count()}")


def run_menu(
    context: core_logic.RuntimeContext,
    *,
    input_fn: InputFn = input,
    output_fn: OutputFn = print,
) -> int:
    """Run the interactive menu until the user picks ``0`` or input ends."""
    return MenuSession(context, input_fn=input_fn, output_fn=output_fn).run()


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.ConfigurationError):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist catalog changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

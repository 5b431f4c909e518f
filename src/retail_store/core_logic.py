"""Business logic layer for the retail store.

The :class:`Store` aggregate is the single owner of inventory, cashiers, cash
desks, receipts and the accounting counters. Every state change goes through
one of its operations so that stock, customer balances and the financial
accumulators move together or not at all. The module also wires the store to
its collaborators: configuration and the catalog workbook from
:mod:`retail_store.data_manager`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, GoodsType
from .errors import (
    AssignmentConflictError,
    BusinessRuleViolation,
    ConfigurationError,
    DeskNotAssignedError,
    DuplicateEntityError,
    InsufficientBudgetError,
    InsufficientStockError,
    InvalidQuantityError,
    MissingReferenceError,
    ProductExpiredError,
    ReceiptClosedError,
)
from .models import CashDesk, Cashier, Customer, Product, Receipt, ReceiptLine


Clock = Callable[[], datetime]


def _to_decimal(field: str, value: Any) -> Decimal:
    """Coerce a configuration value into a finite :class:`Decimal`.

    Floats go through ``str`` first so ``0.2`` becomes ``Decimal("0.2")``
    rather than its binary approximation.
    """
    if isinstance(value, bool):
        raise ConfigurationError(field, value, "expected a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(field, value, "expected a number") from exc
    if not result.is_finite():
        raise ConfigurationError(field, value, "expected a finite number")
    return result


@dataclass(frozen=True)
class StoreConfig:
    """Pricing parameters, validated once and immutable afterwards."""

    groceries_markup: Decimal = Decimal("0.20")
    non_foods_markup: Decimal = Decimal("0.25")
    days_for_near_expiry_discount: int = 5
    discount_percentage: Decimal = Decimal("0.30")

    def __post_init__(self) -> None:
        for name in ("groceries_markup", "non_foods_markup", "discount_percentage"):
            object.__setattr__(self, name, _to_decimal(name, getattr(self, name)))

        if self.groceries_markup < 0:
            raise ConfigurationError("groceries_markup", self.groceries_markup, "must be >= 0")
        if self.non_foods_markup < 0:
            raise ConfigurationError("non_foods_markup", self.non_foods_markup, "must be >= 0")
        if not Decimal("0") <= self.discount_percentage <= Decimal("1"):
            raise ConfigurationError("discount_percentage", self.discount_percentage, "must be within [0, 1]")
        days = self.days_for_near_expiry_discount
        if isinstance(days, bool) or not isinstance(days, int):
            raise ConfigurationError("days_for_near_expiry_discount", days, "expected an integer")
        if days < 0:
            raise ConfigurationError("days_for_near_expiry_discount", days, "must be >= 0")

    def markup_for(self, category: GoodsType) -> Decimal:
        if category is GoodsType.GROCERIES:
            return self.groceries_markup
        return self.non_foods_markup


def is_expired(product: Product, on: date) -> bool:
    """Return ``True`` once ``on`` reaches the expiry date (same day included)."""
    return not product.expiry > on


def is_near_expiry(product: Product, config: StoreConfig, on: date) -> bool:
    """Return ``True`` while an unexpired product sits inside the discount window.

    The window is inclusive: a product expiring exactly
    ``days_for_near_expiry_discount`` days after ``on`` is discounted.
    """
    if is_expired(product, on):
        return False
    return (product.expiry - on).days <= config.days_for_near_expiry_discount


def sale_price(product: Product, config: StoreConfig, on: date) -> Decimal:
    """Compute the unit sale price of ``product`` on the given day.

    The purchase price is raised by the category markup and, inside the
    near-expiry window, lowered by the configured discount. The result is an
    exact :class:`Decimal`; rounding is left to display code.

    Args:
        product (Product): Product being priced.
        config (StoreConfig): Markups and discount window.
        on (date): Evaluation day.

    Returns:
        Decimal: Unit price for a sale on ``on``.
    """
    price = product.purchase_price * (Decimal("1") + config.markup_for(product.category))
    if is_near_expiry(product, config, on):
        price *= Decimal("1") - config.discount_percentage
    return price


def require_positive_quantity(quantity: Any) -> int:
    """Validate that a quantity is a strictly positive integer.

    Raises:
        InvalidQuantityError: If ``quantity`` is not an ``int`` or is zero or
            negative. ``bool`` values are rejected as well.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %r", quantity)
        raise InvalidQuantityError(quantity)
    return quantity


class ReceiptSequence:
    """Monotonic receipt number generator owned by one store."""

    def __init__(self, start: int = 0) -> None:
        self._start = start
        self._last = start

    @property
    def current(self) -> int:
        """Last number handed out (``start`` when nothing was issued yet)."""
        return self._last

    def next(self) -> int:
        self._last += 1
        return self._last

    def reset(self, start: Optional[int] = None) -> None:
        if start is not None:
            self._start = start
        self._last = self._start


class _PreparedLine(NamedTuple):
    product: Product
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class Store:
    """Aggregate root enforcing the store's transactional invariants.

    Args:
        config (StoreConfig): Pricing configuration.
        clock (Callable[[], datetime] | None): Source of "now" for expiry
            checks, pricing and receipt timestamps. Defaults to the local
            wall clock.
        receipt_sequence (ReceiptSequence | None): Receipt number generator.
            A fresh sequence starting at 1 is created when omitted.
    """

    def __init__(
        self,
        config: StoreConfig,
        *,
        clock: Optional[Clock] = None,
        receipt_sequence: Optional[ReceiptSequence] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._receipt_sequence = receipt_sequence if receipt_sequence is not None else ReceiptSequence()
        self._inventory: Dict[str, Product] = {}
        self._cashiers: Dict[str, Cashier] = {}
        self._desks: Dict[str, CashDesk] = {}
        self._next_desk_number = 1
        self._receipts: List[Receipt] = []
        self._sold_items: Dict[str, int] = {}
        self._cost_of_sold_goods = Decimal("0")
        self._total_cost_of_all_goods_supplied = Decimal("0")

    @property
    def config(self) -> StoreConfig:
        return self._config

    def now(self) -> datetime:
        return self._clock() if self._clock is not None else datetime.now()

    def today(self) -> date:
        return self.now().date()

    # ------------------------------------------------------------------
    # Cashiers and cash desks
    # ------------------------------------------------------------------

    def add_cashier(self, cashier: Cashier) -> Cashier:
        if cashier.cashier_id in self._cashiers:
            log.warning("Rejected duplicate cashier id '%s'", cashier.cashier_id)
            raise DuplicateEntityError("Cashier", cashier.cashier_id)
        self._cashiers[cashier.cashier_id] = cashier
        log.info("Added cashier '%s' (%s)", cashier.cashier_id, cashier.name)
        return cashier

    def list_cashiers(self) -> List[Cashier]:
        return list(self._cashiers.values())

    def find_cashier(self, cashier_id: str) -> Optional[Cashier]:
        return self._cashiers.get(cashier_id)

    def add_cash_desk(self) -> CashDesk:
        """Create a free desk with the next sequential id (``D1``, ``D2``, ...)."""
        desk = CashDesk(desk_id=f"D{self._next_desk_number}")
        self._next_desk_number += 1
        self._desks[desk.desk_id] = desk
        log.info("Added cash desk '%s'", desk.desk_id)
        return desk

    def list_cash_desks(self) -> List[CashDesk]:
        return list(self._desks.values())

    def find_cash_desk(self, desk_id: str) -> Optional[CashDesk]:
        return self._desks.get(desk_id)

    def find_assigned_desk(self, cashier_id: str) -> Optional[CashDesk]:
        """Return the open desk currently held by ``cashier_id``, if any."""
        for desk in self._desks.values():
            if desk.is_open and desk.cashier is not None and desk.cashier.cashier_id == cashier_id:
                return desk
        return None

    def assign_cashier_to_desk(self, cashier_id: str, desk_id: str) -> CashDesk:
        """Seat a cashier at a desk, opening it.

        Re-assigning a cashier to the desk they already hold changes nothing.

        Args:
            cashier_id (str): Cashier to seat.
            desk_id (str): Target desk.

        Returns:
            CashDesk: Snapshot of the target desk after the assignment.

        Raises:
            MissingReferenceError: If the cashier or desk is unknown.
            AssignmentConflictError: If the cashier already holds another
                desk, or the desk is held by another cashier.
        """
        cashier = self._require_cashier(cashier_id)
        desk = self._require_desk(desk_id)

        current = self.find_assigned_desk(cashier_id)
        if current is not None and current.desk_id == desk_id:
            log.debug("Cashier '%s' already assigned to desk '%s'", cashier_id, desk_id)
            return current
        if current is not None:
            log.warning(
                "Cashier '%s' is already assigned to desk '%s'; release it before moving to '%s'",
                cashier_id,
                current.desk_id,
                desk_id,
            )
            raise AssignmentConflictError(
                f"Cashier {cashier.name} ({cashier_id}) is already assigned to desk {current.desk_id}",
                cashier_id=cashier_id,
                cashier_name=cashier.name,
                desk_id=current.desk_id,
                holder_id=cashier_id,
                holder_name=cashier.name,
            )

        holder = desk.cashier
        if holder is not None:
            log.warning("Desk '%s' is already occupied by cashier '%s'", desk_id, holder.cashier_id)
            raise AssignmentConflictError(
                f"Desk {desk_id} is already occupied by cashier {holder.name} ({holder.cashier_id})",
                cashier_id=cashier_id,
                cashier_name=cashier.name,
                desk_id=desk_id,
                holder_id=holder.cashier_id,
                holder_name=holder.name,
            )

        assigned = replace(desk, cashier=cashier)
        self._desks[desk_id] = assigned
        log.info("Cashier '%s' assigned to desk '%s'", cashier_id, desk_id)
        return assigned

    def release_desk(self, desk_id: str) -> CashDesk:
        """Free a desk. Releasing a desk that is already free is a no-op."""
        desk = self._require_desk(desk_id)
        if not desk.is_occupied:
            return desk
        released = replace(desk, cashier=None)
        self._desks[desk_id] = released
        log.info("Cashier '%s' released from desk '%s'", desk.cashier.cashier_id, desk_id)
        return released

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def add_product(self, product: Product) -> Product:
        """Register a product and account for the cost of its initial stock.

        Raises:
            DuplicateEntityError: If a product with the same id exists. The
                inventory is never overwritten.
        """
        if product.product_id in self._inventory:
            log.warning("Rejected duplicate product id '%s'", product.product_id)
            raise DuplicateEntityError("Product", product.product_id)
        supplied_cost = product.purchase_price * product.quantity
        self._inventory[product.product_id] = product
        self._total_cost_of_all_goods_supplied += supplied_cost
        log.info(
            "Added product '%s' (quantity=%s, purchase_price=%s)",
            product.product_id,
            product.quantity,
            product.purchase_price,
        )
        return product

    def find(self, product_id: str) -> Optional[Product]:
        return self._inventory.get(product_id)

    def list_products(self) -> List[Product]:
        return list(self._inventory.values())

    def restock(self, product_id: str, additional_quantity: int) -> Product:
        """Increase stock of an existing product.

        Raises:
            InvalidQuantityError: If ``additional_quantity`` is not positive.
            MissingReferenceError: If the product is unknown.
        """
        require_positive_quantity(additional_quantity)
        product = self._require_product(product_id)
        restocked = replace(product, quantity=product.quantity + additional_quantity)
        self._inventory[product_id] = restocked
        self._total_cost_of_all_goods_supplied += product.purchase_price * additional_quantity
        log.info("Restocked product '%s' by %s (now %s)", product_id, additional_quantity, restocked.quantity)
        return restocked

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def sell(self, cashier: Cashier, product_id: str, quantity: int, customer: Customer) -> Receipt:
        """Sell one product line on a new, already finalized receipt.

        The receipt is allocated only after every check has passed, so a
        rejected sale consumes no receipt number.

        Raises:
            InvalidQuantityError, DeskNotAssignedError, MissingReferenceError,
            ProductExpiredError, InsufficientStockError,
            InsufficientBudgetError: The first violated precondition, checked
                in that order.
        """
        prepared = self._prepare_line(cashier, product_id, quantity, customer)
        receipt = self._open_receipt(cashier)
        self._commit_line(receipt, prepared, customer)
        receipt._finalize()
        log.info(
            "Sold %s x '%s' on receipt #%s (total=%s)",
            quantity,
            product_id,
            receipt.number,
            receipt.total(),
        )
        return receipt

    def create_receipt(self, cashier: Cashier) -> Receipt:
        """Open an empty receipt for a multi-item sale.

        Raises:
            DeskNotAssignedError: If the cashier has no open desk.
        """
        self._require_assigned_desk(cashier)
        receipt = self._open_receipt(cashier)
        log.info("Opened receipt #%s for cashier '%s'", receipt.number, cashier.cashier_id)
        return receipt

    def add_to_receipt(self, receipt: Receipt, product_id: str, quantity: int, customer: Customer) -> Receipt:
        """Sell one more product line on an open receipt.

        Raises:
            MissingReferenceError: If the receipt was not issued by this
                store, or the product is unknown.
            ReceiptClosedError: If the receipt was already finalized.
            InvalidQuantityError, DeskNotAssignedError, ProductExpiredError,
            InsufficientStockError, InsufficientBudgetError: As for
                :meth:`sell`.
        """
        self._require_open_receipt(receipt)
        prepared = self._prepare_line(receipt.cashier, product_id, quantity, customer)
        self._commit_line(receipt, prepared, customer)
        log.info(
            "Added %s x '%s' to receipt #%s (total=%s)",
            quantity,
            product_id,
            receipt.number,
            receipt.total(),
        )
        return receipt

    def finalize_receipt(self, receipt: Receipt) -> Receipt:
        """Close a receipt to further lines. Finalizing twice is a no-op."""
        self._require_issued_receipt(receipt)
        if not receipt.finalized:
            receipt._finalize()
            log.info("Finalized receipt #%s (total=%s)", receipt.number, receipt.total())
        return receipt

    def list_receipts(self) -> List[Receipt]:
        return list(self._receipts)

    def _prepare_line(self, cashier: Cashier, product_id: str, quantity: int, customer: Customer) -> _PreparedLine:
        require_positive_quantity(quantity)
        self._require_assigned_desk(cashier)

        product = self._inventory.get(product_id)
        if product is None:
            log.warning("Sale rejected: unknown product '%s'", product_id)
            raise MissingReferenceError("Product", product_id)

        today = self.today()
        if is_expired(product, today):
            log.warning("Sale rejected: product '%s' expired on %s", product_id, product.expiry)
            raise ProductExpiredError(product_id, product.expiry)
        if quantity > product.quantity:
            log.warning(
                "Sale rejected: requested %s of '%s' but only %s in stock",
                quantity,
                product_id,
                product.quantity,
            )
            raise InsufficientStockError(product_id, quantity, product.quantity)

        unit_price = sale_price(product, self._config, today)
        total_price = unit_price * quantity
        if not customer.can_afford(total_price):
            log.warning(
                "Sale rejected: customer '%s' balance %s does not cover %s",
                customer.customer_id,
                customer.balance,
                total_price,
            )
            raise InsufficientBudgetError(required=total_price, balance=customer.balance)

        return _PreparedLine(product, quantity, unit_price, total_price)

    def _commit_line(self, receipt: Receipt, prepared: _PreparedLine, customer: Customer) -> ReceiptLine:
        product = prepared.product
        customer.pay(prepared.total_price)
        self._inventory[product.product_id] = replace(product, quantity=product.quantity - prepared.quantity)
        self._sold_items[product.product_id] = self._sold_items.get(product.product_id, 0) + prepared.quantity
        self._cost_of_sold_goods += product.purchase_price * prepared.quantity
        line = ReceiptLine(
            product_id=product.product_id,
            product_name=product.name,
            quantity=prepared.quantity,
            unit_price=prepared.unit_price,
        )
        receipt._append(line)
        return line

    def _open_receipt(self, cashier: Cashier) -> Receipt:
        receipt = Receipt(number=self._receipt_sequence.next(), cashier=cashier, created_at=self.now())
        self._receipts.append(receipt)
        return receipt

    # ------------------------------------------------------------------
    # Financials
    # ------------------------------------------------------------------

    def turnover(self) -> Decimal:
        """Sum of every committed receipt line at its snapshotted price."""
        return sum((receipt.total() for receipt in self._receipts), Decimal("0"))

    def salary_expenses(self) -> Decimal:
        return sum((cashier.monthly_salary for cashier in self._cashiers.values()), Decimal("0"))

    def cost_of_sold_goods(self) -> Decimal:
        return self._cost_of_sold_goods

    def total_cost_of_all_goods_supplied(self) -> Decimal:
        return self._total_cost_of_all_goods_supplied

    def gross_profit(self) -> Decimal:
        return self.turnover() - self._cost_of_sold_goods

    def profit(self) -> Decimal:
        """Turnover minus salary expenses minus cost of sold goods."""
        return self.turnover() - self.salary_expenses() - self._cost_of_sold_goods

    def sold_items(self) -> Dict[str, int]:
        return dict(self._sold_items)

    def receipt_count(self) -> int:
        return len(self._receipts)

    def reset_counters(self) -> None:
        """Forget issued receipts and sales accounting.

        The receipt sequence restarts, receipts are dropped and the sold-item
        and cost-of-sold-goods accumulators return to zero. Inventory,
        cashiers, desks and the supplied-goods total are kept.
        """
        self._receipt_sequence.reset()
        self._receipts.clear()
        self._sold_items.clear()
        self._cost_of_sold_goods = Decimal("0")
        log.info("Store counters reset")

    # ------------------------------------------------------------------
    # Lookups that raise
    # ------------------------------------------------------------------

    def _require_product(self, product_id: str) -> Product:
        try:
            return self._inventory[product_id]
        except KeyError as exc:
            log.warning("Product lookup failed for id '%s'", product_id)
            raise MissingReferenceError("Product", product_id) from exc

    def _require_cashier(self, cashier_id: str) -> Cashier:
        try:
            return self._cashiers[cashier_id]
        except KeyError as exc:
            log.warning("Cashier lookup failed for id '%s'", cashier_id)
            raise MissingReferenceError("Cashier", cashier_id) from exc

    def _require_desk(self, desk_id: str) -> CashDesk:
        try:
            return self._desks[desk_id]
        except KeyError as exc:
            log.warning("Cash desk lookup failed for id '%s'", desk_id)
            raise MissingReferenceError("CashDesk", desk_id) from exc

    def _require_assigned_desk(self, cashier: Cashier) -> CashDesk:
        desk = self.find_assigned_desk(cashier.cashier_id)
        if desk is None:
            log.warning("Cashier '%s' is not assigned to an open cash desk", cashier.cashier_id)
            raise DeskNotAssignedError(cashier.cashier_id, cashier.name)
        return desk

    def _require_issued_receipt(self, receipt: Receipt) -> None:
        if not any(issued is receipt for issued in self._receipts):
            log.warning("Receipt #%s was not issued by this store", receipt.number)
            raise MissingReferenceError("Receipt", receipt.number)

    def _require_open_receipt(self, receipt: Receipt) -> None:
        self._require_issued_receipt(receipt)
        if receipt.finalized:
            log.warning("Receipt #%s is already finalized", receipt.number)
            raise ReceiptClosedError(receipt.number)


def calculate_financial_summary(store: Store) -> Dict[str, Decimal]:
    """Collect the store's financial figures into one mapping.

    Returns:
        dict[str, Decimal]: ``turnover``, ``cost_of_sold_goods``,
            ``gross_profit``, ``salary_expenses``, ``profit`` and
            ``total_cost_of_all_goods_supplied``.
    """
    summary = {
        "turnover": store.turnover(),
        "cost_of_sold_goods": store.cost_of_sold_goods(),
        "gross_profit": store.gross_profit(),
        "salary_expenses": store.salary_expenses(),
        "profit": store.profit(),
        "total_cost_of_all_goods_supplied": store.total_cost_of_all_goods_supplied(),
    }
    log.debug(
        "Calculated financial summary: turnover=%s cogs=%s profit=%s",
        summary["turnover"],
        summary["cost_of_sold_goods"],
        summary["profit"],
    )
    return summary


# ----------------------------------------------------------------------
# Runtime wiring
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, the catalog workbook and the live store."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    store: Store


def build_store_config(settings: data_manager.ConfigSettings) -> StoreConfig:
    """Validate the pricing section of the settings into a :class:`StoreConfig`.

    Raises:
        ConfigurationError: If any pricing value is out of range.
    """
    return StoreConfig(
        groceries_markup=settings.groceries_markup,
        non_foods_markup=settings.non_foods_markup,
        days_for_near_expiry_discount=settings.near_expiry_days,
        discount_percentage=settings.near_expiry_discount,
    )


def build_product(row: data_manager.ProductRow) -> Product:
    return Product(
        product_id=row.product_id,
        name=row.product_name,
        purchase_price=row.purchase_price,
        category=GoodsType(row.category),
        expiry=row.expiry,
        quantity=row.quantity,
    )


def build_product_row(product: Product) -> data_manager.ProductRow:
    return data_manager.ProductRow(
        product_id=product.product_id,
        product_name=product.name,
        purchase_price=product.purchase_price,
        category=product.category.value,
        expiry=product.expiry,
        quantity=product.quantity,
    )


def build_cashier(row: data_manager.CashierRow) -> Cashier:
    return Cashier(cashier_id=row.cashier_id, name=row.cashier_name, monthly_salary=row.monthly_salary)


def build_cashier_row(cashier: Cashier) -> data_manager.CashierRow:
    return data_manager.CashierRow(
        cashier_id=cashier.cashier_id,
        cashier_name=cashier.name,
        monthly_salary=cashier.monthly_salary,
    )


def seed_store(store: Store, workbook: Workbook, *, desk_count: int) -> None:
    """Load catalog products and cashiers into ``store`` and open its desks.

    Duplicate ids in the catalog are logged and skipped so one bad row does
    not prevent the store from starting.
    """
    for product_row in data_manager.iter_products(workbook):
        try:
            store.add_product(build_product(product_row))
        except DuplicateEntityError as exc:
            log.warning("Skipping catalog product row: %s", exc)
    for cashier_row in data_manager.iter_cashiers(workbook):
        try:
            store.add_cashier(build_cashier(cashier_row))
        except DuplicateEntityError as exc:
            log.warning("Skipping catalog cashier row: %s", exc)
    for _ in range(desk_count):
        store.add_cash_desk()
    log.info(
        "Seeded store with %d products, %d cashiers and %d desks",
        len(store.list_products()),
        len(store.list_cashiers()),
        desk_count,
    )


def load_runtime_context(config_path: Optional[Path] = None, *, clock: Optional[Clock] = None) -> RuntimeContext:
    """Load configuration, open the catalog workbook and build a seeded store.

    Receipt numbering continues after the highest receipt already saved in
    the configured receipt directory.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upwards from the current
            working directory.
        clock (Callable[[], datetime] | None): Optional clock for the store.

    Returns:
        RuntimeContext: Settings, workbook and store ready for the CLI.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
        ConfigurationError: When pricing values are out of range.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    sequence = ReceiptSequence(start=data_manager.latest_receipt_number(settings.receipt_dir))
    store = Store(build_store_config(settings), clock=clock, receipt_sequence=sequence)
    seed_store(store, workbook, desk_count=settings.desk_count)
    log.info("Loaded runtime context for catalog '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, store=store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate catalog compatibility before the store is used.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Catalog schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Catalog schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write the store's products and cashiers back to the catalog workbook.

    Existing product rows get their ``Quantity`` refreshed; products and
    cashiers added during the session are appended.
    """
    workbook = context.workbook
    for product in context.store.list_products():
        if data_manager.locate_row(workbook, data_manager.PRODUCTS_SHEET, "ProductID", product.product_id) is None:
            data_manager.append_product(workbook, build_product_row(product))
        else:
            data_manager.update_product(workbook, product.product_id, field_values={"Quantity": product.quantity})
    for cashier in context.store.list_cashiers():
        if data_manager.locate_row(workbook, data_manager.CASHIERS_SHEET, "CashierID", cashier.cashier_id) is None:
            data_manager.append_cashier(workbook, build_cashier_row(cashier))
    data_manager.save_workbook(workbook, destination=context.settings.data_file)
    log.info("Persisted catalog '%s'", context.settings.data_file)


def save_receipt(context: RuntimeContext, receipt: Receipt) -> data_manager.ReceiptFiles:
    """Store ``receipt`` in the configured receipt directory."""
    return data_manager.save_receipt(receipt, context.settings.receipt_dir)


__all__ = [
    "AssignmentConflictError",
    "BusinessRuleViolation",
    "ConfigurationError",
    "DeskNotAssignedError",
    "DuplicateEntityError",
    "InsufficientBudgetError",
    "InsufficientStockError",
    "InvalidQuantityError",
    "MissingReferenceError",
    "ProductExpiredError",
    "ReceiptClosedError",
    "StoreConfig",
    "ReceiptSequence",
    "Store",
    "RuntimeContext",
    "is_expired",
    "is_near_expiry",
    "sale_price",
    "require_positive_quantity",
    "calculate_financial_summary",
    "build_store_config",
    "build_product",
    "build_product_row",
    "build_cashier",
    "build_cashier_row",
    "seed_store",
    "load_runtime_context",
    "ensure_schema_version",
    "persist_context",
    "save_receipt",
]

"""Inventory ledger: the only code path that moves stock."""

import logging
from dataclasses import dataclass
from typing import Optional

from workshop_ops.database.models import InventoryItem
from workshop_ops.database.repository import Repository
from workshop_ops.errors import (
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
    UnknownCategoryError,
)
from workshop_ops.utils.constants import COLLECTION_INVENTORY, InventoryCategory

logger = logging.getLogger(__name__)


def _require_int(value, name: str, minimum: int):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError(f"{name} must be a whole number, got {value!r}")
    if value < minimum:
        raise InvalidQuantityError(f"{name} must be at least {minimum}, got {value}")


@dataclass
class StockMovement:
    """Before/after snapshot of one stock adjustment."""

    item_id: int
    category: str
    before: int
    after: int
    requested_delta: int
    item: InventoryItem

    @property
    def delta(self) -> int:
        return self.after - self.before

    @property
    def clamped(self) -> bool:
        return self.delta != self.requested_delta

    def crossed_below(self, level: int) -> bool:
        """True when this movement took stock from at/above ``level`` to below it."""
        return level > 0 and self.before >= level and self.after < level


class CategoryStore:
    """Category-scoped view over the inventory table."""

    def __init__(self, repo: Repository, category: InventoryCategory):
        self.repo = repo
        self.category = category

    def get(self, item_id: int, conn=None) -> Optional[InventoryItem]:
        return self.repo.get_inventory_item(item_id, self.category.value, conn)

    def all(self, conn=None) -> list[InventoryItem]:
        return self.repo.get_all_inventory_items(self.category.value, conn)

    def find_by_code(self, item_code: str, conn=None) -> Optional[InventoryItem]:
        return self.repo.get_inventory_item_by_code(
            item_code, self.category.value, conn
        )

    def write_stock(self, item_id: int, new_stock: int, conn=None):
        if self.repo.set_stock_level(item_id, self.category.value, new_stock, conn) == 0:
            raise NotFoundError(f"{self.category.value} item", item_id)

    def add(self, item: InventoryItem, conn=None) -> int:
        item.category = self.category.value
        return self.repo.create_inventory_item(item, conn)

    def __repr__(self):
        return f"CategoryStore({self.category.value!r})"


class InventoryLedger:
    """Reads and adjusts stock across the four inventory categories."""

    def __init__(self, repo: Repository):
        self.repo = repo
        self.stores: dict[InventoryCategory, CategoryStore] = {
            InventoryCategory.COMPONENT:
                CategoryStore(repo, InventoryCategory.COMPONENT),
            InventoryCategory.RAW_MATERIAL:
                CategoryStore(repo, InventoryCategory.RAW_MATERIAL),
            InventoryCategory.WORKSHOP_SUPPLY:
                CategoryStore(repo, InventoryCategory.WORKSHOP_SUPPLY),
            InventoryCategory.PRODUCT:
                CategoryStore(repo, InventoryCategory.PRODUCT),
        }

    def store_for(self, category) -> CategoryStore:
        """Resolve a category label to its store; unknown labels are fatal."""
        return self.stores[InventoryCategory.parse(category)]

    def _resolve_store(self, item_id: int, category_hint, conn) -> CategoryStore:
        if category_hint is not None:
            return self.store_for(category_hint)
        item = self.repo.get_inventory_item(item_id, conn=conn)
        if item is None:
            raise NotFoundError("Inventory item", item_id)
        return self.store_for(item.category)

    # ── Stock movements ─────────────────────────────────────────

    def adjust_stock(self, item_id: int, category_hint, delta: int,
                     conn=None, clamp: bool = False) -> StockMovement:
        """Apply ``delta`` to an item's stock.

        Runs inside the caller's transaction when ``conn`` is given, otherwise
        in its own. A result below zero raises ``InsufficientStockError``
        unless ``clamp`` is set, in which case stock stops at zero.
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidQuantityError(f"Stock delta must be a whole number, got {delta!r}")
        if category_hint is not None:
            InventoryCategory.parse(category_hint)

        if conn is None:
            movement = self.repo.db.run_transaction(
                lambda c: self.adjust_stock(item_id, category_hint, delta, c, clamp)
            )
            self.repo.notify_changed(COLLECTION_INVENTORY)
            return movement

        store = self._resolve_store(item_id, category_hint, conn)
        item = store.get(item_id, conn)
        if item is None:
            raise NotFoundError(f"{store.category.value} item", item_id)

        before = item.current_stock
        after = before + delta
        if after < 0:
            if not clamp:
                raise InsufficientStockError(item_id, before, delta)
            logger.warning(
                f"Stock for {item.name} (id {item_id}) would go to {after}; "
                f"clamped at 0"
            )
            after = 0

        store.write_stock(item_id, after, conn)
        item.current_stock = after
        return StockMovement(
            item_id=item_id, category=store.category.value,
            before=before, after=after, requested_delta=delta, item=item,
        )

    def deduct(self, item_id: int, category_hint, quantity: int,
               conn=None, clamp: bool = False) -> StockMovement:
        _require_int(quantity, "Deduction quantity", 1)
        return self.adjust_stock(item_id, category_hint, -quantity, conn, clamp)

    def increment(self, item_id: int, category_hint, quantity: int,
                  conn=None) -> StockMovement:
        _require_int(quantity, "Increment quantity", 1)
        return self.adjust_stock(item_id, category_hint, quantity, conn)

    # ── Inventory management ────────────────────────────────────

    @staticmethod
    def _validate_item(item: InventoryItem):
        if not (item.name or "").strip():
            raise ValueError("Inventory item name is required")
        if not item.category:
            raise UnknownCategoryError(item.category)
        item.category = InventoryCategory.parse(item.category).value
        for name in ("current_stock", "reorder_level", "standard_stock_level"):
            _require_int(getattr(item, name), name, 0)
        if item.price is None or item.price < 0:
            raise InvalidQuantityError(f"Price cannot be negative: {item.price!r}")

    def add_item(self, item: InventoryItem) -> int:
        """Create an inventory item in the store its category names."""
        self._validate_item(item)
        item_id = self.store_for(item.category).add(item)
        logger.info(f"Inventory item {item.name!r} added to {item.category}")
        return item_id

    def add_product(self, item: InventoryItem) -> int:
        """Create a finished-goods item; product codes must be unique."""
        item.category = InventoryCategory.PRODUCT.value
        self._validate_item(item)
        if item.item_code and self.repo.get_inventory_item_by_code(item.item_code):
            raise ValueError(f"Product code {item.item_code} already exists")
        return self.store_for(item.category).add(item)

    def update_item(self, item: InventoryItem):
        """Edit item attributes. Stock levels only move through the ledger."""
        existing = self.repo.get_inventory_item(item.id)
        if existing is None:
            raise NotFoundError("Inventory item", item.id)
        item.current_stock = existing.current_stock
        self._validate_item(item)
        self.repo.update_inventory_item(item)

    def delete_item(self, item_id: int, category=None):
        if category is not None:
            category = InventoryCategory.parse(category).value
        if self.repo.delete_inventory_item(item_id, category) == 0:
            raise NotFoundError("Inventory item", item_id)
        logger.info(f"Inventory item {item_id} deleted")

    def get_item(self, item_id: int, category=None) -> InventoryItem:
        if category is None:
            item = self.repo.get_inventory_item(item_id)
        else:
            item = self.store_for(category).get(item_id)
        if item is None:
            raise NotFoundError("Inventory item", item_id)
        return item

    def find_by_code(self, item_code: str, category=None) -> Optional[InventoryItem]:
        if category is None:
            return self.repo.get_inventory_item_by_code(item_code)
        return self.store_for(category).find_by_code(item_code)

    def get_low_stock_items(self, category=None) -> list[InventoryItem]:
        if category is not None:
            category = InventoryCategory.parse(category).value
        return self.repo.get_low_stock_items(category)

    # ── Stock takes ─────────────────────────────────────────────

    def _count(self, conn, item_id: int, count: int,
               session_id: Optional[str]) -> StockMovement:
        item = self.repo.get_inventory_item(item_id, conn=conn)
        if item is None:
            raise NotFoundError("Inventory item", item_id)
        before = item.current_stock
        self.repo.record_stock_count(item_id, count, session_id, conn)
        self.repo.log_activity(
            "stock_counted", "inventory_item", item_id, item.name,
            details={"before": before, "after": count, "session": session_id},
            conn=conn,
        )
        item.current_stock = count
        item.last_counted_session = session_id
        return StockMovement(
            item_id=item_id, category=item.category, before=before,
            after=count, requested_delta=count - before, item=item,
        )

    def record_stock_count(self, item_id: int, count: int,
                           session_id: Optional[str] = None) -> StockMovement:
        """Overwrite stock with a physical count."""
        _require_int(count, "Counted quantity", 0)
        movement = self.repo.db.run_transaction(
            lambda conn: self._count(conn, item_id, count, session_id)
        )
        self.repo.notify_changed(COLLECTION_INVENTORY)
        return movement

    def reconcile_stock_levels(self, counts: dict[int, int],
                               session_id: Optional[str] = None
                               ) -> list[StockMovement]:
        """Apply a whole stock take in one transaction; any bad row aborts all."""
        for count in counts.values():
            _require_int(count, "Counted quantity", 0)

        def _apply(conn):
            return [
                self._count(conn, item_id, count, session_id)
                for item_id, count in counts.items()
            ]

        movements = self.repo.db.run_transaction(_apply)
        self.repo.notify_changed(COLLECTION_INVENTORY)
        logger.info(f"Reconciled {len(movements)} stock level(s)")
        return movements

    def update_stock_by_weight(self, item_id: int, gross_weight: float,
                               session_id: Optional[str] = None
                               ) -> StockMovement:
        """Count stock by weighing: (gross - tare) / unit weight, rounded."""
        item = self.get_item(item_id)
        if not item.unit_weight or item.unit_weight <= 0:
            raise InvalidQuantityError(
                f"{item.name} has no unit weight; cannot count by weight"
            )
        net = gross_weight - (item.tare_weight or 0)
        quantity = round(net / item.unit_weight)
        if quantity < 0:
            raise InvalidQuantityError(
                f"Net weight {net} is below the container tare"
            )
        return self.record_stock_count(item_id, quantity, session_id)

"""Purchase queue: replenishment requests from enqueue to receipt."""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from urllib.parse import quote

from workshop_ops.config import Config
from workshop_ops.database.models import (
    InventoryItem,
    PurchaseQueueItem,
    Supplier,
)
from workshop_ops.database.repository import Repository
from workshop_ops.engine.ledger import InventoryLedger, StockMovement
from workshop_ops.errors import (
    InvalidQuantityError,
    InvalidTransitionError,
    NotFoundError,
)
from workshop_ops.utils.constants import (
    COLLECTION_INVENTORY,
    COLLECTION_PURCHASE_QUEUE,
    QueueStatus,
)
from workshop_ops.utils.dates import Clock, parse_iso, to_iso, utc_now
from workshop_ops.utils.formatters import format_quantity

logger = logging.getLogger(__name__)

REQUEUED = "requeued"
DELETED = "deleted"
MISSING = "missing"


@dataclass
class OrderEmail:
    subject: str
    body: str
    recipient: str = ""

    @property
    def mailto(self) -> str:
        return (
            f"mailto:{self.recipient}?subject={quote(self.subject)}"
            f"&body={quote(self.body)}"
        )


def recommended_quantity(source) -> int:
    """max(0, standard level - current stock) for an item or queue entry."""
    return max(0, (source.standard_stock_level or 0) - (source.current_stock or 0))


def describe_eta(expected_arrival, today: Optional[date] = None) -> str:
    """Human-readable arrival estimate for an in-transit order."""
    arrival = parse_iso(expected_arrival) if expected_arrival else None
    if arrival is None:
        return "N/A"
    today = today or utc_now().date()
    if isinstance(today, datetime):
        today = today.date()
    days = (arrival.date() - today).days
    if days < 0:
        return f"Overdue by {-days} day(s)"
    if days == 0:
        return "Arriving Today"
    if days == 1:
        return "Arriving Tomorrow"
    return f"Arriving in {days} days"


def _scheduled_after(scheduled_date, now: datetime) -> bool:
    """True when a job's schedule still lies ahead of ``now``.

    A date without a time covers the whole day, so work booked for today
    still counts.
    """
    try:
        scheduled = parse_iso(scheduled_date)
    except ValueError:
        logger.warning(f"Ignoring unreadable scheduled date {scheduled_date!r}")
        return False
    if scheduled is None:
        return False
    if isinstance(scheduled_date, str) and len(scheduled_date.strip()) == 10:
        return scheduled.date() >= now.date()
    return scheduled > now


class PurchaseQueueManager:
    """Creates, orders, receives and cancels replenishment requests."""

    def __init__(self, repo: Repository, ledger: InventoryLedger,
                 clock: Optional[Clock] = None):
        self.repo = repo
        self.ledger = ledger
        self.clock = clock or utc_now

    def _in_transaction(self, fn, *collections: str):
        result = self.repo.db.run_transaction(fn)
        self.repo.notify_changed(*collections)
        return result

    recommended_quantity = staticmethod(recommended_quantity)
    describe_eta = staticmethod(describe_eta)

    # ── Enqueue ─────────────────────────────────────────────────

    def enqueue(self, item: InventoryItem, conn=None) -> Optional[int]:
        """Queue a pending request snapshotting ``item``.

        Returns the new entry id, or None when the item already has a
        pending or ordered entry.
        """
        if conn is None:
            return self._in_transaction(
                lambda c: self.enqueue(item, c), COLLECTION_PURCHASE_QUEUE
            )

        entry = PurchaseQueueItem(
            item_id=item.id,
            item_name=item.name,
            item_code=item.item_code,
            category=item.category,
            current_stock=item.current_stock,
            reorder_level=item.reorder_level,
            standard_stock_level=item.standard_stock_level,
            price=item.price,
            unit=item.unit,
            supplier_id=item.supplier_id,
            status=QueueStatus.PENDING.value,
            queued_at=to_iso(self.clock()),
        )
        queue_id = self.repo.create_queue_item(entry, conn)
        if queue_id is None:
            logger.info(f"{item.name} (id {item.id}) is already queued")
            return None

        self.repo.log_activity(
            "queued", "purchase_queue", queue_id, item.name,
            details={
                "item_id": item.id,
                "current_stock": item.current_stock,
                "reorder_level": item.reorder_level,
            },
            created_at=entry.queued_at, conn=conn,
        )
        logger.info(
            f"Queued {item.name} (id {item.id}) at stock "
            f"{format_quantity(item.current_stock, item.reorder_level)}"
            f" against reorder level {item.reorder_level}"
        )
        return queue_id

    def enqueue_item(self, item_id: int) -> Optional[int]:
        """Manual "add to queue" by inventory id."""
        return self.enqueue(self.ledger.get_item(item_id))

    # ── Ordering ────────────────────────────────────────────────

    def mark_ordered(self, supplier_id: int, queue_ids: list[int],
                     quantity_overrides: Optional[dict] = None
                     ) -> list[PurchaseQueueItem]:
        """Mark a supplier group as ordered; all entries or none."""
        overrides = dict(quantity_overrides or {})
        for qid, qty in overrides.items():
            if qty is None:
                continue
            if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
                raise InvalidQuantityError(
                    f"Order quantity for entry {qid} must be a whole number "
                    f"of zero or more, got {qty!r}"
                )

        def _apply(conn) -> list[PurchaseQueueItem]:
            supplier = self.repo.get_supplier_by_id(supplier_id, conn)
            if supplier is None:
                raise NotFoundError("Supplier", supplier_id)

            now = self.clock()
            order_date = to_iso(now)
            arrival = to_iso(now + timedelta(days=supplier.estimated_eta_days or 0))

            ordered = []
            for qid in queue_ids:
                entry = self.repo.get_queue_item(qid, conn)
                if entry is None:
                    raise NotFoundError("Purchase queue entry", qid)
                if entry.status == QueueStatus.COMPLETED.value:
                    raise InvalidTransitionError(
                        f"Purchase queue entry {qid} was already received"
                    )
                live = self.repo.get_inventory_item(entry.item_id, conn=conn)
                qty = overrides.get(qid) or recommended_quantity(live or entry)
                self.repo.mark_queue_item_ordered(
                    qid, order_date, arrival, qty, supplier.id, supplier.name,
                    conn,
                )
                self.repo.log_activity(
                    "ordered", "purchase_queue", qid, entry.item_name,
                    details={"supplier": supplier.name, "quantity": qty},
                    created_at=order_date, conn=conn,
                )
                ordered.append(self.repo.get_queue_item(qid, conn))
            return ordered

        ordered = self._in_transaction(_apply, COLLECTION_PURCHASE_QUEUE)
        logger.info(
            f"Marked {len(ordered)} item(s) as ordered from supplier {supplier_id}"
        )
        return ordered

    # ── Receipt ─────────────────────────────────────────────────

    def receive(self, queue_id: int, quantity_received: int) -> StockMovement:
        """Book a delivery: increment stock and complete the entry atomically."""
        if (isinstance(quantity_received, bool)
                or not isinstance(quantity_received, int)
                or quantity_received <= 0):
            raise InvalidQuantityError(
                f"Received quantity must be greater than zero, "
                f"got {quantity_received!r}"
            )

        def _apply(conn) -> StockMovement:
            entry = self.repo.get_queue_item(queue_id, conn)
            if entry is None:
                raise NotFoundError("Purchase queue entry", queue_id)
            if entry.status == QueueStatus.COMPLETED.value:
                raise InvalidTransitionError(
                    f"Purchase queue entry {queue_id} was already received"
                )
            item = self.repo.get_inventory_item(entry.item_id, conn=conn)
            if item is None:
                raise NotFoundError("Inventory item", entry.item_id)

            movement = self.ledger.increment(
                item.id, item.category, quantity_received, conn=conn
            )
            received_at = to_iso(self.clock())
            self.repo.complete_queue_item(
                queue_id, quantity_received, received_at, conn
            )
            self.repo.log_activity(
                "received", "purchase_queue", queue_id, item.name,
                details={
                    "quantity": quantity_received,
                    "before": movement.before,
                    "after": movement.after,
                },
                created_at=received_at, conn=conn,
            )
            return movement

        movement = self._in_transaction(
            _apply, COLLECTION_PURCHASE_QUEUE, COLLECTION_INVENTORY
        )
        logger.info(
            f"Received {quantity_received} of item {movement.item_id}: "
            f"{movement.before} -> {movement.after}"
        )
        return movement

    # ── Cancellation ────────────────────────────────────────────

    def requeue_or_cancel(self, queue_id: int) -> str:
        """Cancel an order: back to pending if still short, else delete.

        Returns ``"requeued"``, ``"deleted"``, or ``"missing"`` when the
        entry no longer exists.
        """
        def _apply(conn) -> str:
            entry = self.repo.get_queue_item(queue_id, conn)
            if entry is None:
                return MISSING

            item = self.repo.get_inventory_item(entry.item_id, conn=conn)
            if item is not None and item.current_stock < item.reorder_level:
                active = self.repo.get_active_queue_item(item.id, conn)
                if active is None or active.id == queue_id:
                    self.repo.reset_queue_item(queue_id, conn)
                    self.repo.log_activity(
                        "requeued", "purchase_queue", queue_id,
                        entry.item_name,
                        details={"current_stock": item.current_stock},
                        created_at=to_iso(self.clock()), conn=conn,
                    )
                    return REQUEUED

            self.repo.delete_queue_item(queue_id, conn)
            self.repo.log_activity(
                "dequeued", "purchase_queue", queue_id, entry.item_name,
                details={"item_exists": item is not None},
                created_at=to_iso(self.clock()), conn=conn,
            )
            return DELETED

        outcome = self._in_transaction(_apply, COLLECTION_PURCHASE_QUEUE)
        logger.info(f"Purchase queue entry {queue_id}: {outcome}")
        return outcome

    # ── Views ───────────────────────────────────────────────────

    def get_pending(self) -> list[PurchaseQueueItem]:
        return self.repo.get_queue_items(QueueStatus.PENDING.value)

    def get_in_transit(self) -> list[PurchaseQueueItem]:
        return self.repo.get_queue_items(QueueStatus.ORDERED.value)

    def group_by_supplier(self, entries: list[PurchaseQueueItem]
                          ) -> dict[Optional[int], list[PurchaseQueueItem]]:
        """Group selected entries by their item's supplier (None = unassigned)."""
        groups: dict[Optional[int], list[PurchaseQueueItem]] = defaultdict(list)
        for entry in entries:
            groups[entry.supplier_id].append(entry)
        return dict(groups)

    def build_order_email(self, supplier: Supplier,
                          entries: list[PurchaseQueueItem],
                          quantity_overrides: Optional[dict] = None
                          ) -> OrderEmail:
        """Compose the purchase order email for one supplier."""
        overrides = quantity_overrides or {}
        lines = []
        for entry in entries:
            qty = overrides.get(entry.id) or recommended_quantity(entry)
            if qty <= 0:
                continue
            lines.append(
                f"- {entry.item_name} (Code: {entry.item_code or 'N/A'}) "
                f"--- Qty: {qty}"
            )

        company = Config.COMPANY_NAME
        body = f"Hi {supplier.greeting_name},\n\nPlease supply the following items:\n\n"
        if lines:
            body += "--- For Stock ---\n" + "\n".join(lines) + "\n\n"
        body += f"Thank you,\n{company}"
        return OrderEmail(
            subject=f"Purchase Order - {company} - {supplier.name}",
            body=body,
            recipient=supplier.email or "",
        )

    # ── Demand forecasting ──────────────────────────────────────

    def forecast_demand(self, now: Optional[datetime] = None) -> list[int]:
        """Queue items whose scheduled job demand would take them below reorder.

        Sums consumable quantities of every job scheduled after ``now`` per
        stocked item. An item not already queued whose projected stock
        (current minus scheduled demand) is below its reorder level gets a
        pending entry. Returns the ids of the entries created.
        """
        now = parse_iso(now or self.clock())

        def _apply(conn) -> list[int]:
            demand: dict[int, int] = defaultdict(int)
            for job in self.repo.get_scheduled_job_cards(conn=conn):
                if not _scheduled_after(job.scheduled_date, now):
                    continue
                for consumable in job.consumable_list:
                    item_id = consumable.inventory_id
                    if item_id is not None and consumable.quantity:
                        demand[item_id] += int(consumable.quantity)

            created = []
            for item_id, required in demand.items():
                item = self.repo.get_inventory_item(item_id, conn=conn)
                if item is None:
                    continue
                if self.repo.get_active_queue_item(item_id, conn) is not None:
                    continue
                projected = item.current_stock - required
                if projected < item.reorder_level:
                    queue_id = self.enqueue(item, conn)
                    if queue_id is not None:
                        created.append(queue_id)
            return created

        created = self._in_transaction(_apply, COLLECTION_PURCHASE_QUEUE)
        logger.info(f"Demand forecast queued {len(created)} item(s)")
        return created

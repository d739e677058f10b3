"""Repository layer: all CRUD operations and queries."""

import json
import logging
from contextlib import contextmanager
from typing import Optional

from workshop_ops.config import Config
from workshop_ops.utils.constants import (
    COLLECTION_ACTIVITY,
    COLLECTION_EMPLOYEES,
    COLLECTION_INVENTORY,
    COLLECTION_JOB_CARDS,
    COLLECTION_PURCHASE_QUEUE,
    COLLECTION_SUPPLIERS,
    QueueStatus,
)
from workshop_ops.utils.dates import to_iso, utc_now

from .connection import DatabaseConnection
from .models import (
    ActivityLogEntry,
    Department,
    Employee,
    InventoryItem,
    JobCard,
    PurchaseQueueItem,
    Supplier,
    row_to,
)

logger = logging.getLogger(__name__)


class Repository:
    """Provides all database operations for the application.

    Mutating methods accept an optional ``conn`` so the engines can compose
    several of them inside one transaction. Without ``conn`` each call
    commits on its own and notifies subscribers straight away; with
    ``conn`` the caller notifies after its transaction commits.
    """

    def __init__(self, db: DatabaseConnection, hub=None):
        self.db = db
        self.hub = hub

    # ── Change notification ─────────────────────────────────────

    def notify_changed(self, *collections: str):
        """Tell live subscribers that committed data changed."""
        if self.hub is None:
            return
        for collection in dict.fromkeys(collections):
            self.hub.publish(collection)

    @contextmanager
    def _writing(self, conn, *collections: str):
        # Joined transactions notify after their own commit
        with self.db.reuse_or_connect(conn) as c:
            yield c
        if conn is None:
            self.notify_changed(*collections)

    def _query(self, sql: str, params: tuple = (), conn=None):
        if conn is not None:
            return conn.execute(sql, params).fetchall()
        return self.db.execute(sql, params)

    # ── Departments ─────────────────────────────────────────────

    def create_department(self, department: Department) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO departments (name, description) VALUES (?, ?)",
                (department.name, department.description),
            )
            return cursor.lastrowid

    def get_all_departments(self) -> list[Department]:
        rows = self.db.execute("SELECT * FROM departments ORDER BY name")
        return [Department(**dict(r)) for r in rows]

    def get_department_by_id(self, department_id: int) -> Optional[Department]:
        rows = self.db.execute(
            "SELECT * FROM departments WHERE id = ?", (department_id,)
        )
        return Department(**dict(rows[0])) if rows else None

    # ── Employees ───────────────────────────────────────────────

    def create_employee(self, employee: Employee) -> int:
        with self._writing(None, COLLECTION_EMPLOYEES) as conn:
            cursor = conn.execute(
                "INSERT INTO employees (name, department_id, hourly_rate, "
                "is_active) VALUES (?, ?, ?, ?)",
                (employee.name, employee.department_id,
                 employee.hourly_rate, employee.is_active),
            )
            return cursor.lastrowid

    def get_employee_by_id(self, employee_id: int,
                           conn=None) -> Optional[Employee]:
        rows = self._query(
            "SELECT * FROM employees WHERE id = ?", (employee_id,), conn
        )
        return Employee(**dict(rows[0])) if rows else None

    def get_all_employees(self, active_only: bool = True) -> list[Employee]:
        if active_only:
            rows = self.db.execute(
                "SELECT * FROM employees WHERE is_active = 1 ORDER BY name"
            )
        else:
            rows = self.db.execute("SELECT * FROM employees ORDER BY name")
        return [Employee(**dict(r)) for r in rows]

    def update_employee(self, employee: Employee):
        with self._writing(None, COLLECTION_EMPLOYEES) as conn:
            conn.execute(
                "UPDATE employees SET name = ?, department_id = ?, "
                "hourly_rate = ?, is_active = ? WHERE id = ?",
                (employee.name, employee.department_id,
                 employee.hourly_rate, employee.is_active, employee.id),
            )

    def deactivate_employee(self, employee_id: int):
        with self._writing(None, COLLECTION_EMPLOYEES) as conn:
            conn.execute(
                "UPDATE employees SET is_active = 0 WHERE id = ?",
                (employee_id,),
            )

    # ── Suppliers ───────────────────────────────────────────────

    def create_supplier(self, supplier: Supplier) -> int:
        with self._writing(None, COLLECTION_SUPPLIERS) as conn:
            cursor = conn.execute("""
                INSERT INTO suppliers
                    (name, contact_person, email, phone,
                     estimated_eta_days, min_order_amount, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                supplier.name, supplier.contact_person, supplier.email,
                supplier.phone, supplier.estimated_eta_days or 0,
                supplier.min_order_amount, supplier.is_active,
            ))
            return cursor.lastrowid

    def get_supplier_by_id(self, supplier_id: int,
                           conn=None) -> Optional[Supplier]:
        rows = self._query(
            "SELECT * FROM suppliers WHERE id = ?", (supplier_id,), conn
        )
        return Supplier(**dict(rows[0])) if rows else None

    def get_all_suppliers(self, active_only: bool = False) -> list[Supplier]:
        sql = "SELECT * FROM suppliers"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.db.execute(sql + " ORDER BY name")
        return [Supplier(**dict(r)) for r in rows]

    def update_supplier(self, supplier: Supplier):
        with self._writing(None, COLLECTION_SUPPLIERS) as conn:
            conn.execute("""
                UPDATE suppliers SET
                    name = ?, contact_person = ?, email = ?, phone = ?,
                    estimated_eta_days = ?, min_order_amount = ?,
                    is_active = ?
                WHERE id = ?
            """, (
                supplier.name, supplier.contact_person, supplier.email,
                supplier.phone, supplier.estimated_eta_days or 0,
                supplier.min_order_amount, supplier.is_active, supplier.id,
            ))

    def delete_supplier(self, supplier_id: int):
        with self._writing(None, COLLECTION_SUPPLIERS,
                           COLLECTION_INVENTORY) as conn:
            conn.execute("DELETE FROM suppliers WHERE id = ?", (supplier_id,))

    # ── Inventory items ─────────────────────────────────────────

    def create_inventory_item(self, item: InventoryItem, conn=None) -> int:
        with self._writing(conn, COLLECTION_INVENTORY) as c:
            cursor = c.execute("""
                INSERT INTO inventory_items
                    (item_code, name, category, unit, current_stock,
                     reorder_level, standard_stock_level, price,
                     supplier_id, unit_weight, tare_weight)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                item.item_code, item.name, item.category, item.unit,
                item.current_stock, item.reorder_level,
                item.standard_stock_level, item.price, item.supplier_id,
                item.unit_weight, item.tare_weight,
            ))
            return cursor.lastrowid

    def get_inventory_item(self, item_id: int, category: Optional[str] = None,
                           conn=None) -> Optional[InventoryItem]:
        """Fetch an item, optionally scoped to one category."""
        if category is None:
            rows = self._query(
                "SELECT * FROM inventory_items WHERE id = ?", (item_id,), conn
            )
        else:
            rows = self._query(
                "SELECT * FROM inventory_items WHERE id = ? AND category = ?",
                (item_id, category), conn,
            )
        return row_to(InventoryItem, rows[0]) if rows else None

    def get_inventory_item_by_code(self, item_code: str,
                                   category: Optional[str] = None,
                                   conn=None) -> Optional[InventoryItem]:
        sql = "SELECT * FROM inventory_items WHERE item_code = ?"
        params: list = [item_code]
        if category is not None:
            sql += " AND category = ?"
            params.append(category)
        rows = self._query(sql, tuple(params), conn)
        return row_to(InventoryItem, rows[0]) if rows else None

    def get_all_inventory_items(self, category: Optional[str] = None,
                                conn=None) -> list[InventoryItem]:
        if category is None:
            rows = self._query(
                "SELECT * FROM inventory_items ORDER BY category, name",
                conn=conn,
            )
        else:
            rows = self._query(
                "SELECT * FROM inventory_items WHERE category = ? "
                "ORDER BY name",
                (category,), conn,
            )
        return [row_to(InventoryItem, r) for r in rows]

    def get_low_stock_items(self, category: Optional[str] = None
                            ) -> list[InventoryItem]:
        """Items with a reorder level that are below it."""
        sql = (
            "SELECT * FROM inventory_items "
            "WHERE reorder_level > 0 AND current_stock < reorder_level"
        )
        params: tuple = ()
        if category is not None:
            sql += " AND category = ?"
            params = (category,)
        rows = self.db.execute(sql + " ORDER BY name", params)
        return [row_to(InventoryItem, r) for r in rows]

    def update_inventory_item(self, item: InventoryItem, conn=None):
        with self._writing(conn, COLLECTION_INVENTORY) as c:
            c.execute("""
                UPDATE inventory_items SET
                    item_code = ?, name = ?, category = ?, unit = ?,
                    current_stock = ?, reorder_level = ?,
                    standard_stock_level = ?, price = ?, supplier_id = ?,
                    unit_weight = ?, tare_weight = ?
                WHERE id = ?
            """, (
                item.item_code, item.name, item.category, item.unit,
                item.current_stock, item.reorder_level,
                item.standard_stock_level, item.price, item.supplier_id,
                item.unit_weight, item.tare_weight, item.id,
            ))

    def set_stock_level(self, item_id: int, category: str, new_stock: int,
                        conn=None) -> int:
        """Write an absolute stock level. Returns the affected row count."""
        with self._writing(conn, COLLECTION_INVENTORY) as c:
            cursor = c.execute(
                "UPDATE inventory_items SET current_stock = ? "
                "WHERE id = ? AND category = ?",
                (new_stock, item_id, category),
            )
            return cursor.rowcount

    def record_stock_count(self, item_id: int, count: int,
                           session_id: Optional[str], conn=None) -> int:
        with self._writing(conn, COLLECTION_INVENTORY) as c:
            cursor = c.execute(
                "UPDATE inventory_items SET current_stock = ?, "
                "last_counted_session = ? WHERE id = ?",
                (count, session_id, item_id),
            )
            return cursor.rowcount

    def delete_inventory_item(self, item_id: int,
                              category: Optional[str] = None) -> int:
        with self._writing(None, COLLECTION_INVENTORY,
                           COLLECTION_JOB_CARDS) as conn:
            if category is None:
                cursor = conn.execute(
                    "DELETE FROM inventory_items WHERE id = ?", (item_id,)
                )
            else:
                cursor = conn.execute(
                    "DELETE FROM inventory_items WHERE id = ? AND category = ?",
                    (item_id, category),
                )
            return cursor.rowcount

    # ── Job cards ───────────────────────────────────────────────

    def create_job_card(self, job: JobCard, conn=None) -> int:
        with self._writing(conn, COLLECTION_JOB_CARDS) as c:
            cursor = c.execute("""
                INSERT INTO job_cards
                    (job_code, part_id, part_name, department_id,
                     employee_id, status, quantity, estimated_time,
                     description, priority, scheduled_date,
                     processed_consumables)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                job.job_code, job.part_id, job.part_name, job.department_id,
                job.employee_id, job.status, job.quantity,
                job.estimated_time, job.description, job.priority,
                job.scheduled_date, job.processed_consumables,
            ))
            return cursor.lastrowid

    def get_job_card_by_id(self, job_id: int, conn=None) -> Optional[JobCard]:
        rows = self._query(
            "SELECT * FROM job_cards WHERE id = ?", (job_id,), conn
        )
        return row_to(JobCard, rows[0]) if rows else None

    def get_job_card_by_code(self, job_code: str,
                             conn=None) -> Optional[JobCard]:
        rows = self._query(
            "SELECT * FROM job_cards WHERE job_code = ?", (job_code,), conn
        )
        return row_to(JobCard, rows[0]) if rows else None

    def get_all_job_cards(self, status: Optional[str] = None) -> list[JobCard]:
        if status and status != "all":
            rows = self.db.execute(
                "SELECT * FROM job_cards WHERE status = ? "
                "ORDER BY priority ASC, id ASC",
                (status,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM job_cards ORDER BY priority ASC, id ASC"
            )
        return [row_to(JobCard, r) for r in rows]

    def get_scheduled_job_cards(self, after: Optional[str] = None,
                                conn=None) -> list[JobCard]:
        """Job cards with a scheduled date, optionally only those after ``after``.

        ``after`` is compared as text, so it must use the same ISO form as
        the stored dates.
        """
        sql = "SELECT * FROM job_cards WHERE scheduled_date IS NOT NULL"
        params: tuple = ()
        if after is not None:
            sql += " AND scheduled_date > ?"
            params = (after,)
        rows = self._query(sql + " ORDER BY scheduled_date", params, conn)
        return [row_to(JobCard, r) for r in rows]

    def update_job_card(self, job: JobCard, conn=None):
        """Write every mutable job card field except the pause accumulator."""
        with self._writing(conn, COLLECTION_JOB_CARDS) as c:
            c.execute("""
                UPDATE job_cards SET
                    part_id = ?, part_name = ?, department_id = ?,
                    employee_id = ?, status = ?, quantity = ?,
                    estimated_time = ?, description = ?, priority = ?,
                    scheduled_date = ?, started_at = ?, paused_at = ?,
                    completed_at = ?, processed_consumables = ?,
                    material_cost = ?, labor_cost = ?, total_cost = ?,
                    issue_reason = ?
                WHERE id = ?
            """, (
                job.part_id, job.part_name, job.department_id,
                job.employee_id, job.status, job.quantity,
                job.estimated_time, job.description, job.priority,
                job.scheduled_date, job.started_at, job.paused_at,
                job.completed_at, job.processed_consumables,
                job.material_cost, job.labor_cost, job.total_cost,
                job.issue_reason, job.id,
            ))

    def add_paused_milliseconds(self, job_id: int, milliseconds: int,
                                conn=None):
        """Atomically grow the pause accumulator; it never shrinks."""
        with self._writing(conn, COLLECTION_JOB_CARDS) as c:
            c.execute(
                "UPDATE job_cards SET total_paused_milliseconds = "
                "total_paused_milliseconds + ? WHERE id = ?",
                (max(0, int(milliseconds)), job_id),
            )

    def update_job_priorities(self, ordered_job_ids: list[int]):
        """Batch write: each job's priority becomes its list position."""
        with self._writing(None, COLLECTION_JOB_CARDS) as conn:
            conn.executemany(
                "UPDATE job_cards SET priority = ? WHERE id = ?",
                [(index, job_id) for index, job_id in enumerate(ordered_job_ids)],
            )

    def generate_job_code(self, year: Optional[int] = None, conn=None) -> str:
        """Generate next sequential job code like JOB-2026-001."""
        prefix = Config.JOB_CODE_PREFIX
        year = year or utc_now().year
        rows = self._query(
            "SELECT COUNT(*) as cnt FROM job_cards WHERE job_code LIKE ?",
            (f"{prefix}-{year}-%",), conn,
        )
        count = rows[0]["cnt"] + 1 if rows else 1
        code = f"{prefix}-{year}-{count:03d}"
        while self.get_job_card_by_code(code, conn) is not None:
            count += 1
            code = f"{prefix}-{year}-{count:03d}"
        return code

    # ── Purchase queue ──────────────────────────────────────────

    def create_queue_item(self, entry: PurchaseQueueItem,
                          conn=None) -> Optional[int]:
        """Insert a pending entry; None when the item already has an active one."""
        with self._writing(conn, COLLECTION_PURCHASE_QUEUE) as c:
            cursor = c.execute("""
                INSERT INTO purchase_queue
                    (item_id, item_name, item_code, category, current_stock,
                     reorder_level, standard_stock_level, price, unit,
                     supplier_id, status, queued_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT DO NOTHING
            """, (
                entry.item_id, entry.item_name, entry.item_code,
                entry.category, entry.current_stock, entry.reorder_level,
                entry.standard_stock_level, entry.price, entry.unit,
                entry.supplier_id, entry.status, entry.queued_at,
            ))
            return cursor.lastrowid if cursor.rowcount else None

    def get_queue_item(self, queue_id: int,
                       conn=None) -> Optional[PurchaseQueueItem]:
        rows = self._query(
            "SELECT * FROM purchase_queue WHERE id = ?", (queue_id,), conn
        )
        return row_to(PurchaseQueueItem, rows[0]) if rows else None

    def get_queue_items(self, status: Optional[str] = None,
                        conn=None) -> list[PurchaseQueueItem]:
        if status:
            rows = self._query(
                "SELECT * FROM purchase_queue WHERE status = ? "
                "ORDER BY queued_at, id",
                (status,), conn,
            )
        else:
            rows = self._query(
                "SELECT * FROM purchase_queue ORDER BY queued_at, id",
                conn=conn,
            )
        return [row_to(PurchaseQueueItem, r) for r in rows]

    def get_active_queue_item(self, item_id: int,
                              conn=None) -> Optional[PurchaseQueueItem]:
        """The pending or ordered entry for an inventory item, if any."""
        rows = self._query(
            "SELECT * FROM purchase_queue WHERE item_id = ? "
            "AND status IN (?, ?)",
            (item_id, QueueStatus.PENDING.value, QueueStatus.ORDERED.value),
            conn,
        )
        return row_to(PurchaseQueueItem, rows[0]) if rows else None

    def mark_queue_item_ordered(
        self, queue_id: int, order_date: str, expected_arrival_date: str,
        ordered_qty: int, supplier_id: int, supplier_name: str, conn=None,
    ):
        with self._writing(conn, COLLECTION_PURCHASE_QUEUE) as c:
            c.execute("""
                UPDATE purchase_queue SET
                    status = ?, order_date = ?, expected_arrival_date = ?,
                    ordered_qty = ?, ordered_from_supplier_id = ?,
                    ordered_from_supplier_name = ?
                WHERE id = ?
            """, (
                QueueStatus.ORDERED.value, order_date, expected_arrival_date,
                ordered_qty, supplier_id, supplier_name, queue_id,
            ))

    def complete_queue_item(self, queue_id: int, received_qty: int,
                            received_at: str, conn=None):
        with self._writing(conn, COLLECTION_PURCHASE_QUEUE) as c:
            c.execute(
                "UPDATE purchase_queue SET status = ?, received_qty = ?, "
                "received_at = ? WHERE id = ?",
                (QueueStatus.COMPLETED.value, received_qty, received_at,
                 queue_id),
            )

    def reset_queue_item(self, queue_id: int, conn=None):
        """Put an entry back to pending and clear its order fields."""
        with self._writing(conn, COLLECTION_PURCHASE_QUEUE) as c:
            c.execute("""
                UPDATE purchase_queue SET
                    status = ?, order_date = NULL,
                    expected_arrival_date = NULL, ordered_qty = NULL,
                    ordered_from_supplier_id = NULL,
                    ordered_from_supplier_name = NULL,
                    received_qty = NULL, received_at = NULL
                WHERE id = ?
            """, (QueueStatus.PENDING.value, queue_id))

    def delete_queue_item(self, queue_id: int, conn=None) -> int:
        with self._writing(conn, COLLECTION_PURCHASE_QUEUE) as c:
            cursor = c.execute(
                "DELETE FROM purchase_queue WHERE id = ?", (queue_id,)
            )
            return cursor.rowcount

    # ── Activity log ────────────────────────────────────────────

    def log_activity(
        self, action: str, entity_type: str,
        entity_id: int | None = None, entity_label: str = "",
        actor_id: int | None = None, details: dict | None = None,
        created_at: str | None = None, conn=None,
    ) -> int:
        """Record an activity log entry.

        Args:
            action: Verb, e.g. 'status_changed', 'qc_approved', 'queued',
                    'ordered', 'received', 'requeued', 'dequeued'.
            entity_type: 'job_card', 'inventory_item' or 'purchase_queue'.
            entity_id: Primary key of the affected entity.
            entity_label: Human-readable label, e.g. "JOB-2026-004".
            actor_id: Employee who triggered it (None for system actions).
            details: Extra context, stored as JSON.

        Returns:
            The id of the created log entry.
        """
        with self._writing(conn, COLLECTION_ACTIVITY) as c:
            cursor = c.execute(
                "INSERT INTO activity_log "
                "(action, entity_type, entity_id, entity_label, actor_id, "
                "details, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (action, entity_type, entity_id, entity_label, actor_id,
                 json.dumps(details or {}), created_at or to_iso(utc_now())),
            )
            return cursor.lastrowid

    def get_activity_log(
        self, entity_type: str | None = None,
        entity_id: int | None = None,
        action: str | None = None,
        limit: int = 50,
    ) -> list[ActivityLogEntry]:
        """Retrieve activity log entries, newest first."""
        clauses = []
        params: list = []
        if entity_type:
            clauses.append("entity_type = ?")
            params.append(entity_type)
        if entity_id is not None:
            clauses.append("entity_id = ?")
            params.append(entity_id)
        if action:
            clauses.append("action = ?")
            params.append(action)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = self.db.execute(
            f"SELECT * FROM activity_log{where} ORDER BY id DESC LIMIT ?",
            tuple(params),
        )
        return [ActivityLogEntry(**dict(r)) for r in rows]

    # ── Live listeners ──────────────────────────────────────────

    def _require_hub(self):
        if self.hub is None:
            raise RuntimeError("Repository has no subscription hub")
        return self.hub

    def listen_to_job_cards(self, callback, status: Optional[str] = None,
                            on_error=None):
        """Push the job card list (optionally one status) on every change."""
        hub = self._require_hub()
        return hub.subscribe(
            COLLECTION_JOB_CARDS,
            lambda: self.get_all_job_cards(status),
            callback,
            on_error=on_error,
        )

    def listen_to_purchase_queue(self, callback, status: Optional[str] = None,
                                 on_error=None):
        """Push the purchase queue (optionally one status) on every change."""
        hub = self._require_hub()
        return hub.subscribe(
            COLLECTION_PURCHASE_QUEUE,
            lambda: self.get_queue_items(status),
            callback,
            on_error=on_error,
        )

"""Database schema definition and initialization."""

import sqlite3

from workshop_ops.utils.constants import (
    INVENTORY_CATEGORIES,
    JOB_STATUSES,
    QUEUE_STATUSES,
)

SCHEMA_VERSION = 1


def _sql_list(values: list[str]) -> str:
    return ", ".join(f"'{v}'" for v in values)


# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Departments table
    """CREATE TABLE IF NOT EXISTS departments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        description TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Employees table (hourly_rate NULL means no defined rate)
    """CREATE TABLE IF NOT EXISTS employees (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        department_id INTEGER,
        hourly_rate REAL CHECK (hourly_rate IS NULL OR hourly_rate >= 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (department_id)
            REFERENCES departments(id) ON DELETE SET NULL
    )""",

    # Suppliers table
    """CREATE TABLE IF NOT EXISTS suppliers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        contact_person TEXT DEFAULT '',
        email TEXT DEFAULT '',
        phone TEXT DEFAULT '',
        estimated_eta_days INTEGER NOT NULL DEFAULT 0
            CHECK (estimated_eta_days >= 0),
        min_order_amount REAL NOT NULL DEFAULT 0.0
            CHECK (min_order_amount >= 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Inventory items (all four categories share one id space)
    f"""CREATE TABLE IF NOT EXISTS inventory_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_code TEXT NOT NULL DEFAULT '',
        name TEXT NOT NULL,
        category TEXT NOT NULL
            CHECK (category IN ({_sql_list(INVENTORY_CATEGORIES)})),
        unit TEXT NOT NULL DEFAULT 'ea',
        current_stock INTEGER NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
        reorder_level INTEGER NOT NULL DEFAULT 0 CHECK (reorder_level >= 0),
        standard_stock_level INTEGER NOT NULL DEFAULT 0
            CHECK (standard_stock_level >= 0),
        price REAL NOT NULL DEFAULT 0.0 CHECK (price >= 0),
        supplier_id INTEGER,
        unit_weight REAL NOT NULL DEFAULT 0.0,
        tare_weight REAL NOT NULL DEFAULT 0.0,
        last_counted_session TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (supplier_id) REFERENCES suppliers(id) ON DELETE SET NULL
    )""",

    # Job cards
    f"""CREATE TABLE IF NOT EXISTS job_cards (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_code TEXT NOT NULL UNIQUE,
        part_id INTEGER,
        part_name TEXT NOT NULL,
        department_id INTEGER,
        employee_id INTEGER,
        status TEXT NOT NULL DEFAULT 'Pending'
            CHECK (status IN ({_sql_list(JOB_STATUSES)})),
        quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity > 0),
        estimated_time INTEGER NOT NULL DEFAULT 0,
        description TEXT DEFAULT '',
        priority INTEGER NOT NULL DEFAULT 0,
        scheduled_date TEXT,
        started_at TEXT,
        paused_at TEXT,
        completed_at TEXT,
        total_paused_milliseconds INTEGER NOT NULL DEFAULT 0
            CHECK (total_paused_milliseconds >= 0),
        processed_consumables TEXT NOT NULL DEFAULT '[]',
        material_cost REAL,
        labor_cost REAL,
        total_cost REAL,
        issue_reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (part_id)
            REFERENCES inventory_items(id) ON DELETE SET NULL,
        FOREIGN KEY (department_id)
            REFERENCES departments(id) ON DELETE SET NULL,
        FOREIGN KEY (employee_id)
            REFERENCES employees(id) ON DELETE SET NULL
    )""",

    # Purchase queue (item_id has no FK: an entry may outlive its item)
    f"""CREATE TABLE IF NOT EXISTS purchase_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id INTEGER NOT NULL,
        item_name TEXT NOT NULL DEFAULT '',
        item_code TEXT NOT NULL DEFAULT '',
        category TEXT NOT NULL DEFAULT '',
        current_stock INTEGER NOT NULL DEFAULT 0,
        reorder_level INTEGER NOT NULL DEFAULT 0,
        standard_stock_level INTEGER NOT NULL DEFAULT 0,
        price REAL NOT NULL DEFAULT 0.0,
        unit TEXT NOT NULL DEFAULT 'ea',
        supplier_id INTEGER,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ({_sql_list(QUEUE_STATUSES)})),
        queued_at TEXT NOT NULL,
        order_date TEXT,
        expected_arrival_date TEXT,
        ordered_qty INTEGER,
        ordered_from_supplier_id INTEGER,
        ordered_from_supplier_name TEXT,
        received_qty INTEGER,
        received_at TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Activity log (scan events, settlements, queue movements)
    """CREATE TABLE IF NOT EXISTS activity_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id INTEGER,
        entity_label TEXT DEFAULT '',
        actor_id INTEGER,
        details TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    )""",

    # Schema version tracking
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_inventory_category ON inventory_items(category)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_inventory_code "
    "ON inventory_items(item_code) WHERE item_code <> ''",
    "CREATE INDEX IF NOT EXISTS idx_job_cards_status ON job_cards(status)",
    "CREATE INDEX IF NOT EXISTS idx_job_cards_scheduled ON job_cards(scheduled_date)",
    "CREATE INDEX IF NOT EXISTS idx_queue_status ON purchase_queue(status)",
    # At most one active request per inventory item
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_queue_active_item "
    "ON purchase_queue(item_id) WHERE status IN ('pending', 'ordered')",
    "CREATE INDEX IF NOT EXISTS idx_activity_entity "
    "ON activity_log(entity_type, entity_id)",

    # Triggers
    """CREATE TRIGGER IF NOT EXISTS update_employees_timestamp
    AFTER UPDATE ON employees
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE employees SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_suppliers_timestamp
    AFTER UPDATE ON suppliers
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE suppliers SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_inventory_items_timestamp
    AFTER UPDATE ON inventory_items
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE inventory_items SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_job_cards_timestamp
    AFTER UPDATE ON job_cards
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE job_cards SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_purchase_queue_timestamp
    AFTER UPDATE ON purchase_queue
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE purchase_queue SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    # Update schema version
    f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]


_SEED_DEPARTMENTS = [
    ("Fabrication", "Cutting, welding and assembly"),
    ("Finishing", "Sanding, coating and polishing"),
    ("Quality Control", "Inspection before release"),
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def initialize_database(db_connection):
    """Create all tables, indexes, triggers, and seed data.

    Safe to call on every start: statements are idempotent and seed rows
    are only inserted into a fresh database.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)

        for stmt in _SCHEMA_STATEMENTS:
            conn.execute(stmt)

        if version == 0:
            for name, desc in _SEED_DEPARTMENTS:
                conn.execute(
                    "INSERT OR IGNORE INTO departments (name, description) "
                    "VALUES (?, ?)",
                    (name, desc),
                )

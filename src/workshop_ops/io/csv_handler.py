"""CSV import and export for inventory items and job cards."""

import csv
import json
import sqlite3
from pathlib import Path

from workshop_ops.database.models import InventoryItem
from workshop_ops.engine.ledger import InventoryLedger
from workshop_ops.errors import WorkshopError
from workshop_ops.io.validators import validate_inventory_row
from workshop_ops.utils.constants import InventoryCategory

INVENTORY_CSV_COLUMNS = [
    "item_code", "name", "category", "unit", "current_stock",
    "reorder_level", "standard_stock_level", "price", "supplier_id",
]

# Persisted reporting names, kept bit-exact for downstream reports
JOB_CSV_COLUMNS = [
    "jobId", "partName", "status", "quantity", "estimatedTime",
    "startedAt", "pausedAt", "completedAt", "totalPausedMilliseconds",
    "materialCost", "laborCost", "totalCost", "issueReason",
    "processedConsumables",
]


def job_row(job) -> dict:
    """One export row for a job card, keyed by the reporting field names."""
    record = job.to_record()
    row = {col: record.get(col) for col in JOB_CSV_COLUMNS}
    row["processedConsumables"] = json.dumps(record["processedConsumables"])
    return row


def row_to_item(row: dict, existing: InventoryItem | None = None) -> InventoryItem:
    """Build an InventoryItem from a validated import row."""
    def as_int(key):
        return int(float(row.get(key) or 0))

    supplier = (str(row.get("supplier_id") or "")).strip()
    return InventoryItem(
        id=existing.id if existing else None,
        item_code=row["item_code"].strip(),
        name=row["name"].strip(),
        category=InventoryCategory.parse(row["category"]).value,
        unit=(row.get("unit") or "ea").strip() or "ea",
        current_stock=as_int("current_stock"),
        reorder_level=as_int("reorder_level"),
        standard_stock_level=as_int("standard_stock_level"),
        price=float(row.get("price") or 0),
        supplier_id=int(float(supplier)) if supplier else None,
    )


def import_rows(ledger: InventoryLedger, rows, update_existing: bool) -> dict:
    """Validate and apply (row_num, row) pairs. Returns a results dict."""
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}
    for row_num, row in rows:
        errors = validate_inventory_row(row, row_num)
        if errors:
            results["errors"].extend(errors)
            results["skipped"] += 1
            continue

        existing = ledger.find_by_code(row["item_code"].strip())
        item = row_to_item(row, existing)
        try:
            if existing and update_existing:
                ledger.update_item(item)
                results["updated"] += 1
            elif existing:
                results["skipped"] += 1
            else:
                ledger.add_item(item)
                results["imported"] += 1
        except (WorkshopError, ValueError, sqlite3.IntegrityError) as e:
            results["errors"].append(f"Row {row_num}: {e}")
            results["skipped"] += 1
    return results


def export_inventory_csv(repo, filepath: str | Path) -> int:
    """Export all inventory items to CSV. Returns the number of rows written."""
    items = repo.get_all_inventory_items()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=INVENTORY_CSV_COLUMNS)
        writer.writeheader()
        for item in items:
            writer.writerow({col: getattr(item, col) for col in INVENTORY_CSV_COLUMNS})
    return len(items)


def export_jobs_csv(repo, filepath: str | Path) -> int:
    """Export all job cards to CSV. Returns the number of rows written."""
    jobs = repo.get_all_job_cards()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=JOB_CSV_COLUMNS)
        writer.writeheader()
        for job in jobs:
            writer.writerow(job_row(job))
    return len(jobs)


def import_inventory_csv(
    ledger: InventoryLedger,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import inventory items from CSV. Returns results dict with counts and errors.

    Existing items are matched by item code. Updating an existing item
    never touches its stock level.
    """
    filepath = Path(filepath)
    try:
        with open(filepath, "r", encoding="utf-8", newline="") as f:
            rows = list(enumerate(csv.DictReader(f), start=2))
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        return {"imported": 0, "updated": 0, "skipped": 0,
                "errors": [f"File error: {e}"]}
    return import_rows(ledger, rows, update_existing)

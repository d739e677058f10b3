"""Excel (XLSX) import and export for inventory items and job cards."""

from pathlib import Path
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from workshop_ops.engine.ledger import InventoryLedger
from workshop_ops.io.csv_handler import (
    INVENTORY_CSV_COLUMNS,
    JOB_CSV_COLUMNS,
    import_rows,
    job_row,
)

INVENTORY_HEADERS = [
    "Item Code", "Name", "Category", "Unit", "Current Stock",
    "Reorder Level", "Standard Stock Level", "Price", "Supplier ID",
]

# Map common header variations onto inventory fields
_HEADER_MAP = {
    "code": "item_code",
    "item_#": "item_code",
    "item_number": "item_code",
    "stock": "current_stock",
    "qty": "current_stock",
    "quantity": "current_stock",
    "reorder": "reorder_level",
    "standard_level": "standard_stock_level",
    "supplier": "supplier_id",
}


def _autofit(ws):
    for col in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)


def export_inventory_excel(repo, filepath: str | Path) -> int:
    """Export all inventory items to an Excel workbook. Returns row count."""
    items = repo.get_all_inventory_items()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Inventory"
    ws.append(INVENTORY_HEADERS)
    for item in items:
        ws.append([getattr(item, col) for col in INVENTORY_CSV_COLUMNS])

    _autofit(ws)
    wb.save(filepath)
    return len(items)


def export_jobs_excel(repo, filepath: str | Path) -> int:
    """Export all job cards to an Excel workbook. Returns row count."""
    jobs = repo.get_all_job_cards()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Job Cards"
    ws.append(JOB_CSV_COLUMNS)
    for job in jobs:
        row = job_row(job)
        ws.append([row[col] for col in JOB_CSV_COLUMNS])

    _autofit(ws)
    wb.save(filepath)
    return len(jobs)


def import_inventory_excel(
    ledger: InventoryLedger,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import inventory items from the first sheet of a workbook. Returns results dict."""
    filepath = Path(filepath)
    try:
        wb = load_workbook(filepath, read_only=True)
    except (OSError, BadZipFile, InvalidFileException, KeyError, ValueError) as e:
        return {"imported": 0, "updated": 0, "skipped": 0,
                "errors": [f"File error: {e}"]}

    try:
        rows = list(wb.active.iter_rows(values_only=True))
    finally:
        wb.close()

    if not rows or all(v is None for v in rows[0]):
        return {"imported": 0, "updated": 0, "skipped": 0,
                "errors": ["Empty workbook"]}

    header = [
        str(h or "").strip().lower().replace(" ", "_").replace("#", "number")
        for h in rows[0]
    ]
    header = [_HEADER_MAP.get(h, h) for h in header]

    parsed = []
    for row_num, row_data in enumerate(rows[1:], start=2):
        if all(v is None for v in row_data):
            continue
        parsed.append((row_num, dict(zip(
            header, ["" if v is None else str(v) for v in row_data]
        ))))
    return import_rows(ledger, parsed, update_existing)

"""Validation rules for import data."""

from workshop_ops.errors import UnknownCategoryError
from workshop_ops.utils.constants import InventoryCategory

_NON_NEGATIVE_INT_FIELDS = ("current_stock", "reorder_level", "standard_stock_level")


def validate_inventory_row(row: dict, row_num: int) -> list[str]:
    """Validate a single row of inventory import data. Returns list of error strings."""
    errors = []

    code = (row.get("item_code") or "").strip()
    if not code:
        errors.append(f"Row {row_num}: item_code is required")
    elif len(code) > 50:
        errors.append(f"Row {row_num}: item_code exceeds 50 chars")

    name = (row.get("name") or "").strip()
    if not name:
        errors.append(f"Row {row_num}: name is required")

    category = (row.get("category") or "").strip()
    if not category:
        errors.append(f"Row {row_num}: category is required")
    else:
        try:
            InventoryCategory.parse(category)
        except UnknownCategoryError:
            errors.append(f"Row {row_num}: unknown category '{category}'")

    for field_name in _NON_NEGATIVE_INT_FIELDS:
        value = row.get(field_name, "")
        if value in ("", None):
            continue
        try:
            number = float(value)
            if number != int(number):
                raise ValueError
            if number < 0:
                errors.append(f"Row {row_num}: {field_name} cannot be negative")
        except (ValueError, TypeError, OverflowError):
            errors.append(f"Row {row_num}: {field_name} must be an integer")

    price = row.get("price", "")
    if price not in ("", None):
        try:
            p = float(price)
            if p < 0:
                errors.append(f"Row {row_num}: price cannot be negative")
        except (ValueError, TypeError):
            errors.append(f"Row {row_num}: price must be a number")

    return errors

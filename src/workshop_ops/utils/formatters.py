"""Formatting utilities for display values."""

from workshop_ops.config import Config


def format_currency(value: float | None) -> str:
    """Format a float in the configured currency, e.g. R1,234.50."""
    return f"{Config.CURRENCY_SYMBOL}{(value or 0):,.2f}"


def format_quantity(value: int, reorder_level: int = 0) -> str:
    """Format quantity, flagging stock below its reorder level."""
    if reorder_level > 0 and value < reorder_level:
        return f"{value} (LOW)"
    return str(value)

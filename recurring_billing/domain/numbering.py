"""
Invoice number parsing and formatting.

Invoice numbers are stored as plain integers; legacy invoices carry a
formatted string such as ``"INV-00042"``.  Only the trailing digit run is
significant.
"""

from __future__ import annotations

import re

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def parse_invoice_number(value: int | str | None) -> int | None:
    """Extract the numeric part of an invoice number, or None if absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _TRAILING_DIGITS.search(str(value).strip())
    return int(match.group(1)) if match else None


def next_number_after(value: int | str | None) -> int | None:
    """Number that follows ``value``; None when ``value`` cannot be parsed."""
    parsed = parse_invoice_number(value)
    return None if parsed is None else parsed + 1


def format_invoice_number(prefix: str, number: int, padding: int = 5) -> str:
    """``format_invoice_number("INV", 42)`` -> ``"INV-00042"``."""
    return f"{prefix}-{str(number).zfill(padding)}"

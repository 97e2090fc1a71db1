"""Brazilian-locale display helpers used by templates and the PDF export."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("0.01")


def format_currency(value) -> str:
    """Format ``value`` as Brazilian reais, e.g. ``R$ 1.234,56``."""

    try:
        amount = Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        amount = Decimal("0")
    amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    # Swap the separators of the en-US grouping: 1,234.56 -> 1.234,56
    text = f"{abs(amount):,.2f}".translate(str.maketrans(",.", ".,"))
    return f"{sign}R$ {text}"


def _as_date(value):
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return value


def format_date(value) -> str:
    """Return ``dd/mm/yyyy`` for a date, datetime or ISO string."""

    value = _as_date(value)
    if not isinstance(value, date):
        return ""
    return value.strftime("%d/%m/%Y")


def format_datetime(value) -> str:
    value = _as_date(value)
    if not isinstance(value, datetime):
        return format_date(value)
    return value.strftime("%d/%m/%Y %H:%M:%S")


def truncate_name(name, max_length: int = 20) -> str:
    """Shorten a label for chart axes and legends.

    Multi-word names longer than ``max_length`` collapse to their first word;
    anything still too long is cut and suffixed with ``...``.
    """

    if not name:
        return ""
    if " " in name and len(name) > max_length:
        first_word = name.split(" ")[0]
        if len(first_word) > max_length - 3:
            return f"{first_word[: max_length - 3]}..."
        return first_word
    if len(name) > max_length:
        return f"{name[: max_length - 3]}..."
    return name

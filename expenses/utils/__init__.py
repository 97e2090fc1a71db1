"""Utility functions for the expense tracker."""

from .activity import log_activity
from .formatting import format_currency, format_date, truncate_name

__all__ = [
    "log_activity",
    "format_currency",
    "format_date",
    "truncate_name",
]

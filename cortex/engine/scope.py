"""Scope key date math for Cortex.

Tasks are planned at a calendar granularity and addressed by a scope key:
day '2026-02-02', week '2026-W05' (ISO week), month '2026-02', year '2026'.
Postponement converts a key to the first day of its period, adds days, and
formats the result back at the same granularity.
"""

import re
from datetime import date, timedelta
from typing import Tuple

from cortex.errors import ValidationError
from cortex.models.task import TaskScope

_DAY_KEY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_WEEK_KEY = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")
_YEAR_KEY = re.compile(r"^(\d{4})$")


def get_scope_key(d: date, scope: TaskScope) -> str:
    """Format a date as the key of the period containing it."""
    if scope == TaskScope.DAY:
        return d.isoformat()
    if scope == TaskScope.WEEK:
        iso_year, iso_week, _ = d.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if scope == TaskScope.MONTH:
        return f"{d.year}-{d.month:02d}"
    if scope == TaskScope.YEAR:
        return f"{d.year}"
    raise ValidationError(f"Unknown scope: {scope}")


def scope_key_to_date(scope: TaskScope, scope_key: str) -> date:
    """Return the first day of the period a scope key names.

    Raises:
        ValidationError: if the key is malformed for the scope
    """
    try:
        if scope == TaskScope.DAY:
            match = _DAY_KEY.fullmatch(scope_key)
            if match:
                return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        elif scope == TaskScope.WEEK:
            match = _WEEK_KEY.fullmatch(scope_key)
            if match:
                return date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
        elif scope == TaskScope.MONTH:
            match = _MONTH_KEY.fullmatch(scope_key)
            if match:
                return date(int(match.group(1)), int(match.group(2)), 1)
        elif scope == TaskScope.YEAR:
            match = _YEAR_KEY.fullmatch(scope_key)
            if match:
                return date(int(match.group(1)), 1, 1)
    except ValueError:
        pass
    raise ValidationError(f"Malformed {scope} scope key: {scope_key!r}")


def shift_scope_key(scope: TaskScope, scope_key: str, days: int) -> Tuple[str, date]:
    """Move a scope key forward by `days`, keeping its granularity.

    Returns:
        (new scope key, date the key pointed at before the shift)
    """
    current = scope_key_to_date(scope, scope_key)
    return get_scope_key(current + timedelta(days=days), scope), current

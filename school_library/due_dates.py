from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import Any

from .errors import InvalidDuePeriod
from .models import DueUnit

logger = logging.getLogger(__name__)

FALLBACK_UNIT = DueUnit.HOURS
FALLBACK_VALUE = 24


def _add_months(start: datetime, months: int) -> datetime:
    """Calendar month addition; the day is clamped to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def compute_due_date(start: datetime, value: int, unit: Any) -> datetime:
    """Return the due instant for a loan starting at ``start``.

    ``unit`` may be a :class:`DueUnit` or its string name. A missing or
    unknown unit falls back to 24 hours whatever ``value`` says; that mirrors
    how loans have always been issued.

    TODO: reject unknown units at the API boundary once all importers send
    one of the five known names.
    """
    parsed = DueUnit.parse(unit)
    if parsed is None:
        logger.debug("Unknown due period unit %r, falling back to %s %s", unit, FALLBACK_VALUE, FALLBACK_UNIT.value)
        return start + timedelta(hours=FALLBACK_VALUE)

    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidDuePeriod(f"Due period value must be an integer >= 1, got {value!r}.", value=value)

    try:
        return _advance(start, value, parsed)
    except (OverflowError, ValueError) as exc:
        # past datetime.max
        raise InvalidDuePeriod(
            f"Due period of {value} {parsed.value} is out of range.", value=value, unit=parsed.value
        ) from exc


def _advance(start: datetime, value: int, unit: DueUnit) -> datetime:
    if unit is DueUnit.HOURS:
        return start + timedelta(hours=value)
    if unit is DueUnit.DAYS:
        return start + timedelta(days=value)
    if unit is DueUnit.WEEKS:
        return start + timedelta(days=value * 7)
    if unit is DueUnit.MONTHS:
        return _add_months(start, value)
    return _add_months(start, value * 12)

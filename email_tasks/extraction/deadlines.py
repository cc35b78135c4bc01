"""Best-effort parsing of free-text deadline hints into dates."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_IN_N_DAYS = re.compile(r"\bin\s+(\d{1,3})\s+days?\b")
_NEXT_WEEKDAY = re.compile(r"\bnext\s+(" + "|".join(_WEEKDAYS) + r")\b")
_WEEKDAY = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b")


def parse_due_date(text: str | None, reference: datetime) -> date | None:
    """Resolve a deadline hint like "by EOD Friday" relative to ``reference``.

    Returns ``None`` when nothing recognisable is found.
    """
    if not text:
        return None
    hint = text.lower()
    today = reference.date()

    iso = _ISO_DATE.search(hint)
    if iso:
        try:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except ValueError:
            return None

    if "tomorrow" in hint:
        return today + timedelta(days=1)

    in_days = _IN_N_DAYS.search(hint)
    if in_days:
        return today + timedelta(days=int(in_days.group(1)))

    next_weekday = _NEXT_WEEKDAY.search(hint)
    if next_weekday:
        target = _WEEKDAYS.index(next_weekday.group(1))
        return today + timedelta(days=(target - today.weekday()) % 7 or 7)

    weekday = _WEEKDAY.search(hint)
    if weekday:
        target = _WEEKDAYS.index(weekday.group(1))
        return today + timedelta(days=(target - today.weekday()) % 7)

    if "next week" in hint:
        return today + timedelta(days=7)

    if "end of week" in hint or re.search(r"\beow\b", hint):
        return today + timedelta(days=(4 - today.weekday()) % 7)

    if "today" in hint or "tonight" in hint or re.search(r"\beod\b", hint):
        return today

    return None

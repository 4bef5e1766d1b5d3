"""Period keys: ISO weeks (``YYYY-Www``) and single days (``YYYY-MM-DD``).

Weeks follow ISO-8601 numbering (Monday start, ISO year), so the key of
2024-12-30 is ``2025-W01``.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Literal

type PeriodKind = Literal["week", "day"]

_WEEK_KEY_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


@dataclass(frozen=True, slots=True)
class Period:
    kind: PeriodKind
    key: str
    start: dt.date
    end: dt.date

    def contains(self, day: dt.date) -> bool:
        return self.start <= day <= self.end


def week_key(day: dt.date) -> str:
    iso = day.isocalendar()
    return f"{iso.year}-W{iso.week:02d}"


def week_of(day: dt.date) -> Period:
    start = day - dt.timedelta(days=day.isoweekday() - 1)
    return Period(kind="week", key=week_key(day), start=start, end=start + dt.timedelta(days=6))


def day_of(day: dt.date) -> Period:
    return Period(kind="day", key=day.isoformat(), start=day, end=day)


def _parse_date_text(text: str) -> dt.date | None:
    m = _ISO_DATE_RE.match(text)
    if m:
        y, mo, d = (int(g) for g in m.groups())
        return dt.date(y, mo, d)
    m = _US_DATE_RE.match(text)
    if m:
        mo, d, y = (int(g) for g in m.groups())
        return dt.date(y, mo, d)
    return None


def parse_period(
    value: Period | dt.date | str | None,
    *,
    kind: PeriodKind = "week",
    today: dt.date | None = None,
) -> Period:
    """Resolve ``value`` into a :class:`Period` of the requested ``kind``.

    Accepted inputs:
    - ``None``: the period containing ``today`` (defaults to the local date)
    - a ``date``/``datetime``: the period containing it
    - a week key ``YYYY-Www`` (only for ``kind="week"``)
    - a date string ``YYYY-MM-DD`` or ``M/D/YYYY``

    Raises ``ValueError`` for anything else, including impossible dates and
    week numbers.
    """

    if isinstance(value, Period):
        return value

    make = week_of if kind == "week" else day_of
    if value is None:
        return make(today or dt.date.today())
    if isinstance(value, dt.datetime):
        return make(value.date())
    if isinstance(value, dt.date):
        return make(value)

    text = str(value).strip()
    m = _WEEK_KEY_RE.match(text)
    if m:
        if kind != "week":
            raise ValueError(f"Week key {text!r} cannot be used for a daily period")
        year, week = int(m.group(1)), int(m.group(2))
        try:
            monday = dt.date.fromisocalendar(year, week, 1)
        except ValueError as e:
            raise ValueError(f"Invalid ISO week key: {text!r}") from e
        return week_of(monday)

    try:
        day = _parse_date_text(text)
    except ValueError as e:
        raise ValueError(f"Invalid date: {text!r}") from e
    if day is None:
        raise ValueError(f"Unrecognized period: {text!r} (expected YYYY-Www or a date)")
    return make(day)


__all__ = ["Period", "PeriodKind", "day_of", "parse_period", "week_key", "week_of"]

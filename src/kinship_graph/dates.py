"""Genealogical date parsing with precision tags.

Person and relationship dates arrive as free text. They are normalized into
a FuzzyDate that keeps the original text and records how precise it is, so
comparisons can stay conservative about what is actually known.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class DatePrecision(str, Enum):
    """How much of a date is actually known."""
    EXACT = "exact"
    MONTH = "month"
    YEAR = "year"
    DECADE = "decade"
    ESTIMATED = "estimated"
    RANGE = "range"


class DateQualifier(str, Enum):
    """Wording that turns a date into an estimate or an open bound."""
    ABOUT = "about"
    BEFORE = "before"  # no lower bound
    AFTER = "after"  # no upper bound


class FuzzyDate(BaseModel):
    """A date with an explicit precision."""

    model_config = ConfigDict(frozen=True)

    raw: str
    precision: DatePrecision
    year: int
    month: int | None = None
    day: int | None = None
    end_year: int | None = None  # last year of a range or decade
    qualifier: DateQualifier | None = None

    @property
    def earliest_year(self) -> int | None:
        """First possible year, or None when the date is only an upper bound."""
        if self.qualifier == DateQualifier.BEFORE:
            return None
        return self.year

    @property
    def latest_year(self) -> int | None:
        """Last possible year, or None when the date is only a lower bound."""
        if self.qualifier == DateQualifier.AFTER:
            return None
        if self.end_year is not None:
            return self.end_year
        return self.year

    @property
    def is_approximate(self) -> bool:
        return self.precision in (DatePrecision.DECADE, DatePrecision.ESTIMATED, DatePrecision.RANGE)

    def __str__(self) -> str:
        return self.raw


_EXACT = re.compile(r"^(\d{1,4})-(\d{1,2})-(\d{1,2})$")
_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR = re.compile(r"^(\d{1,4})$")
_DECADE = re.compile(r"^(\d{3})0s$")
_RANGE = re.compile(r"^(\d{3,4})\s*(?:-|–|\.\.|to)\s*(\d{3,4})$", re.IGNORECASE)
_BETWEEN = re.compile(r"^bet(?:ween|\.)?\s+(\d{1,4})\s+(?:and|&)\s+(\d{1,4})$", re.IGNORECASE)
_ESTIMATE = re.compile(
    r"^(circa|ca\.?|c\.|about|abt\.?|estimated|est\.?|before|bef\.?|after|aft\.?|~)\s*(.+)$",
    re.IGNORECASE,
)
_BOUNDS = {
    "bef": DateQualifier.BEFORE,
    "before": DateQualifier.BEFORE,
    "aft": DateQualifier.AFTER,
    "after": DateQualifier.AFTER,
}


def _exact(raw: str, y: int, m: int, d: int) -> FuzzyDate:
    date(y, m, d)  # raises ValueError on impossible calendar dates
    return FuzzyDate(raw=raw, precision=DatePrecision.EXACT, year=y, month=m, day=d)


def _parse_core(raw: str, text: str) -> FuzzyDate:
    m = _EXACT.match(text)
    if m:
        return _exact(raw, int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _MONTH.match(text)
    if m:
        month = int(m.group(2))
        if not 1 <= month <= 12:
            raise ValueError(f"invalid month in date: {raw!r}")
        return FuzzyDate(raw=raw, precision=DatePrecision.MONTH, year=int(m.group(1)), month=month)

    m = _DECADE.match(text)
    if m:
        start = int(m.group(1)) * 10
        return FuzzyDate(raw=raw, precision=DatePrecision.DECADE, year=start, end_year=start + 9)

    m = _RANGE.match(text) or _BETWEEN.match(text)
    if m:
        start, end = int(m.group(1)), int(m.group(2))
        if end < start:
            raise ValueError(f"date range ends before it starts: {raw!r}")
        return FuzzyDate(raw=raw, precision=DatePrecision.RANGE, year=start, end_year=end)

    m = _YEAR.match(text)
    if m:
        return FuzzyDate(raw=raw, precision=DatePrecision.YEAR, year=int(m.group(1)))

    raise ValueError(f"unrecognized date: {raw!r}")


def parse_date(value: object) -> FuzzyDate:
    """Parse a record date value.

    Accepts strings, ints (bare years) and date objects, which YAML
    frontmatter produces for unquoted ISO dates.

    Raises:
        ValueError: if the value is not a recognizable date.
    """
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return FuzzyDate(
            raw=value.isoformat(),
            precision=DatePrecision.EXACT,
            year=value.year,
            month=value.month,
            day=value.day,
        )
    if isinstance(value, bool):
        raise ValueError(f"unrecognized date: {value!r}")
    if isinstance(value, int):
        return FuzzyDate(raw=str(value), precision=DatePrecision.YEAR, year=value)
    if not isinstance(value, str):
        raise ValueError(f"unrecognized date: {value!r}")

    raw = value.strip()
    if not raw:
        raise ValueError("empty date")

    m = _ESTIMATE.match(raw)
    if m:
        inner = _parse_core(raw, m.group(2).strip())
        qualifier = _BOUNDS.get(m.group(1).lower().rstrip("."), DateQualifier.ABOUT)
        return inner.model_copy(update={"precision": DatePrecision.ESTIMATED, "qualifier": qualifier})
    return _parse_core(raw, raw)

"""Period normalization for agency time-series identifiers.

Every source reports its observation period differently: SDMX uses
``2024-Q1`` and ``2024-03``, WEO uses bare years, FRED stamps each value with
a date. This module maps those strings onto one canonical pair, an ISO date
for the start of the period and a human-readable label:

    >>> normalize_period("2024-Q1")
    NormalizedPeriod(iso_date='2024-01-01', label='Q1 2024')
    >>> normalize_period("2024-03")
    NormalizedPeriod(iso_date='2024-03-01', label='Mar 2024')
    >>> normalize_period("2024")
    NormalizedPeriod(iso_date='2024-01-01', label='2024')

Unrecognized strings pass through unchanged (``iso_date == label == input``).
Downstream date validation decides whether such a point is usable.
"""

import re
from typing import NamedTuple

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

_QUARTER_RE = re.compile(r"^(\d{4})-Q([1-4])$")
_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
_YEAR_RE = re.compile(r"^(\d{4})$")
_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class NormalizedPeriod(NamedTuple):
    iso_date: str
    label: str


def normalize_period(period: str) -> NormalizedPeriod:
    """Map a source period string to ``(iso_date, label)``. Never raises."""
    match = _QUARTER_RE.match(period)
    if match:
        year, quarter = match.group(1), int(match.group(2))
        month = (quarter - 1) * 3 + 1
        return NormalizedPeriod(f"{year}-{month:02d}-01", f"Q{quarter} {year}")

    match = _MONTH_RE.match(period)
    if match:
        year, month = match.group(1), int(match.group(2))
        return NormalizedPeriod(
            f"{year}-{month:02d}-01", f"{MONTH_ABBREVIATIONS[month - 1]} {year}"
        )

    match = _YEAR_RE.match(period)
    if match:
        year = match.group(1)
        return NormalizedPeriod(f"{year}-01-01", year)

    return NormalizedPeriod(period, period)


def period_from_date(iso_date: str, frequency: str) -> NormalizedPeriod:
    """Derive the period for a date-stamped observation.

    Quarterly, monthly and annual series are routed through
    ``normalize_period`` so their labels match the SDMX-style sources.
    Daily and weekly series keep the date as the label; any other frequency
    is labelled as monthly.

    Args:
        iso_date: Observation date, ``YYYY-MM-DD``.
        frequency: Series frequency (``"Quarterly"``, ``"Monthly"``,
            ``"Annual"``, ``"Weekly"``, ``"Daily"``), case-insensitive.
    """
    match = _DATE_RE.match(iso_date)
    if not match:
        return NormalizedPeriod(iso_date, iso_date)

    year, month = match.group(1), int(match.group(2))
    freq = frequency.lower()
    if freq in ("daily", "weekly"):
        return NormalizedPeriod(iso_date, iso_date)
    if freq == "quarterly":
        normalized = normalize_period(f"{year}-Q{(month - 1) // 3 + 1}")
    elif freq == "annual":
        normalized = normalize_period(year)
    else:
        normalized = normalize_period(f"{year}-{month:02d}")

    # the observation keeps its own date; only the label is normalized
    return NormalizedPeriod(iso_date, normalized.label)

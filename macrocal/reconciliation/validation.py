"""Row-level validation of adapter output before reconciliation.

Each observation is tagged with a ``RowResult``; invalid ones are skipped and
counted rather than aborting the run. Checks mirror what every agency feed
can get wrong: empty or non-numeric values, malformed dates, and dates in the
future.
"""

from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Generic, TypeVar

from macrocal.ingestion.collectors.base_collector import DataPoint

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

MISSING_MARKERS = frozenset({"", "."})


@dataclass(frozen=True)
class RowResult(Generic[T]):
    """Outcome for one input row: either ``value`` or a non-empty ``errors``."""

    row: int
    value: T | None = None
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ObservationFilter:
    """Partition of observations into accepted points and tagged skips."""

    valid: tuple[DataPoint, ...]
    skipped: tuple[RowResult[DataPoint], ...]

    def skip_reasons(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for result in self.skipped:
            for reason in result.errors:
                key = reason.split(":", 1)[0]
                counts[key] = counts.get(key, 0) + 1
        return counts


def validate_value(value: str) -> str | None:
    """Return a skip reason for *value*, or ``None`` if it is usable."""
    if value.strip() in MISSING_MARKERS:
        return "Missing value"
    try:
        float(value)
    except ValueError:
        return f"Invalid numeric value: {value}"
    return None


def validate_date(iso_date: str, today: date | None = None) -> str | None:
    """Return a skip reason for *iso_date*, or ``None`` if it is usable."""
    try:
        parsed = datetime.strptime(iso_date, "%Y-%m-%d").date()
    except ValueError:
        return f"Invalid date format: {iso_date}"
    if parsed > (today or date.today()):
        return f"Future date not allowed: {iso_date}"
    return None


def validate_observation(point: DataPoint, index: int, today: date | None = None) -> RowResult[DataPoint]:
    errors = [
        reason
        for reason in (validate_date(point.iso_date, today), validate_value(point.value))
        if reason is not None
    ]
    return RowResult(row=index, value=point, errors=tuple(errors))


def filter_valid_observations(
    points: Sequence[DataPoint], today: date | None = None
) -> ObservationFilter:
    """Split *points* into valid observations and tagged skips."""
    valid: list[DataPoint] = []
    skipped: list[RowResult[DataPoint]] = []
    for index, point in enumerate(points):
        result = validate_observation(point, index, today)
        if result.ok:
            valid.append(point)
        else:
            skipped.append(result)
    return ObservationFilter(valid=tuple(valid), skipped=tuple(skipped))


def deduplicate(items: Iterable[T], key: Callable[[T], K]) -> tuple[list[T], int]:
    """Last-write-wins deduplication preserving first-seen key order.

    Returns:
        ``(unique_items, duplicate_count)``.
    """
    seen: dict[K, T] = {}
    duplicates = 0
    for item in items:
        k = key(item)
        if k in seen:
            duplicates += 1
        seen[k] = item
    return list(seen.values()), duplicates

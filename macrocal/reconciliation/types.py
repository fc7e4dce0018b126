"""Candidate records and result types exchanged with the reconciliation engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

MAX_REPORTED_ERRORS = 50


@dataclass(frozen=True)
class IndicatorCandidate:
    """An indicator as seen by one import. Natural key: (name, country_code)."""

    name: str
    country_code: str
    category: str | None = None
    source_name: str | None = None
    source_url: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.country_code)

    def to_row(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "country_code": self.country_code,
            "category": self.category,
            "source_name": self.source_name,
            "source_url": self.source_url,
        }


@dataclass(frozen=True)
class ReleaseCandidate:
    """A release referring to its indicator by natural key.

    The engine resolves ``indicator_key`` to an ``indicator_id`` once the
    indicator phase has completed.
    """

    indicator_key: tuple[str, str]
    release_at: datetime
    period: str
    actual: str | None = None
    forecast: str | None = None
    previous: str | None = None
    revised: str | None = None
    unit: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReconcileOutcome:
    indicators_inserted: int = 0
    indicators_updated: int = 0
    releases_inserted: int = 0
    releases_updated: int = 0
    revisions_recorded: int = 0
    duplicate_releases: int = 0
    indicator_ids: dict[tuple[str, str], int] = field(default_factory=dict)


@dataclass(frozen=True)
class ImportResult:
    """Summary of one import run.

    ``total_series`` counts series for single-country agencies and countries
    for the multi-country ones (IMF, World Bank).
    """

    total_indicators: int = 0
    total_series: int = 0
    successful_imports: int = 0
    failed_imports: int = 0
    total_observations: int = 0
    total_inserted: int = 0
    total_updated: int = 0
    total_skipped: int = 0
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.errors) > MAX_REPORTED_ERRORS:
            object.__setattr__(self, "errors", tuple(self.errors[:MAX_REPORTED_ERRORS]))

    def to_dict(self, series_key: str = "totalSeries") -> dict[str, Any]:
        """camelCase rendering for the HTTP surface.

        Multi-country imports pass ``series_key="totalCountries"``.
        """
        return {
            "totalIndicators": self.total_indicators,
            series_key: self.total_series,
            "successfulImports": self.successful_imports,
            "failedImports": self.failed_imports,
            "totalObservations": self.total_observations,
            "totalInserted": self.total_inserted,
            "totalUpdated": self.total_updated,
            "totalSkipped": self.total_skipped,
            "errors": list(self.errors),
        }

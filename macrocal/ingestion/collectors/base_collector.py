"""Abstract base class for all agency collectors.

A collector turns one statistical agency's API into canonical ``DataPoint``s:

- ``fetch_series(ids, date_range)`` performs the HTTP calls (with retry) and
  returns the validated raw response(s)
- ``to_data_points(raw)`` maps that raw payload through the period normalizer
- ``indicator_for`` / ``release_for`` turn a point into reconciliation
  candidates using the collector's static catalog

Bronze snapshots of adapter output follow the raw export contract:
``{output_dir}/{source}_{dataset}_{YYYYMMDD}.csv``.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd
import requests

from macrocal.ingestion.collectors.http_utils import create_session, request_with_retry, send_request
from macrocal.reconciliation.types import IndicatorCandidate, ReleaseCandidate
from macrocal.shared.config import Config, Settings
from macrocal.shared.errors import ValidationError
from macrocal.shared.utils import setup_logger


def format_number(value: float | int) -> str:
    """Render a numeric API value as the decimal string stored on releases."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class DataPoint:
    """One observation in canonical form. Transient, never persisted directly."""

    source_key: str
    indicator_name_hint: str
    iso_date: str
    value: str
    period_label: str
    country_code: str


@dataclass(frozen=True)
class SeriesConfig:
    """Immutable catalog entry for a series or indicator.

    ``country_code`` is ``None`` for multi-country agencies, where the
    country comes from each observation instead.
    """

    name: str
    category: str
    frequency: str
    country_code: str | None = None
    unit: str | None = None


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(f"Invalid date range: {self.start} is after {self.end}")

    @classmethod
    def from_years(cls, start_year: int, end_year: int | None = None) -> "DateRange":
        end = end_year or datetime.now().year
        return cls(date(start_year, 1, 1), date(end, 12, 31))


class BaseCollector(ABC):
    """Base class for all agency collectors.

    Subclasses must define:
        SOURCE_NAME (str): identifier used in file naming (e.g. "bls", "fred").
        SOURCE_LABEL (str): human-readable agency name stored on indicators.
        SOURCE_URL (str): agency home page.
        IMPORT_NOTE (str): note stamped on every imported release.
        CATALOG (Mapping[str, SeriesConfig]): static id -> metadata table.

    Subclasses must implement:
        fetch_series(): HTTP calls for a batch of ids.
        to_data_points(): raw payload -> canonical DataPoints.
        health_check(): verify the source is reachable.
    """

    SOURCE_NAME: str
    SOURCE_LABEL: str
    SOURCE_URL: str
    IMPORT_NOTE: str
    CATALOG: Mapping[str, SeriesConfig]

    MAX_IDS_PER_CALL = 50
    FETCH_CHUNK_SIZE = 1  # ids per fetch_series call issued by the orchestrator
    MULTI_COUNTRY = False
    DEFAULT_START_YEAR = 2014

    def __init__(
        self,
        settings: Settings | None = None,
        output_dir: Path | None = None,
        log_file: Path | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the collector.

        Args:
            settings: Runtime configuration snapshot (default: ``Config.settings()``).
            output_dir: Directory for Bronze CSV exports (created on first export).
            log_file: Optional path for file-based logging.
            session: Pre-built HTTP session (tests inject mocks here).
            sleep: Sleep function used for backoff and politeness delays.
        """
        self.settings = settings or Config.settings()
        self.output_dir = output_dir or self.settings.data_dir / "raw" / self.SOURCE_NAME
        self.logger = setup_logger(self.__class__.__name__, log_file, self.settings.log_level)
        self._session = session or create_session()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def fetch_series(self, ids: Sequence[str], date_range: DateRange | None = None) -> Any:
        """Fetch raw, schema-validated payload(s) for *ids*.

        Raises:
            ValidationError: Too many ids or a malformed response.
            SourceHTTPError: The agency answered with HTTP 4xx.
            ExhaustedRetriesError: Transient failures outlasted the retries.
        """
        ...

    @abstractmethod
    def to_data_points(self, raw: Any) -> list[DataPoint]:
        """Map a raw payload returned by ``fetch_series`` to DataPoints."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Verify the data source is reachable and responding."""
        ...

    def collect(self, ids: Sequence[str], date_range: DateRange | None = None) -> list[DataPoint]:
        return self.to_data_points(self.fetch_series(ids, date_range))

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @property
    def max_ids_per_call(self) -> int:
        return self.MAX_IDS_PER_CALL

    @property
    def fetch_chunk_size(self) -> int:
        return self.FETCH_CHUNK_SIZE

    @property
    def is_configured(self) -> bool:
        """Whether the credentials this source needs are present."""
        return True

    def catalog(self) -> Mapping[str, SeriesConfig]:
        return self.CATALOG

    def default_ids(self) -> list[str]:
        return list(self.CATALOG)

    def check_id_cap(self, ids: Sequence[str]) -> None:
        if len(ids) > self.max_ids_per_call:
            raise ValidationError(
                f"Too many series requested ({len(ids)}). "
                f"Maximum is {self.max_ids_per_call} per request."
            )

    def series_config(self, source_key: str) -> SeriesConfig:
        try:
            return self.CATALOG[source_key]
        except KeyError:
            raise ValidationError(f"Unknown series: {source_key}") from None

    def indicator_url(self, source_key: str, country_code: str) -> str:
        return self.SOURCE_URL

    def indicator_for(self, point: DataPoint) -> IndicatorCandidate:
        """Build the indicator candidate for *point* from the static catalog."""
        config = self.series_config(point.source_key)
        return IndicatorCandidate(
            name=point.indicator_name_hint,
            country_code=point.country_code,
            category=config.category,
            source_name=self.SOURCE_LABEL,
            source_url=self.indicator_url(point.source_key, point.country_code),
        )

    def release_for(self, point: DataPoint) -> ReleaseCandidate:
        config = self.series_config(point.source_key)
        return ReleaseCandidate(
            indicator_key=(point.indicator_name_hint, point.country_code),
            release_at=datetime.fromisoformat(point.iso_date),
            period=point.period_label,
            actual=point.value,
            unit=config.unit or config.frequency,
            notes=self.IMPORT_NOTE,
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """One logical request: retried with backoff, status mapped to errors."""
        self.logger.debug("%s %s", method, url)
        return request_with_retry(
            lambda: send_request(
                self._session,
                method,
                url,
                self.SOURCE_NAME.upper(),
                timeout=self.settings.request_timeout,
                **kwargs,
            ),
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay,
            sleep=self._sleep,
            logger=self.logger,
        )

    def _pause(self) -> None:
        """Politeness delay between consecutive calls to the same agency."""
        self._sleep(self.settings.source_request_delay)

    # ------------------------------------------------------------------
    # Bronze export
    # ------------------------------------------------------------------

    def to_frame(self, points: Sequence[DataPoint]) -> pd.DataFrame:
        df = pd.DataFrame([asdict(p) for p in points])
        if not df.empty:
            df["source"] = self.SOURCE_NAME
        return df

    def export_csv(self, df: pd.DataFrame, dataset_name: str) -> Path:
        """Export a DataFrame to raw CSV.

        File path: {output_dir}/{SOURCE_NAME}_{dataset_name}_{YYYYMMDD}.csv

        Raises:
            ValueError: If the DataFrame is empty.
        """
        if df.empty:
            raise ValueError(f"Cannot export empty DataFrame for '{dataset_name}'")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        date_str = datetime.now().strftime("%Y%m%d")
        path = self.output_dir / f"{self.SOURCE_NAME}_{dataset_name}_{date_str}.csv"
        df.to_csv(path, index=False, encoding="utf-8")
        self.logger.info("Exported %d records to %s", len(df), path)
        return path


class MultiCountryCollector(BaseCollector):
    """Base for agencies that report one indicator across many economies.

    Subclasses define ``COUNTRIES`` (ISO2 code -> display name) and accept a
    ``countries`` keyword in ``fetch_series``. Stored indicator names carry
    the country name so each economy gets its own indicator.
    """

    MULTI_COUNTRY = True
    COUNTRIES: Mapping[str, str]

    def collect(
        self,
        ids: Sequence[str],
        date_range: DateRange | None = None,
        countries: Sequence[str] | None = None,
    ) -> list[DataPoint]:
        return self.to_data_points(self.fetch_series(ids, date_range, countries=countries))

    def countries(self) -> Mapping[str, str]:
        return self.COUNTRIES

    def resolve_countries(self, countries: Sequence[str] | None) -> list[str]:
        """Default to every catalogued economy; reject unknown codes."""
        if not countries:
            return list(self.COUNTRIES)
        unknown = [c for c in countries if c not in self.COUNTRIES]
        if unknown:
            raise ValidationError(f"Invalid country codes: {', '.join(unknown)}")
        return list(countries)

    def country_name(self, country_code: str) -> str:
        return self.COUNTRIES.get(country_code, country_code)

    def indicator_display_name(self, indicator_id: str, country_code: str) -> str:
        return f"{self.series_config(indicator_id).name} ({self.country_name(country_code)})"

"""BLS Data Collector using the Bureau of Labor Statistics Public Data API v2.

Collects:
    - Labor force statistics (unemployment, participation, employment level)
    - Consumer and producer price indices
    - Current Employment Statistics (payrolls, earnings, hours)

Request limits depend on whether a registration key is configured:

    =====================  =========  ============
    Limit                  With key   Without key
    =====================  =========  ============
    Series per request     50         25
    Years per request      20         10
    =====================  =========  ============

Wider year ranges are split into consecutive chunks and merged. BLS returns
data newest first; points are re-sorted ascending. The ``M13`` annual average
and ``-`` (unavailable) values are skipped.

API: https://www.bls.gov/developers/api_signature_v2.htm
"""

from collections.abc import Sequence
from datetime import datetime
from types import MappingProxyType

import requests
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from macrocal.ingestion.collectors.base_collector import BaseCollector, DataPoint, DateRange, SeriesConfig
from macrocal.ingestion.collectors.http_utils import parse_json
from macrocal.ingestion.preprocessors.period_normalizer import NormalizedPeriod, normalize_period
from macrocal.shared.errors import ValidationError

# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------


class BLSObservation(BaseModel):
    year: str
    period: str
    periodName: str = ""
    value: str


class BLSSeries(BaseModel):
    seriesID: str
    data: list[BLSObservation] = []


class BLSResults(BaseModel):
    series: list[BLSSeries] = []


class BLSResponse(BaseModel):
    status: str
    message: list[str] = []
    Results: BLSResults | None = None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _monthly(name: str, category: str) -> SeriesConfig:
    return SeriesConfig(name=name, category=category, frequency="Monthly", country_code="US")


BLS_SERIES: MappingProxyType[str, SeriesConfig] = MappingProxyType(
    {
        # Unemployment and labor force
        "LNS14000000": _monthly("Unemployment Rate", "Employment"),
        "LNS11000000": _monthly("Labor Force Participation Rate", "Employment"),
        "LNS13000000": _monthly("Employment Level", "Employment"),
        "LNS14000006": _monthly("Unemployment Rate - Black or African American", "Employment"),
        "LNS14000009": _monthly("Unemployment Rate - Hispanic or Latino", "Employment"),
        # Consumer Price Index
        "CUUR0000SA0": _monthly("CPI All Items", "Inflation"),
        "CUUR0000SA0L1E": _monthly("CPI Core (Less Food and Energy)", "Inflation"),
        "CUUR0000SAF1": _monthly("CPI Food", "Inflation"),
        "CUUR0000SETA01": _monthly("CPI New Vehicles", "Inflation"),
        "CUUR0000SAH1": _monthly("CPI Shelter", "Inflation"),
        "CUUR0000SETB01": _monthly("CPI Gasoline", "Inflation"),
        # Producer Price Index
        "WPUFD4": _monthly("PPI Final Demand", "Inflation"),
        "WPSFD4131": _monthly("PPI Final Demand Less Foods and Energy", "Inflation"),
        # Employment and earnings
        "CES0000000001": _monthly("Total Nonfarm Employment", "Employment"),
        "CES0500000003": _monthly("Average Hourly Earnings (Private)", "Employment"),
        "CES0500000002": _monthly("Average Weekly Hours (Private)", "Employment"),
    }
)

MISSING_VALUES = frozenset({"", "-"})


def bls_period(year: str, period: str, period_name: str = "") -> NormalizedPeriod | None:
    """Map a BLS ``(year, period)`` pair to a normalized period.

    Returns ``None`` for aggregate periods that are not observations in their
    own right (``M13`` annual average, ``Q05``, ``S03``).
    """
    kind, number = period[:1], period[1:]
    if not number.isdigit():
        return normalize_period(year)
    n = int(number)

    if kind == "M":
        return normalize_period(f"{year}-{n:02d}") if 1 <= n <= 12 else None
    if kind == "Q":
        return normalize_period(f"{year}-Q{n}") if 1 <= n <= 4 else None
    if kind == "S":
        if n not in (1, 2):
            return None
        label = f"{period_name} {year}" if period_name else f"H{n} {year}"
        return NormalizedPeriod(f"{year}-{'01' if n == 1 else '07'}-01", label)
    return normalize_period(year)


class BLSCollector(BaseCollector):
    """Collector for BLS time series.

    One ``fetch_series`` call covers up to ``max_ids_per_call`` series, so the
    orchestrator batches BLS ids instead of fetching one at a time.
    """

    SOURCE_NAME = "bls"
    SOURCE_LABEL = "Bureau of Labor Statistics (BLS)"
    SOURCE_URL = "https://www.bls.gov"
    IMPORT_NOTE = "Imported from BLS"
    CATALOG = BLS_SERIES

    BASE_URL = "https://api.bls.gov/publicAPI/v2/timeseries/data/"

    def __init__(self, *args, api_key: str | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.api_key = api_key if api_key is not None else self.settings.bls_api_key
        self.logger.info(
            "BLSCollector initialized (%s registration key)", "with" if self.api_key else "without"
        )

    @property
    def max_ids_per_call(self) -> int:
        return 50 if self.api_key else 25

    @property
    def max_years_per_request(self) -> int:
        return 20 if self.api_key else 10

    @property
    def fetch_chunk_size(self) -> int:
        return self.max_ids_per_call

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def fetch_series(self, ids: Sequence[str], date_range: DateRange | None = None) -> list[BLSResponse]:
        """POST one request per year chunk for *ids*.

        Returns:
            One validated ``BLSResponse`` per year chunk, oldest chunk first.
        """
        self.check_id_cap(ids)
        if not ids:
            return []

        date_range = date_range or DateRange.from_years(self.DEFAULT_START_YEAR)
        responses = []
        for i, (start_year, end_year) in enumerate(self._year_chunks(date_range)):
            if i:
                self._pause()
            responses.append(self._post(list(ids), start_year, end_year))
        return responses

    def to_data_points(self, raw: Sequence[BLSResponse]) -> list[DataPoint]:
        points: list[DataPoint] = []
        for response in raw:
            if response.Results is None:
                continue
            for series in response.Results.series:
                config = self.CATALOG.get(series.seriesID)
                if config is None:
                    self.logger.warning("Ignoring uncatalogued BLS series %s", series.seriesID)
                    continue
                for obs in series.data:
                    if obs.value.strip() in MISSING_VALUES:
                        continue
                    period = bls_period(obs.year, obs.period, obs.periodName)
                    if period is None:
                        continue
                    points.append(
                        DataPoint(
                            source_key=series.seriesID,
                            indicator_name_hint=config.name,
                            iso_date=period.iso_date,
                            value=obs.value.strip(),
                            period_label=period.label,
                            country_code=config.country_code or "US",
                        )
                    )
        # BLS returns newest first within each chunk
        points.sort(key=lambda p: (p.source_key, p.iso_date))
        return points

    def health_check(self) -> bool:
        """Check BLS API availability with a single-series, single-year request."""
        year = str(datetime.now().year)
        try:
            response = self._session.post(
                self.BASE_URL,
                json={"seriesid": ["LNS14000000"], "startyear": year, "endyear": year},
                timeout=10,
            )
            return response.ok and response.json().get("status") != "REQUEST_FAILED"
        except (requests.exceptions.RequestException, ValueError):
            return False

    def indicator_url(self, source_key: str, country_code: str) -> str:
        return f"{self.SOURCE_URL}/data/#{source_key}"

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _year_chunks(self, date_range: DateRange) -> list[tuple[int, int]]:
        step = self.max_years_per_request
        start, end = date_range.start.year, date_range.end.year
        return [(y, min(y + step - 1, end)) for y in range(start, end + 1, step)]

    def _post(self, ids: list[str], start_year: int, end_year: int) -> BLSResponse:
        payload: dict = {
            "seriesid": ids,
            "startyear": str(start_year),
            "endyear": str(end_year),
            "catalog": False,
            "calculations": False,
            "annualaverage": False,
        }
        if self.api_key:
            payload["registrationkey"] = self.api_key

        response = self._request("POST", self.BASE_URL, json=payload)
        try:
            parsed = BLSResponse.model_validate(parse_json(response, "BLS"))
        except PydanticValidationError as exc:
            raise ValidationError(f"Unexpected BLS response shape: {exc}") from exc

        if parsed.status == "REQUEST_FAILED":
            raise ValidationError(f"BLS API request failed: {'; '.join(parsed.message)}")

        self.logger.info(
            "Received %d series for %d-%d",
            len(parsed.Results.series) if parsed.Results else 0,
            start_year,
            end_year,
        )
        return parsed

"""FRED Data Collector using the St. Louis Fed FRED API.

Collects US macroeconomic series: GDP, inflation, labor market, interest
rates, consumer activity, housing and industrial production.

Each series id is one call to ``fred/series/observations``; consecutive calls
are spaced by the politeness delay (FRED allows 120 requests per minute).
FRED marks missing observations with the value ``"."``; those are skipped.
Period labels follow the catalogued frequency of the series.

API Documentation: https://fred.stlouisfed.org/docs/api/
Get API Key: https://fred.stlouisfed.org/docs/api/api_key.html

Example:
    >>> from macrocal.ingestion.collectors.fred_collector import FREDCollector
    >>> collector = FREDCollector()
    >>> points = collector.collect(["UNRATE"])
"""

from collections.abc import Sequence
from types import MappingProxyType

import requests
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from macrocal.ingestion.collectors.base_collector import BaseCollector, DataPoint, DateRange, SeriesConfig
from macrocal.ingestion.collectors.http_utils import parse_json
from macrocal.ingestion.preprocessors.period_normalizer import period_from_date
from macrocal.shared.errors import ConfigurationError, ValidationError

MISSING_VALUE = "."


class FREDObservation(BaseModel):
    date: str
    value: str


class FREDObservationsResponse(BaseModel):
    observations: list[FREDObservation]


def _us(name: str, category: str, frequency: str, unit: str) -> SeriesConfig:
    return SeriesConfig(name=name, category=category, frequency=frequency, country_code="US", unit=unit)


FRED_SERIES: MappingProxyType[str, SeriesConfig] = MappingProxyType(
    {
        # GDP and growth
        "GDPC1": _us("Real GDP", "GDP", "Quarterly", "Billions of Chained 2017 Dollars"),
        "A191RL1Q225SBEA": _us("Real GDP Growth Rate", "GDP", "Quarterly", "Percent Change"),
        # Inflation and prices
        "CPIAUCSL": _us("Consumer Price Index (CPI)", "Inflation", "Monthly", "Index 1982-1984=100"),
        "PPIACO": _us("Producer Price Index (PPI)", "Inflation", "Monthly", "Index 1982=100"),
        "CPILFESL": _us(
            "Core CPI (Less Food and Energy)", "Inflation", "Monthly", "Index 1982-1984=100"
        ),
        # Employment
        "UNRATE": _us("Unemployment Rate", "Employment", "Monthly", "Percent"),
        "PAYEMS": _us("Non-Farm Payrolls", "Employment", "Monthly", "Thousands of Persons"),
        "ICSA": _us("Initial Jobless Claims", "Employment", "Weekly", "Number"),
        # Interest rates
        "FEDFUNDS": _us("Federal Funds Rate", "Interest Rates", "Monthly", "Percent"),
        "DGS10": _us("10-Year Treasury Rate", "Interest Rates", "Daily", "Percent"),
        "DGS2": _us("2-Year Treasury Rate", "Interest Rates", "Daily", "Percent"),
        # Consumer
        "UMCSENT": _us("Consumer Sentiment Index", "Consumer", "Monthly", "Index 1966:Q1=100"),
        "RSXFS": _us("Retail Sales", "Consumer", "Monthly", "Millions of Dollars"),
        # Housing
        "HOUST": _us("Housing Starts", "Housing", "Monthly", "Thousands of Units"),
        "PERMIT": _us("Building Permits", "Housing", "Monthly", "Thousands of Units"),
        # Manufacturing
        "INDPRO": _us("Industrial Production Index", "Manufacturing", "Monthly", "Index 2017=100"),
    }
)


class FREDCollector(BaseCollector):
    """Collector for FRED macroeconomic series.

    Requires an API key (``FRED_API_KEY``); fetching without one raises
    ``ConfigurationError`` before any network call.
    """

    SOURCE_NAME = "fred"
    SOURCE_LABEL = "Federal Reserve Economic Data (FRED)"
    SOURCE_URL = "https://fred.stlouisfed.org"
    IMPORT_NOTE = "Imported from FRED"
    CATALOG = FRED_SERIES

    BASE_URL = "https://api.stlouisfed.org/fred"

    def __init__(self, *args, api_key: str | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.api_key = api_key if api_key is not None else self.settings.fred_api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def fetch_series(
        self, ids: Sequence[str], date_range: DateRange | None = None
    ) -> list[tuple[str, FREDObservationsResponse]]:
        if not self.api_key:
            raise ConfigurationError(
                "FRED_API_KEY is not set. Get a free key at https://fred.stlouisfed.org/docs/api/api_key.html"
            )
        self.check_id_cap(ids)
        date_range = date_range or DateRange.from_years(self.DEFAULT_START_YEAR)

        results = []
        for i, series_id in enumerate(ids):
            if i:
                self._pause()
            results.append((series_id, self._fetch(series_id, date_range)))
        return results

    def to_data_points(self, raw: Sequence[tuple[str, FREDObservationsResponse]]) -> list[DataPoint]:
        points: list[DataPoint] = []
        for series_id, response in raw:
            config = self.series_config(series_id)
            for obs in response.observations:
                if obs.value == MISSING_VALUE:
                    continue
                period = period_from_date(obs.date, config.frequency)
                points.append(
                    DataPoint(
                        source_key=series_id,
                        indicator_name_hint=config.name,
                        iso_date=period.iso_date,
                        value=obs.value,
                        period_label=period.label,
                        country_code=config.country_code or "US",
                    )
                )
        return points

    def health_check(self) -> bool:
        """Check FRED API availability (requires a key)."""
        if not self.api_key:
            return False
        try:
            response = self._session.get(
                f"{self.BASE_URL}/series",
                params={"series_id": "UNRATE", "api_key": self.api_key, "file_type": "json"},
                timeout=10,
            )
            return response.ok
        except requests.exceptions.RequestException:
            return False

    def indicator_url(self, source_key: str, country_code: str) -> str:
        return f"{self.SOURCE_URL}/series/{source_key}"

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _fetch(self, series_id: str, date_range: DateRange) -> FREDObservationsResponse:
        params = {
            "series_id": series_id,
            "api_key": self.api_key,
            "file_type": "json",
            "observation_start": date_range.start.isoformat(),
            "observation_end": date_range.end.isoformat(),
        }
        response = self._request("GET", f"{self.BASE_URL}/series/observations", params=params)
        try:
            parsed = FREDObservationsResponse.model_validate(parse_json(response, "FRED"))
        except PydanticValidationError as exc:
            raise ValidationError(f"Unexpected FRED response shape for {series_id}: {exc}") from exc

        self.logger.info("Received %d observations for %s", len(parsed.observations), series_id)
        return parsed

"""IMF Data Collector using the IMF World Economic Outlook (WEO) SDMX-JSON API.

Collects annual WEO indicators (growth, inflation, unemployment, current
account, government debt, savings, population) for a fixed set of economies.

One ``CompactData/WEO/A.{country}.{indicator}`` call is made per
(indicator, country) pair, spaced by the politeness delay. The CompactData
payload is loosely typed: ``Series`` and ``Obs`` are objects when a single
element is returned and lists otherwise, so both are coerced to lists.

Indicator names carry the country name, e.g. ``"Unemployment Rate (%) (Germany)"``,
so that one WEO indicator maps to one stored indicator per economy.

API: https://datahelp.imf.org/knowledgebase/articles/667681
"""

from collections.abc import Sequence
from types import MappingProxyType
from typing import Any

import requests
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from macrocal.ingestion.collectors.base_collector import (
    DataPoint,
    DateRange,
    MultiCountryCollector,
    SeriesConfig,
    format_number,
)
from macrocal.ingestion.collectors.http_utils import parse_json
from macrocal.ingestion.preprocessors.period_normalizer import normalize_period
from macrocal.shared.errors import SourceHTTPError, ValidationError


def as_list(value: Any) -> list:
    """``None`` -> ``[]``, single object -> ``[obj]``, list -> list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------


class IMFObservation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time_period: str = Field(alias="@TIME_PERIOD")
    obs_value: str | float | None = Field(default=None, alias="@OBS_VALUE")


class IMFSeries(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ref_area: str | None = Field(default=None, alias="@REF_AREA")
    obs: list[IMFObservation] = Field(default_factory=list, alias="Obs")

    @field_validator("obs", mode="before")
    @classmethod
    def coerce_obs(cls, value: Any) -> list:
        return as_list(value)


class IMFDataSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    series: list[IMFSeries] = Field(default_factory=list, alias="Series")

    @field_validator("series", mode="before")
    @classmethod
    def coerce_series(cls, value: Any) -> list:
        return as_list(value)


class IMFCompactData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dataset: IMFDataSet | None = Field(default=None, alias="DataSet")


class IMFResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    compact_data: IMFCompactData | None = Field(default=None, alias="CompactData")

    def series(self) -> list[IMFSeries]:
        if self.compact_data is None or self.compact_data.dataset is None:
            return []
        return self.compact_data.dataset.series


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _annual(name: str, category: str) -> SeriesConfig:
    return SeriesConfig(name=name, category=category, frequency="Annual")


IMF_INDICATORS: MappingProxyType[str, SeriesConfig] = MappingProxyType(
    {
        # GDP
        "NGDP_RPCH": _annual("Real GDP Growth Rate (%)", "GDP"),
        "NGDPD": _annual("GDP (Current Prices, USD Billions)", "GDP"),
        "NGDPDPC": _annual("GDP Per Capita (Current Prices, USD)", "GDP"),
        "PPPGDP": _annual("GDP (PPP, International Dollars Billions)", "GDP"),
        # Inflation
        "PCPIPCH": _annual("Inflation Rate (CPI, % Change)", "Inflation"),
        "PCPIEPCH": _annual("Inflation Rate (End of Period, %)", "Inflation"),
        # Employment
        "LUR": _annual("Unemployment Rate (%)", "Employment"),
        "LE": _annual("Employment (Millions)", "Employment"),
        # External
        "BCA_NGDPD": _annual("Current Account Balance (% of GDP)", "Trade"),
        "BCA": _annual("Current Account Balance (USD Billions)", "Trade"),
        # Fiscal
        "GGXWDG_NGDP": _annual("Government Gross Debt (% of GDP)", "Government"),
        "GGXCNL_NGDP": _annual("Government Net Lending/Borrowing (% of GDP)", "Government"),
        # Investment and savings
        "NID_NGDP": _annual("Total Investment (% of GDP)", "Investment"),
        "NGSD_NGDP": _annual("Gross National Savings (% of GDP)", "Investment"),
        "LP": _annual("Population (Millions)", "Demographics"),
    }
)

IMF_COUNTRIES: MappingProxyType[str, str] = MappingProxyType(
    {
        # G7
        "US": "United States",
        "GB": "United Kingdom",
        "DE": "Germany",
        "JP": "Japan",
        "FR": "France",
        "IT": "Italy",
        "CA": "Canada",
        # Other G20 and large economies
        "CN": "China",
        "IN": "India",
        "BR": "Brazil",
        "RU": "Russian Federation",
        "AU": "Australia",
        "KR": "Korea, Rep.",
        "MX": "Mexico",
        "ID": "Indonesia",
        "NL": "Netherlands",
        "SA": "Saudi Arabia",
        "CH": "Switzerland",
        "ES": "Spain",
        "TR": "Turkey",
        # Euro area
        "AT": "Austria",
        "BE": "Belgium",
        "IE": "Ireland",
        "PT": "Portugal",
        "GR": "Greece",
        # Asia-Pacific
        "SG": "Singapore",
        "HK": "Hong Kong SAR",
        "NZ": "New Zealand",
        "TH": "Thailand",
        "MY": "Malaysia",
        # Latin America
        "AR": "Argentina",
        "CL": "Chile",
        "CO": "Colombia",
        # Other
        "ZA": "South Africa",
        "AE": "United Arab Emirates",
        "IL": "Israel",
        "PL": "Poland",
        "SE": "Sweden",
        "NO": "Norway",
    }
)


class IMFCollector(MultiCountryCollector):
    """Collector for IMF WEO annual indicators."""

    SOURCE_NAME = "imf"
    SOURCE_LABEL = "International Monetary Fund (IMF WEO)"
    SOURCE_URL = "https://www.imf.org"
    IMPORT_NOTE = "Imported from IMF WEO"
    CATALOG = IMF_INDICATORS
    COUNTRIES = IMF_COUNTRIES

    BASE_URL = "https://dataservices.imf.org/REST/SDMX_JSON.svc"

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def fetch_series(
        self,
        ids: Sequence[str],
        date_range: DateRange | None = None,
        countries: Sequence[str] | None = None,
    ) -> list[tuple[str, str, IMFResponse]]:
        """Fetch every (indicator, country) pair.

        Returns:
            ``(indicator_id, country_code, response)`` triples in request order.
        """
        self.check_id_cap(ids)
        country_codes = self.resolve_countries(countries)
        date_range = date_range or DateRange.from_years(self.DEFAULT_START_YEAR)

        results = []
        for indicator_id in ids:
            for country_code in country_codes:
                if results:
                    self._pause()
                results.append(
                    (indicator_id, country_code, self._fetch(indicator_id, country_code, date_range))
                )
        return results

    def to_data_points(self, raw: Sequence[tuple[str, str, IMFResponse]]) -> list[DataPoint]:
        points: list[DataPoint] = []
        for indicator_id, country_code, response in raw:
            name = self.indicator_display_name(indicator_id, country_code)
            for series in response.series():
                for obs in series.obs:
                    if obs.obs_value is None:
                        continue
                    value = obs.obs_value if isinstance(obs.obs_value, str) else format_number(obs.obs_value)
                    if not value.strip():
                        continue
                    period = normalize_period(obs.time_period)
                    points.append(
                        DataPoint(
                            source_key=indicator_id,
                            indicator_name_hint=name,
                            iso_date=period.iso_date,
                            value=value.strip(),
                            period_label=period.label,
                            country_code=country_code,
                        )
                    )
        points.sort(key=lambda p: (p.source_key, p.iso_date, p.country_code))
        return points

    def health_check(self) -> bool:
        """Check IMF API availability with a one-year WEO request."""
        try:
            response = self._session.get(
                f"{self.BASE_URL}/CompactData/WEO/A.US.NGDP_RPCH",
                params={"startPeriod": "2020", "endPeriod": "2020"},
                timeout=10,
            )
            return response.ok
        except requests.exceptions.RequestException:
            return False

    def indicator_url(self, source_key: str, country_code: str) -> str:
        return f"{self.SOURCE_URL}/external/datamapper/{source_key}@WEO/{country_code}"

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _fetch(self, indicator_id: str, country_code: str, date_range: DateRange) -> IMFResponse:
        url = f"{self.BASE_URL}/CompactData/WEO/A.{country_code}.{indicator_id}"
        params = {
            "startPeriod": str(date_range.start.year),
            "endPeriod": str(date_range.end.year),
        }
        try:
            response = self._request("GET", url, params=params)
        except SourceHTTPError as exc:
            if exc.status_code == 404:
                self.logger.info("No IMF data for %s/%s", country_code, indicator_id)
                return IMFResponse()
            raise

        try:
            parsed = IMFResponse.model_validate(parse_json(response, "IMF"))
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Unexpected IMF response shape for {country_code}/{indicator_id}: {exc}"
            ) from exc

        self.logger.debug("Received %d series for %s/%s", len(parsed.series()), country_code, indicator_id)
        return parsed

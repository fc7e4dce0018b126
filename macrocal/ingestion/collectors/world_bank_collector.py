"""World Bank Data Collector using the World Bank Indicators API v2.

Collects annual development indicators (GDP, inflation, labor, trade,
investment, government finance, demographics) for a fixed set of economies.

All requested countries go into one call per indicator
(``country/US;DE;JP/indicator/NY.GDP.MKTP.CD``); results are paginated at
1000 rows per page. A successful response is ``[meta, data]`` where ``data``
may be ``null``; an error response is ``{"message": [...]}`` and ends the
fetch for that indicator with no data.

API: https://datahelpdesk.worldbank.org/knowledgebase/articles/898581
"""

from collections.abc import Sequence
from types import MappingProxyType

import requests
from pydantic import BaseModel, TypeAdapter
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
from macrocal.shared.errors import ValidationError

PER_PAGE = 1000

# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------


class WorldBankPageMeta(BaseModel):
    page: int
    pages: int
    total: int = 0


class WorldBankRef(BaseModel):
    id: str
    value: str


class WorldBankObservation(BaseModel):
    indicator: WorldBankRef
    country: WorldBankRef
    date: str
    value: float | None = None


class WorldBankMessage(BaseModel):
    id: str | None = None
    key: str | None = None
    value: str | None = None


class WorldBankErrorResponse(BaseModel):
    message: list[WorldBankMessage]


_observations_adapter = TypeAdapter(list[WorldBankObservation] | None)

# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _annual(name: str, category: str) -> SeriesConfig:
    return SeriesConfig(name=name, category=category, frequency="Annual")


WORLD_BANK_INDICATORS: MappingProxyType[str, SeriesConfig] = MappingProxyType(
    {
        # GDP
        "NY.GDP.MKTP.CD": _annual("GDP (Current USD)", "GDP"),
        "NY.GDP.MKTP.KD.ZG": _annual("GDP Growth Rate (%)", "GDP"),
        "NY.GDP.PCAP.CD": _annual("GDP Per Capita (Current USD)", "GDP"),
        # Inflation
        "FP.CPI.TOTL.ZG": _annual("Inflation Rate (CPI, %)", "Inflation"),
        "FP.CPI.TOTL": _annual("Consumer Price Index", "Inflation"),
        # Labor
        "SL.UEM.TOTL.ZS": _annual("Unemployment Rate (%)", "Employment"),
        "SL.TLF.CACT.ZS": _annual("Labor Force Participation Rate (%)", "Employment"),
        # Trade
        "NE.EXP.GNFS.ZS": _annual("Exports of Goods and Services (% of GDP)", "Trade"),
        "NE.IMP.GNFS.ZS": _annual("Imports of Goods and Services (% of GDP)", "Trade"),
        "BN.CAB.XOKA.CD": _annual("Current Account Balance (Current USD)", "Trade"),
        # Finance
        "BX.KLT.DINV.CD.WD": _annual("Foreign Direct Investment (Net Inflows, USD)", "Finance"),
        "FR.INR.RINR": _annual("Real Interest Rate (%)", "Interest Rates"),
        # Government
        "GC.DOD.TOTL.GD.ZS": _annual("Central Government Debt (% of GDP)", "Government"),
        "GC.REV.XGRT.GD.ZS": _annual("Government Revenue (% of GDP)", "Government"),
        # Demographics
        "SP.POP.TOTL": _annual("Total Population", "Demographics"),
        "SP.POP.GROW": _annual("Population Growth Rate (%)", "Demographics"),
    }
)

WORLD_BANK_COUNTRIES: MappingProxyType[str, str] = MappingProxyType(
    {
        "US": "United States",
        "GB": "United Kingdom",
        "DE": "Germany",
        "JP": "Japan",
        "FR": "France",
        "IT": "Italy",
        "CA": "Canada",
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
        "AT": "Austria",
        "BE": "Belgium",
        "IE": "Ireland",
        "PT": "Portugal",
        "GR": "Greece",
        "SG": "Singapore",
        "HK": "Hong Kong SAR, China",
        "NZ": "New Zealand",
        "TH": "Thailand",
        "MY": "Malaysia",
        "AR": "Argentina",
        "CL": "Chile",
        "CO": "Colombia",
        "ZA": "South Africa",
        "AE": "United Arab Emirates",
        "IL": "Israel",
        "PL": "Poland",
        "SE": "Sweden",
        "NO": "Norway",
    }
)


class WorldBankCollector(MultiCountryCollector):
    """Collector for World Bank annual indicators."""

    SOURCE_NAME = "world_bank"
    SOURCE_LABEL = "World Bank Open Data"
    SOURCE_URL = "https://data.worldbank.org"
    IMPORT_NOTE = "Imported from World Bank"
    CATALOG = WORLD_BANK_INDICATORS
    COUNTRIES = WORLD_BANK_COUNTRIES

    BASE_URL = "https://api.worldbank.org/v2"

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def fetch_series(
        self,
        ids: Sequence[str],
        date_range: DateRange | None = None,
        countries: Sequence[str] | None = None,
    ) -> list[tuple[str, list[WorldBankObservation]]]:
        """Fetch every page of each indicator for all *countries* at once.

        Returns:
            ``(indicator_id, observations)`` pairs in request order.
        """
        self.check_id_cap(ids)
        country_codes = self.resolve_countries(countries)
        date_range = date_range or DateRange.from_years(self.DEFAULT_START_YEAR)

        results = []
        for i, indicator_id in enumerate(ids):
            if i:
                self._pause()
            results.append((indicator_id, self._fetch_all_pages(indicator_id, country_codes, date_range)))
        return results

    def to_data_points(self, raw: Sequence[tuple[str, list[WorldBankObservation]]]) -> list[DataPoint]:
        points: list[DataPoint] = []
        for indicator_id, observations in raw:
            for obs in observations:
                if obs.value is None:
                    continue
                country_code = obs.country.id
                period = normalize_period(obs.date)
                points.append(
                    DataPoint(
                        source_key=indicator_id,
                        indicator_name_hint=self.indicator_display_name(indicator_id, country_code),
                        iso_date=period.iso_date,
                        value=format_number(obs.value),
                        period_label=period.label,
                        country_code=country_code,
                    )
                )
        points.sort(key=lambda p: (p.source_key, p.iso_date, p.country_code))
        return points

    def health_check(self) -> bool:
        """Check World Bank API availability with a one-row request."""
        try:
            response = self._session.get(
                f"{self.BASE_URL}/country/US/indicator/SP.POP.TOTL",
                params={"format": "json", "per_page": "1"},
                timeout=10,
            )
            return response.ok
        except requests.exceptions.RequestException:
            return False

    def indicator_url(self, source_key: str, country_code: str) -> str:
        return f"{self.SOURCE_URL}/indicator/{source_key}?locations={country_code}"

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _fetch_all_pages(
        self, indicator_id: str, country_codes: list[str], date_range: DateRange
    ) -> list[WorldBankObservation]:
        url = f"{self.BASE_URL}/country/{';'.join(country_codes)}/indicator/{indicator_id}"
        observations: list[WorldBankObservation] = []
        page, pages = 1, 1

        while page <= pages:
            if page > 1:
                self._pause()
            params = {
                "format": "json",
                "per_page": str(PER_PAGE),
                "date": f"{date_range.start.year}:{date_range.end.year}",
                "page": str(page),
            }
            body = parse_json(self._request("GET", url, params=params), "World Bank")
            parsed = self._parse_page(indicator_id, body)
            if parsed is None:
                break
            meta, data = parsed
            pages = meta.pages
            if not data:
                break
            observations.extend(data)
            page += 1

        self.logger.info(
            "Received %d observations for %s (%d countries)",
            len(observations),
            indicator_id,
            len(country_codes),
        )
        return observations

    def _parse_page(
        self, indicator_id: str, body: object
    ) -> tuple[WorldBankPageMeta, list[WorldBankObservation] | None] | None:
        """Validate one page. ``None`` means the API answered with a message."""
        # invalid parameters come back as [{"message": [...]}]
        if isinstance(body, list) and len(body) == 1 and isinstance(body[0], dict):
            body = body[0]
        try:
            if isinstance(body, dict) and "message" in body:
                error = WorldBankErrorResponse.model_validate(body)
                self.logger.warning(
                    "World Bank returned no data for %s: %s",
                    indicator_id,
                    "; ".join(m.value or "" for m in error.message),
                )
                return None
            if not isinstance(body, list) or len(body) != 2:
                raise ValidationError(f"Unexpected World Bank response shape for {indicator_id}")
            return (
                WorldBankPageMeta.model_validate(body[0]),
                _observations_adapter.validate_python(body[1]),
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Unexpected World Bank response shape for {indicator_id}: {exc}") from exc

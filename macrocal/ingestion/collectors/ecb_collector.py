"""ECB Data Collector using the ECB Data Portal API (SDMX 2.1 REST, JSON format).

Collects:
    - ECB key policy rates (main refinancing, deposit facility)
    - Euro area and member-state HICP inflation
    - Euro area GDP growth, unemployment and M3 money supply

Series ids are ``{dataflow}.{series_key}``, e.g. ``FM.D.U2.EUR.4F.KR.MRR_FR.LEV``.
Each id is one HTTP call; consecutive calls are spaced by the configured
politeness delay.

SDMX-JSON observations are keyed by the index of their ``TIME_PERIOD`` value
in ``structure.dimensions.observation``; null values are skipped. A 404 means
the series has no data in the requested window and yields no points.

API: https://data.ecb.europa.eu/help/api/data
"""

from collections.abc import Sequence
from datetime import datetime
from types import MappingProxyType

import requests
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from macrocal.ingestion.collectors.base_collector import (
    BaseCollector,
    DataPoint,
    DateRange,
    SeriesConfig,
    format_number,
)
from macrocal.ingestion.collectors.http_utils import parse_json
from macrocal.ingestion.preprocessors.period_normalizer import normalize_period
from macrocal.shared.errors import SourceHTTPError, ValidationError

# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------


class SDMXDimensionValue(BaseModel):
    id: str
    name: str | None = None


class SDMXDimension(BaseModel):
    id: str
    values: list[SDMXDimensionValue] = []


class SDMXDimensions(BaseModel):
    series: list[SDMXDimension] = []
    observation: list[SDMXDimension] = []


class SDMXStructure(BaseModel):
    name: str | None = None
    dimensions: SDMXDimensions = SDMXDimensions()


class SDMXSeries(BaseModel):
    observations: dict[str, list[float | None]] = {}


class SDMXDataSet(BaseModel):
    series: dict[str, SDMXSeries] = {}


class SDMXResponse(BaseModel):
    dataSets: list[SDMXDataSet] = []
    structure: SDMXStructure | None = None

    def time_periods(self) -> list[str]:
        if self.structure is None:
            return []
        for dim in self.structure.dimensions.observation:
            if dim.id == "TIME_PERIOD":
                return [v.id for v in dim.values]
        return []


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

ECB_SERIES: MappingProxyType[str, SeriesConfig] = MappingProxyType(
    {
        # Key policy rates
        "FM.D.U2.EUR.4F.KR.MRR_FR.LEV": SeriesConfig(
            "ECB Main Refinancing Rate", "Interest Rates", "Daily", "EU"
        ),
        "FM.D.U2.EUR.4F.KR.DFR.LEV": SeriesConfig(
            "ECB Deposit Facility Rate", "Interest Rates", "Daily", "EU"
        ),
        # Euro area
        "ICP.M.U2.N.000000.4.ANR": SeriesConfig(
            "Eurozone HICP Inflation (YoY)", "Inflation", "Monthly", "EU"
        ),
        "ICP.M.U2.N.XEF000.4.ANR": SeriesConfig(
            "Eurozone Core HICP Inflation (YoY)", "Inflation", "Monthly", "EU"
        ),
        "MNA.Q.Y.I9.W2.S1.S1.B.B1GQ._Z._Z._Z.EUR.LR.GY": SeriesConfig(
            "Eurozone GDP Growth (QoQ)", "GDP", "Quarterly", "EU"
        ),
        "STS.M.I9.S.UNEH.RTT000.4.000": SeriesConfig(
            "Eurozone Unemployment Rate", "Employment", "Monthly", "EU"
        ),
        "BSI.M.U2.N.V.M30.X.I.U2.2300.Z01.A": SeriesConfig(
            "Eurozone M3 Money Supply (YoY)", "Monetary", "Monthly", "EU"
        ),
        # Member states
        "ICP.M.DE.N.000000.4.ANR": SeriesConfig(
            "Germany HICP Inflation (YoY)", "Inflation", "Monthly", "DE"
        ),
        "ICP.M.FR.N.000000.4.ANR": SeriesConfig(
            "France HICP Inflation (YoY)", "Inflation", "Monthly", "FR"
        ),
        "ICP.M.IT.N.000000.4.ANR": SeriesConfig(
            "Italy HICP Inflation (YoY)", "Inflation", "Monthly", "IT"
        ),
        "ICP.M.ES.N.000000.4.ANR": SeriesConfig(
            "Spain HICP Inflation (YoY)", "Inflation", "Monthly", "ES"
        ),
    }
)


def split_series_id(series_id: str) -> tuple[str, str]:
    """``"FM.D.U2..."`` -> ``("FM", "D.U2...")``."""
    dataflow, _, key = series_id.partition(".")
    if not key:
        raise ValidationError(f"Malformed ECB series id: {series_id}")
    return dataflow, key


class ECBCollector(BaseCollector):
    """Collector for ECB SDMX time series."""

    SOURCE_NAME = "ecb"
    SOURCE_LABEL = "European Central Bank (ECB SDW)"
    SOURCE_URL = "https://sdw.ecb.europa.eu"
    IMPORT_NOTE = "Imported from ECB SDW"
    CATALOG = ECB_SERIES

    BASE_URL = "https://data-api.ecb.europa.eu/service/data"

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def fetch_series(
        self, ids: Sequence[str], date_range: DateRange | None = None
    ) -> list[tuple[str, SDMXResponse]]:
        """Fetch each series in turn.

        Returns:
            ``(series_id, response)`` pairs in request order.
        """
        self.check_id_cap(ids)
        date_range = date_range or DateRange.from_years(self.DEFAULT_START_YEAR)

        results = []
        for i, series_id in enumerate(ids):
            if i:
                self._pause()
            results.append((series_id, self._fetch(series_id, date_range)))
        return results

    def to_data_points(self, raw: Sequence[tuple[str, SDMXResponse]]) -> list[DataPoint]:
        points: list[DataPoint] = []
        for series_id, response in raw:
            config = self.series_config(series_id)
            periods = response.time_periods()
            series_points = []
            for dataset in response.dataSets:
                for series in dataset.series.values():
                    for index, values in series.observations.items():
                        try:
                            period_id = periods[int(index)]
                        except (ValueError, IndexError):
                            continue
                        if not values or values[0] is None:
                            continue
                        period = normalize_period(period_id)
                        series_points.append(
                            DataPoint(
                                source_key=series_id,
                                indicator_name_hint=config.name,
                                iso_date=period.iso_date,
                                value=format_number(values[0]),
                                period_label=period.label,
                                country_code=config.country_code or "EU",
                            )
                        )
            series_points.sort(key=lambda p: p.iso_date)
            points.extend(series_points)
        return points

    def health_check(self) -> bool:
        """Check ECB API availability by requesting this month's policy rate."""
        dataflow, key = split_series_id("FM.D.U2.EUR.4F.KR.MRR_FR.LEV")
        month = datetime.now().strftime("%Y-%m")
        try:
            response = self._session.get(
                f"{self.BASE_URL}/{dataflow}/{key}",
                params={"format": "jsondata", "detail": "dataonly", "startPeriod": month},
                timeout=10,
            )
            return response.ok or response.status_code == 404
        except requests.exceptions.RequestException:
            return False

    def indicator_url(self, source_key: str, country_code: str) -> str:
        dataflow, _ = split_series_id(source_key)
        return f"{self.SOURCE_URL}/browse.do?node={dataflow}"

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _fetch(self, series_id: str, date_range: DateRange) -> SDMXResponse:
        dataflow, key = split_series_id(series_id)
        params = {
            "format": "jsondata",
            "detail": "dataonly",
            "startPeriod": date_range.start.strftime("%Y-%m"),
            "endPeriod": date_range.end.strftime("%Y-%m"),
        }
        try:
            response = self._request("GET", f"{self.BASE_URL}/{dataflow}/{key}", params=params)
        except SourceHTTPError as exc:
            if exc.status_code == 404:
                self.logger.info("No ECB data for %s in range", series_id)
                return SDMXResponse()
            raise

        if not response.content:
            self.logger.warning("Empty response body for %s", series_id)
            return SDMXResponse()

        try:
            parsed = SDMXResponse.model_validate(parse_json(response, "ECB"))
        except PydanticValidationError as exc:
            raise ValidationError(f"Unexpected ECB response shape for {series_id}: {exc}") from exc

        self.logger.info("Received %d dataset(s) for %s", len(parsed.dataSets), series_id)
        return parsed

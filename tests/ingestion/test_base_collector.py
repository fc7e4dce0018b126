"""Tests for the shared collector behaviour."""

from datetime import date, datetime
from unittest.mock import Mock

import pandas as pd
import pytest

from macrocal.ingestion.collectors import COLLECTORS
from macrocal.ingestion.collectors.base_collector import DataPoint, DateRange, format_number
from macrocal.ingestion.collectors.ecb_collector import ECBCollector
from macrocal.ingestion.collectors.world_bank_collector import WorldBankCollector
from macrocal.shared.errors import ValidationError


class TestFormatNumber:
    @pytest.mark.parametrize(
        "value,expected",
        [(4.0, "4"), (3.25, "3.25"), (-0.5, "-0.5"), (12, "12"), (1e6, "1000000")],
    )
    def test_format(self, value, expected):
        assert format_number(value) == expected


class TestDateRange:
    def test_from_years(self):
        assert DateRange.from_years(2020, 2022) == DateRange(date(2020, 1, 1), date(2022, 12, 31))

    def test_end_defaults_to_current_year(self):
        assert DateRange.from_years(2020).end.year == datetime.now().year

    def test_start_after_end(self):
        with pytest.raises(ValidationError, match="Invalid date range"):
            DateRange(date(2024, 1, 1), date(2023, 1, 1))


class TestCollectorRegistry:
    def test_sources(self):
        assert set(COLLECTORS) == {"bls", "ecb", "fred", "imf", "world-bank"}

    @pytest.mark.parametrize("source", sorted(COLLECTORS))
    def test_catalog_and_labels(self, source, settings):
        collector = COLLECTORS[source](settings=settings, session=Mock())
        assert collector.catalog()
        assert collector.default_ids() == list(collector.catalog())
        assert collector.SOURCE_LABEL
        assert collector.IMPORT_NOTE.startswith("Imported from")


class TestCatalogHelpers:
    def test_series_config_unknown(self, settings):
        collector = ECBCollector(settings=settings, session=Mock())
        with pytest.raises(ValidationError, match="Unknown series: FOO"):
            collector.series_config("FOO")

    def test_check_id_cap_allows_limit(self, settings):
        collector = ECBCollector(settings=settings, session=Mock())
        collector.check_id_cap(["x"] * 50)

    def test_resolve_countries_default(self, settings):
        collector = WorldBankCollector(settings=settings, session=Mock())
        assert collector.resolve_countries(None) == list(collector.countries())

    def test_country_name_fallback(self, settings):
        collector = WorldBankCollector(settings=settings, session=Mock())
        assert collector.country_name("DE") == "Germany"
        assert collector.country_name("XX") == "XX"


class TestBronzeExport:
    def test_export_empty_raises(self, settings, tmp_path):
        collector = ECBCollector(settings=settings, output_dir=tmp_path, session=Mock())
        with pytest.raises(ValueError, match="Cannot export empty DataFrame"):
            collector.export_csv(pd.DataFrame(), "empty")

    def test_export_creates_output_dir(self, settings, tmp_path):
        out = tmp_path / "nested" / "ecb"
        collector = ECBCollector(settings=settings, output_dir=out, session=Mock())
        point = DataPoint("ICP.M.U2.N.000000.4.ANR", "Eurozone HICP Inflation (YoY)", "2024-01-01", "2.8", "Jan 2024", "EU")

        path = collector.export_csv(collector.to_frame([point]), "hicp")

        assert path.parent == out
        assert path.name == f"ecb_hicp_{datetime.now().strftime('%Y%m%d')}.csv"
        assert pd.read_csv(path)["value"].tolist() == [2.8]

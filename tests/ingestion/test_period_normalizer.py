"""Unit tests for period normalization."""

import pytest

from macrocal.ingestion.preprocessors.period_normalizer import (
    NormalizedPeriod,
    normalize_period,
    period_from_date,
)

# ---------------------------------------------------------------------------
# normalize_period
# ---------------------------------------------------------------------------


class TestNormalizePeriod:
    def test_quarter(self):
        assert normalize_period("2024-Q1") == ("2024-01-01", "Q1 2024")

    @pytest.mark.parametrize(
        "period,expected",
        [
            ("2023-Q2", ("2023-04-01", "Q2 2023")),
            ("2023-Q3", ("2023-07-01", "Q3 2023")),
            ("2023-Q4", ("2023-10-01", "Q4 2023")),
        ],
    )
    def test_quarter_start_months(self, period, expected):
        assert normalize_period(period) == expected

    def test_month(self):
        assert normalize_period("2024-03") == ("2024-03-01", "Mar 2024")

    def test_december(self):
        assert normalize_period("2019-12") == ("2019-12-01", "Dec 2019")

    def test_year(self):
        assert normalize_period("2024") == ("2024-01-01", "2024")

    @pytest.mark.parametrize("period", ["2024-W05", "2024-13", "2024-Q5", "H1 2024", ""])
    def test_unrecognized_passes_through(self, period):
        assert normalize_period(period) == (period, period)

    def test_returns_named_tuple(self):
        result = normalize_period("2024-Q1")
        assert isinstance(result, NormalizedPeriod)
        assert result.iso_date == "2024-01-01"
        assert result.label == "Q1 2024"


# ---------------------------------------------------------------------------
# period_from_date
# ---------------------------------------------------------------------------


class TestPeriodFromDate:
    def test_monthly_label(self):
        assert period_from_date("2024-03-01", "Monthly") == ("2024-03-01", "Mar 2024")

    def test_quarterly_label(self):
        assert period_from_date("2024-07-01", "Quarterly") == ("2024-07-01", "Q3 2024")

    def test_annual_label(self):
        assert period_from_date("2023-01-01", "Annual") == ("2023-01-01", "2023")

    @pytest.mark.parametrize("frequency", ["Daily", "Weekly", "weekly"])
    def test_daily_and_weekly_keep_date(self, frequency):
        assert period_from_date("2024-02-09", frequency) == ("2024-02-09", "2024-02-09")

    def test_unknown_frequency_is_monthly(self):
        assert period_from_date("2024-05-15", "Biweekly") == ("2024-05-15", "May 2024")

    def test_observation_date_is_kept(self):
        assert period_from_date("2024-05-15", "Quarterly").iso_date == "2024-05-15"

    def test_non_date_passes_through(self):
        assert period_from_date("2024-Q1", "Quarterly") == ("2024-Q1", "2024-Q1")

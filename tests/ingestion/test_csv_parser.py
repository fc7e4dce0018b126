"""Tests for upload CSV parsing and row validation."""

from datetime import datetime

import pytest

from macrocal.ingestion.preprocessors.csv_parser import (
    MAX_REPORTED_ERRORS,
    parse_csv,
    parse_release_at,
    rows_to_candidates,
    validate_rows,
)

HEADER = "indicator_name,country_code,category,source_name,source_url,release_at,period,actual,forecast,previous,revised,unit,notes"


def _row(**overrides) -> dict[str, str]:
    row = {
        "indicator_name": "CPI YoY",
        "country_code": "US",
        "category": "Inflation",
        "source_name": "BLS",
        "source_url": "https://www.bls.gov",
        "release_at": "2024-01-11T13:30:00Z",
        "period": "Dec 2023",
        "actual": "3.4",
        "forecast": "3.2",
        "previous": "3.1",
        "revised": "",
        "unit": "%",
        "notes": "",
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# parse_csv
# ---------------------------------------------------------------------------


class TestParseCsv:
    def test_quoted_delimiter(self):
        assert parse_csv('h1,h2\n"a,b",c') == [{"h1": "a,b", "h2": "c"}]

    def test_short_row_padded(self):
        assert parse_csv("h1,h2,h3\n1") == [{"h1": "1", "h2": "", "h3": ""}]

    def test_extra_values_dropped(self):
        assert parse_csv("h1,h2\n1,2,3,4") == [{"h1": "1", "h2": "2"}]

    def test_escaped_quotes(self):
        assert parse_csv('h1\n"He said ""hi"""') == [{"h1": 'He said "hi"'}]

    def test_embedded_newline(self):
        assert parse_csv('h1,h2\n"line one\nline two",x') == [{"h1": "line one\nline two", "h2": "x"}]

    def test_blank_lines_skipped(self):
        text = "\n\nh1,h2\n\n1,2\n   \n3,4\n"
        assert parse_csv(text) == [{"h1": "1", "h2": "2"}, {"h1": "3", "h2": "4"}]

    def test_headers_and_values_trimmed(self):
        assert parse_csv(" h1 , h2 \n 1 ,  2 ") == [{"h1": "1", "h2": "2"}]

    def test_blank_header_column_omitted(self):
        assert parse_csv("h1,,h3\n1,2,3") == [{"h1": "1", "h3": "3"}]

    def test_delimiter_only_row_kept(self):
        assert parse_csv("h1,h2,h3\n1,2,3\n,,\n") == [
            {"h1": "1", "h2": "2", "h3": "3"},
            {"h1": "", "h2": "", "h3": ""},
        ]

    def test_custom_delimiter(self):
        assert parse_csv("h1;h2\n1;2", delimiter=";") == [{"h1": "1", "h2": "2"}]

    def test_header_only(self):
        assert parse_csv("h1,h2\n") == []

    def test_empty(self):
        assert parse_csv("") == []


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestParseReleaseAt:
    def test_zulu(self):
        assert parse_release_at("2024-01-11T13:30:00Z") == datetime(2024, 1, 11, 13, 30)

    def test_offset_converted_to_utc(self):
        assert parse_release_at("2024-01-11T08:30:00-05:00") == datetime(2024, 1, 11, 13, 30)

    def test_date_only(self):
        assert parse_release_at("2024-01-11") == datetime(2024, 1, 11)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_release_at("next tuesday")

    @pytest.mark.parametrize("value", ["now", "today", "Jan 11 2024"])
    def test_non_iso_text_rejected(self, value):
        with pytest.raises(ValueError):
            parse_release_at(value)


class TestValidateRows:
    def test_valid_rows(self):
        report = validate_rows([_row(), _row(period="Jan 2024")])

        assert report.ok
        assert report.total_errors == 0
        assert len(report.rows) == 2
        assert report.rows[0].revised is None
        assert report.rows[0].actual == "3.4"

    def test_missing_required_field(self):
        report = validate_rows([_row(), _row(category="")])

        assert not report.ok
        assert report.rows == ()
        [error] = report.errors
        assert error.row == 3
        assert error.errors == ("category: category is required",)

    def test_missing_column_entirely(self):
        row = _row()
        del row["period"]
        report = validate_rows([row])
        assert report.errors[0].errors == ("period: period is required",)

    def test_invalid_release_at(self):
        report = validate_rows([_row(release_at="not-a-date")])
        assert report.errors[0].to_dict() == {
            "row": 2,
            "errors": ["release_at: release_at must be a valid ISO8601 date"],
        }

    def test_release_at_keyword_rejected(self):
        report = validate_rows([_row(release_at="now")])

        assert not report.ok
        assert report.errors[0].errors == ("release_at: release_at must be a valid ISO8601 date",)

    def test_multiple_errors_in_one_row(self):
        report = validate_rows([_row(indicator_name="", country_code="")])
        assert len(report.errors[0].errors) == 2

    def test_errors_capped(self):
        rows = [_row(indicator_name="") for _ in range(MAX_REPORTED_ERRORS + 5)]

        report = validate_rows(rows)

        assert len(report.errors) == MAX_REPORTED_ERRORS
        assert report.total_errors == MAX_REPORTED_ERRORS + 5
        assert report.errors[-1].row == MAX_REPORTED_ERRORS + 1


class TestRowsToCandidates:
    def test_full_file(self):
        text = "\n".join(
            [
                HEADER,
                'CPI YoY,US,Inflation,BLS,https://www.bls.gov,2024-01-11T13:30:00Z,Dec 2023,3.4,3.2,3.1,,%,"Core, ex food"',
            ]
        )
        report = validate_rows(parse_csv(text))
        [indicator], [release] = rows_to_candidates(report.rows)

        assert indicator.key == ("CPI YoY", "US")
        assert indicator.source_url == "https://www.bls.gov"
        assert release.indicator_key == ("CPI YoY", "US")
        assert release.release_at == datetime(2024, 1, 11, 13, 30)
        assert release.period == "Dec 2023"
        assert (release.actual, release.forecast, release.previous, release.revised) == ("3.4", "3.2", "3.1", None)
        assert release.unit == "%"
        assert release.notes == "Core, ex food"

    def test_delimiter_only_row_rejects_file(self):
        good = 'CPI YoY,US,Inflation,BLS,https://www.bls.gov,2024-01-11T13:30:00Z,Dec 2023,3.4,,,,,'
        text = "\n".join([HEADER, good, ",,,,,,,,,,,,"])

        report = validate_rows(parse_csv(text))

        assert not report.ok
        assert report.rows == ()
        assert report.errors[0].row == 3

"""Parser and validator for manually uploaded release files.

Upload format (header row required, column order free):

    indicator_name,country_code,category,source_name,source_url,release_at,period,actual,forecast,previous,revised,unit,notes
    CPI YoY,US,Inflation,BLS,https://www.bls.gov,2024-01-11T13:30:00Z,Dec 2023,3.4,3.2,3.1,,%,

Parsing follows RFC 4180 quoting via the stdlib ``csv`` module. Rows are then
validated one by one; if any row fails, the whole file is rejected and the
first ``MAX_REPORTED_ERRORS`` row errors are reported with the total count.
Row numbers count the header as row 1, so the first data row is row 2.
"""

import csv
import io
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import pandas as pd
from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from macrocal.reconciliation.types import IndicatorCandidate, ReleaseCandidate
from macrocal.reconciliation.validation import RowResult
from macrocal.shared.utils import to_naive_utc

MAX_REPORTED_ERRORS = 10

REQUIRED_COLUMNS = (
    "indicator_name",
    "country_code",
    "category",
    "source_name",
    "source_url",
    "release_at",
    "period",
)
OPTIONAL_COLUMNS = ("actual", "forecast", "previous", "revised", "unit", "notes")


def parse_csv(text: str, delimiter: str = ",") -> list[dict[str, str]]:
    """Parse delimited text into header-keyed rows.

    - the first non-blank record is the header
    - short rows are right-padded with ``""``; extra values are dropped
    - columns with a blank header name are omitted
    - blank and whitespace-only lines are skipped
    - header names and values are trimmed

    Returns an empty list when there is no data row.
    """
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    headers: list[str] | None = None
    rows: list[dict[str, str]] = []

    for record in reader:
        if not record or (len(record) == 1 and not record[0].strip()):
            continue
        if headers is None:
            headers = [h.strip() for h in record]
            continue
        values = [v.strip() for v in record]
        row = {}
        for i, header in enumerate(headers):
            if header:
                row[header] = values[i] if i < len(values) else ""
        rows.append(row)

    return rows


def parse_release_at(value: str) -> datetime:
    """Parse an ISO 8601 timestamp to naive UTC. Naive input is taken as UTC."""
    parsed = pd.to_datetime(value, utc=True, format="ISO8601")
    if pd.isna(parsed):
        raise ValueError(f"Invalid timestamp: {value!r}")
    return to_naive_utc(parsed.to_pydatetime())


class CsvRow(BaseModel):
    """One validated upload row."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_default=True)

    indicator_name: str = ""
    country_code: str = ""
    category: str = ""
    source_name: str = ""
    source_url: str = ""
    release_at: str = ""
    period: str = ""

    actual: str | None = None
    forecast: str | None = None
    previous: str | None = None
    revised: str | None = None
    unit: str | None = None
    notes: str | None = None

    @field_validator(*(c for c in REQUIRED_COLUMNS if c != "release_at"))
    @classmethod
    def required(cls, value: str, info: ValidationInfo) -> str:
        if not value:
            raise PydanticCustomError("required", "{field} is required", {"field": info.field_name})
        return value

    @field_validator("release_at")
    @classmethod
    def iso_timestamp(cls, value: str) -> str:
        try:
            parse_release_at(value)
        except (ValueError, TypeError, OverflowError):
            raise PydanticCustomError(
                "iso8601", "release_at must be a valid ISO8601 date"
            ) from None
        return value

    @field_validator(*OPTIONAL_COLUMNS)
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return value or None


@dataclass(frozen=True)
class CsvRowError:
    row: int
    errors: tuple[str, ...]

    def to_dict(self) -> dict:
        return {"row": self.row, "errors": list(self.errors)}


@dataclass(frozen=True)
class CsvValidationReport:
    rows: tuple[CsvRow, ...]
    errors: tuple[CsvRowError, ...]
    total_errors: int

    @property
    def ok(self) -> bool:
        return self.total_errors == 0


def _format_errors(exc: PydanticValidationError) -> tuple[str, ...]:
    return tuple(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


def validate_row(row: dict[str, str], row_number: int) -> RowResult[CsvRow]:
    try:
        return RowResult(row=row_number, value=CsvRow.model_validate(row))
    except PydanticValidationError as exc:
        return RowResult(row=row_number, errors=_format_errors(exc))


def validate_rows(rows: Sequence[dict[str, str]]) -> CsvValidationReport:
    """Validate every row. The file is accepted only when all rows pass."""
    results = [validate_row(row, index + 2) for index, row in enumerate(rows)]
    failures = [CsvRowError(r.row, r.errors) for r in results if not r.ok]
    if failures:
        return CsvValidationReport(
            rows=(), errors=tuple(failures[:MAX_REPORTED_ERRORS]), total_errors=len(failures)
        )
    return CsvValidationReport(rows=tuple(r.value for r in results), errors=(), total_errors=0)


def rows_to_candidates(
    rows: Sequence[CsvRow],
) -> tuple[list[IndicatorCandidate], list[ReleaseCandidate]]:
    """Convert validated rows to reconciliation candidates, one of each per row."""
    indicators = []
    releases = []
    for row in rows:
        indicator = IndicatorCandidate(
            name=row.indicator_name,
            country_code=row.country_code,
            category=row.category,
            source_name=row.source_name,
            source_url=row.source_url,
        )
        indicators.append(indicator)
        releases.append(
            ReleaseCandidate(
                indicator_key=indicator.key,
                release_at=parse_release_at(row.release_at),
                period=row.period,
                actual=row.actual,
                forecast=row.forecast,
                previous=row.previous,
                revised=row.revised,
                unit=row.unit,
                notes=row.notes,
            )
        )
    return indicators, releases

"""Admin routes: agency import triggers, catalogs and CSV upload.

Every route is guarded by the shared admin secret (``ADMIN_UPLOAD_SECRET``),
sent as the ``X-Admin-Secret`` header or, for uploads, as the ``secret``
form field.
"""

import hmac
import json
from datetime import date

from fastapi import APIRouter, File, Form, Header, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from macrocal.ingestion.collectors import COLLECTORS
from macrocal.ingestion.collectors.base_collector import BaseCollector, DateRange
from macrocal.ingestion.preprocessors.csv_parser import parse_csv, rows_to_candidates, validate_rows
from macrocal.pipelines.import_orchestrator import ImportOrchestrator
from macrocal.reconciliation.types import ImportResult
from macrocal.shared.errors import ConfigurationError, MacroCalError, StoreError, ValidationError
from macrocal.shared.utils import setup_logger

logger = setup_logger("api.admin")

router = APIRouter(prefix="/admin", tags=["Admin"])


# ── Request models ──


class ImportRequest(BaseModel):
    """Body for ``POST /admin/{source}-import``. Every field is optional."""

    model_config = ConfigDict(extra="forbid")

    seriesIds: list[str] | None = None
    indicatorIds: list[str] | None = None
    countryCodes: list[str] | None = None
    startYear: str | None = Field(default=None, pattern=r"^\d{4}$")
    endYear: str | None = Field(default=None, pattern=r"^\d{4}$")
    startDate: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")

    @property
    def ids(self) -> list[str] | None:
        return self.seriesIds if self.seriesIds is not None else self.indicatorIds

    def date_range(self, default_start_year: int) -> DateRange:
        end_year = int(self.endYear) if self.endYear else None
        if self.startDate:
            end = DateRange.from_years(default_start_year, end_year).end
            return DateRange(date.fromisoformat(self.startDate), end)
        start_year = int(self.startYear) if self.startYear else default_start_year
        return DateRange.from_years(start_year, end_year)


# ── Helpers ──


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


def _authorized(request: Request, provided: str | None) -> bool:
    expected = request.app.state.settings.admin_upload_secret
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _unauthorized() -> JSONResponse:
    return _error(401, "Authentication required: provide a valid admin secret")


def _audit(action: str, result: ImportResult) -> None:
    logger.info("Audit %s: %s", action, json.dumps(result.to_dict()))


def _build_collector(request: Request, source: str) -> BaseCollector | None:
    if source not in COLLECTORS:
        return None
    return request.app.state.collector_factory(source, request.app.state.settings)


def _series_key(collector: BaseCollector) -> str:
    return "totalCountries" if collector.MULTI_COUNTRY else "totalSeries"


async def _read_import_body(request: Request) -> ImportRequest | JSONResponse:
    raw = await request.body()
    if not raw.strip():
        return ImportRequest()
    try:
        payload = json.loads(raw)
    except ValueError:
        return _error(400, "Invalid JSON in request body")
    try:
        return ImportRequest.model_validate(payload)
    except PydanticValidationError as exc:
        details = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
        return _error(400, "Invalid request body", details=details)


# ── Agency imports ──


@router.post("/{source}-import")
async def trigger_import(
    source: str,
    request: Request,
    x_admin_secret: str | None = Header(default=None),
):
    """Import historical data from one agency into the calendar.

    Existing releases are matched by natural key and updated; changed
    actuals are recorded in the release's revision history.
    """
    if not _authorized(request, x_admin_secret):
        return _unauthorized()

    collector = _build_collector(request, source)
    if collector is None:
        return _error(404, f"Unknown source: {source}")

    if not collector.is_configured:
        return _error(
            400,
            f"{collector.SOURCE_NAME.upper()} API key not configured",
            message=f"Set {collector.SOURCE_NAME.upper()}_API_KEY in the environment.",
        )

    body = await _read_import_body(request)
    if isinstance(body, JSONResponse):
        return body

    valid_ids = collector.default_ids()
    if body.ids is not None:
        invalid = [i for i in body.ids if i not in collector.catalog()]
        if invalid:
            return _error(400, "Invalid series IDs", invalidSeries=invalid, validSeriesIds=valid_ids)

    if body.countryCodes is not None:
        if not collector.MULTI_COUNTRY:
            return _error(400, f"{collector.SOURCE_LABEL} does not accept country codes")
        valid_countries = list(collector.countries())
        invalid = [c for c in body.countryCodes if c not in collector.countries()]
        if invalid:
            return _error(
                400,
                "Invalid country codes",
                invalidCountries=invalid,
                validCountryCodes=valid_countries,
            )

    try:
        date_range = body.date_range(collector.DEFAULT_START_YEAR)
    except (ValidationError, ValueError) as e:
        return _error(400, "Invalid request body", message=str(e))

    orchestrator = ImportOrchestrator(
        collector,
        request.app.state.reconciler,
        request_delay=request.app.state.settings.source_request_delay,
        audit_logger=_audit,
    )

    try:
        result = await run_in_threadpool(
            orchestrator.run,
            ids=body.ids,
            countries=body.countryCodes,
            date_range=date_range,
        )
    except ConfigurationError as e:
        return _error(400, f"{collector.SOURCE_NAME.upper()} API key not configured", message=str(e))
    except MacroCalError as e:
        logger.error("%s import error: %s", collector.SOURCE_LABEL, e)
        return _error(500, f"Internal server error during {collector.SOURCE_NAME} import", message=str(e))

    ok = result.failed_imports == 0
    return {
        "success": ok,
        "message": (
            f"{collector.SOURCE_LABEL} import completed successfully"
            if ok
            else f"{collector.SOURCE_LABEL} import completed with {result.failed_imports} failed imports"
        ),
        "result": result.to_dict(series_key=_series_key(collector)),
    }


@router.get("/{source}-import")
def import_status(
    source: str,
    request: Request,
    x_admin_secret: str | None = Header(default=None),
):
    """Describe an agency import: configuration state and the catalog."""
    if not _authorized(request, x_admin_secret):
        return _unauthorized()

    collector = _build_collector(request, source)
    if collector is None:
        return _error(404, f"Unknown source: {source}")

    available = [
        {"id": key, "name": cfg.name, "category": cfg.category, "frequency": cfg.frequency}
        for key, cfg in collector.catalog().items()
    ]
    payload = {
        "configured": collector.is_configured,
        "source": collector.SOURCE_LABEL,
        "maxIdsPerRequest": collector.max_ids_per_call,
        "availableSeries": available,
        "totalSeries": len(available),
    }
    if collector.MULTI_COUNTRY:
        countries = [{"code": code, "name": name} for code, name in collector.countries().items()]
        payload["availableCountries"] = countries
        payload["totalCountries"] = len(countries)
    return payload


# ── Releases ──


@router.get("/releases/{release_id}")
def get_release(
    release_id: int,
    request: Request,
    x_admin_secret: str | None = Header(default=None),
):
    """One stored release with its indicator and revision history."""
    if not _authorized(request, x_admin_secret):
        return _unauthorized()

    try:
        release = request.app.state.store.get_release(release_id)
    except StoreError as e:
        logger.error("Failed to load release %d: %s", release_id, e)
        return _error(500, "Failed to load release", message=str(e))

    if release is None:
        return _error(404, f"Release {release_id} not found")
    release["release_at"] = release["release_at"].isoformat()
    return release


# ── CSV upload ──


@router.post("/upload")
async def upload_csv(
    request: Request,
    secret: str | None = Form(default=None),
    file: UploadFile | None = File(default=None),
    x_admin_secret: str | None = Header(default=None),
):
    """Validate an uploaded CSV and reconcile its rows into the calendar.

    The whole file is rejected if any row fails validation.
    """
    if not _authorized(request, secret or x_admin_secret):
        return _unauthorized()

    if file is None or not file.filename:
        return _error(400, "No CSV file provided")

    if not file.filename.endswith(".csv") and file.content_type != "text/csv":
        return _error(400, "File must be a CSV")

    text = (await file.read()).decode("utf-8-sig", errors="replace")
    if not text.strip():
        return _error(400, "CSV file is empty")

    rows = parse_csv(text)
    if not rows:
        return _error(400, "CSV file contains no data rows")

    report = validate_rows(rows)
    if not report.ok:
        return _error(
            400,
            "CSV validation failed",
            details=[e.to_dict() for e in report.errors],
            totalErrors=report.total_errors,
        )

    indicators, releases = rows_to_candidates(report.rows)
    try:
        outcome = await run_in_threadpool(request.app.state.reconciler.reconcile, indicators, releases)
    except MacroCalError as e:
        logger.error("CSV upload failed for %s: %s", file.filename, e)
        return _error(500, "Failed to store uploaded releases", message=str(e))

    logger.info(
        "Uploaded %s: %d rows, %d releases inserted, %d updated",
        file.filename,
        len(report.rows),
        outcome.releases_inserted,
        outcome.releases_updated,
    )
    return {
        "success": True,
        "indicatorsUpserted": outcome.indicators_inserted + outcome.indicators_updated,
        "releasesInserted": outcome.releases_inserted,
        "releasesUpdated": outcome.releases_updated,
    }

"""Import orchestrator: one collector's output through the reconciliation engine.

A run:

1. resolves the requested ids against the collector catalog (unknown ids are
   recorded as failures, the rest proceed)
2. fetches chunk by chunk (``collector.fetch_chunk_size`` ids per call),
   with ``request_delay`` seconds between chunks
3. drops invalid observations (missing values, malformed or future dates)
4. builds indicator/release candidates and hands them to the engine in a
   single ``reconcile`` call
5. aggregates everything into an ``ImportResult``

Source failures for a chunk (``ValidationError``, ``SourceHTTPError``,
``ExhaustedRetriesError``) mark every id in that chunk as failed and the run
continues. ``ConfigurationError`` and ``StoreError`` stop the run.

Example:

    from macrocal.ingestion.collectors import FREDCollector
    from macrocal.pipelines.import_orchestrator import ImportOrchestrator

    orchestrator = ImportOrchestrator(FREDCollector(), engine)
    result = orchestrator.run(ids=["UNRATE", "CPIAUCSL"])
"""

import time
from collections.abc import Callable, Sequence
from datetime import date

from macrocal.ingestion.collectors.base_collector import BaseCollector, DataPoint, DateRange
from macrocal.reconciliation.engine import ReconciliationEngine
from macrocal.reconciliation.types import ImportResult
from macrocal.reconciliation.validation import filter_valid_observations
from macrocal.shared.errors import ExhaustedRetriesError, SourceHTTPError, ValidationError
from macrocal.shared.utils import setup_logger

logger = setup_logger(__name__)

AuditLogger = Callable[[str, ImportResult], None]

SOURCE_FAILURES = (ValidationError, SourceHTTPError, ExhaustedRetriesError)


class ImportOrchestrator:
    """Drive one collector through fetch, validation and reconciliation."""

    def __init__(
        self,
        collector: BaseCollector,
        engine: ReconciliationEngine,
        request_delay: float = 0.3,
        audit_logger: AuditLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.collector = collector
        self.engine = engine
        self.request_delay = request_delay
        self.audit_logger = audit_logger
        self._sleep = sleep

    @property
    def action(self) -> str:
        return f"{self.collector.SOURCE_NAME}_import"

    def run(
        self,
        ids: Sequence[str] | None = None,
        countries: Sequence[str] | None = None,
        date_range: DateRange | None = None,
        today: date | None = None,
    ) -> ImportResult:
        """Import *ids* (default: the whole catalog) and return the summary.

        Raises:
            ConfigurationError: The collector is missing a credential.
            StoreError: Reconciliation failed.
            ValidationError: *countries* contains an unknown code.
        """
        requested = list(ids) if ids else self.collector.default_ids()
        catalog = self.collector.catalog()
        known = [i for i in requested if i in catalog]
        errors = [f"{i}: Unknown series" for i in requested if i not in catalog]
        failed = set(i for i in requested if i not in catalog)

        fetch_kwargs = {}
        total_series = len(requested)
        if self.collector.MULTI_COUNTRY:
            resolved = self.collector.resolve_countries(countries)
            fetch_kwargs["countries"] = resolved
            total_series = len(resolved)

        logger.info(
            "Starting %s import: %d id(s)%s",
            self.collector.SOURCE_NAME,
            len(known),
            f", {total_series} countries" if self.collector.MULTI_COUNTRY else "",
        )

        points: list[DataPoint] = []
        chunk_size = self.collector.fetch_chunk_size
        for offset in range(0, len(known), chunk_size):
            chunk = known[offset : offset + chunk_size]
            if offset:
                self._sleep(self.request_delay)
            try:
                raw = self.collector.fetch_series(chunk, date_range, **fetch_kwargs)
                points.extend(self.collector.to_data_points(raw))
            except SOURCE_FAILURES as exc:
                logger.error("Failed to import %s: %s", ", ".join(chunk), exc)
                failed.update(chunk)
                errors.extend(f"{i}: {exc}" for i in chunk)

        filtered = filter_valid_observations(points, today)
        if filtered.skipped:
            logger.warning(
                "Skipped %d observation(s): %s", len(filtered.skipped), filtered.skip_reasons()
            )

        indicators = [self.collector.indicator_for(p) for p in filtered.valid]
        releases = [self.collector.release_for(p) for p in filtered.valid]
        outcome = self.engine.reconcile(indicators, releases)

        result = ImportResult(
            total_indicators=len(requested),
            total_series=total_series,
            successful_imports=len(requested) - len(failed),
            failed_imports=len(failed),
            total_observations=len(points),
            total_inserted=outcome.releases_inserted,
            total_updated=outcome.releases_updated,
            total_skipped=len(filtered.skipped),
            errors=tuple(errors),
        )
        self._log_summary(result)

        if self.audit_logger is not None:
            self.audit_logger(self.action, result)
        return result

    def _log_summary(self, result: ImportResult) -> None:
        logger.info("=" * 60)
        logger.info("%s import summary", self.collector.SOURCE_LABEL)
        logger.info("=" * 60)
        logger.info("Successful imports: %d", result.successful_imports)
        logger.info("Failed imports: %d", result.failed_imports)
        logger.info("Total observations: %d", result.total_observations)
        logger.info("Inserted: %d", result.total_inserted)
        logger.info("Updated: %d", result.total_updated)
        logger.info("Skipped: %d", result.total_skipped)
        for error in result.errors:
            logger.warning("  - %s", error)

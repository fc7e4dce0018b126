"""Historical import runner for the agency collectors.

Fetches series from one agency (or all of them), validates the observations
and reconciles them into the database.

Usage:
    # Import every catalogued FRED series from 2014 to today
    python -m macrocal.pipelines.run_import fred

    # Specific series and years
    python -m macrocal.pipelines.run_import bls --ids CUUR0000SA0 LNS14000000 --start-year 2020

    # Multi-country agencies accept country codes
    python -m macrocal.pipelines.run_import world-bank --countries US DE JP

    # Every configured agency in turn
    python -m macrocal.pipelines.run_import all

    # Health check only
    python -m macrocal.pipelines.run_import ecb --health-check

    # Export the observations to a Bronze CSV instead of writing to the database
    python -m macrocal.pipelines.run_import imf --export-only

Example:
    $ python -m macrocal.pipelines.run_import fred --ids UNRATE --start-year 2023
    [INFO] Starting fred import: 1 id(s)
    [INFO] Reconciled indicators +1/~0, releases +33/~0, 0 revision(s), 0 duplicate(s)
    [INFO] FRED import summary
    [INFO] Successful imports: 1
"""

import argparse
import sys

from macrocal.ingestion.collectors import COLLECTORS
from macrocal.ingestion.collectors.base_collector import BaseCollector, DateRange
from macrocal.pipelines.import_orchestrator import ImportOrchestrator
from macrocal.reconciliation.engine import ReconciliationEngine
from macrocal.shared.config import Config, Settings
from macrocal.shared.db import Base, SessionLocal, SQLAlchemyStore, engine
from macrocal.shared.errors import ConfigurationError, MacroCalError
from macrocal.shared.utils import setup_logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Import historical economic data from statistical agencies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "source",
        choices=sorted(COLLECTORS) + ["all"],
        help="Agency to import from, or 'all'",
    )

    parser.add_argument(
        "--ids",
        nargs="+",
        help="Series/indicator ids. Default: the whole catalog",
        metavar="ID",
    )

    parser.add_argument(
        "--countries",
        nargs="+",
        help="ISO2 country codes (IMF and World Bank only). Default: all",
        metavar="CODE",
    )

    parser.add_argument(
        "--start-year",
        type=int,
        default=BaseCollector.DEFAULT_START_YEAR,
        help=f"First year to import. Default: {BaseCollector.DEFAULT_START_YEAR}",
    )

    parser.add_argument(
        "--end-year",
        type=int,
        help="Last year to import. Default: current year",
    )

    parser.add_argument(
        "--health-check",
        action="store_true",
        help="Run health check only and exit",
    )

    parser.add_argument(
        "--export-only",
        action="store_true",
        help="Write a Bronze CSV snapshot and skip the database",
    )

    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before importing",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def build_collector(source: str, settings: Settings) -> BaseCollector:
    log_file = settings.logs_dir / f"{source.replace('-', '_')}_import.log"
    return COLLECTORS[source](settings=settings, log_file=log_file)


def run_source(source: str, args: argparse.Namespace, settings: Settings, logger) -> bool:
    """Import one agency. Returns True when every requested id succeeded."""
    collector = build_collector(source, settings)
    date_range = DateRange.from_years(args.start_year, args.end_year)

    if args.health_check:
        healthy = collector.health_check()
        logger.info("%s health check: %s", collector.SOURCE_LABEL, "PASSED" if healthy else "FAILED")
        return healthy

    if args.export_only:
        kwargs = {"countries": args.countries} if collector.MULTI_COUNTRY else {}
        points = collector.collect(args.ids or collector.default_ids(), date_range, **kwargs)
        if not points:
            logger.warning("No observations returned by %s", collector.SOURCE_LABEL)
            return False
        path = collector.export_csv(collector.to_frame(points), "observations")
        logger.info("Bronze snapshot written to %s", path)
        return True

    reconciler = ReconciliationEngine(
        SQLAlchemyStore(SessionLocal),
        lookup_chunk_size=settings.reconcile_chunk_size,
        max_update_workers=settings.reconcile_max_workers,
    )
    orchestrator = ImportOrchestrator(
        collector, reconciler, request_delay=settings.source_request_delay
    )
    result = orchestrator.run(
        ids=args.ids,
        countries=args.countries if collector.MULTI_COUNTRY else None,
        date_range=date_range,
    )
    return result.failed_imports == 0


def main(argv: list[str] | None = None) -> int:
    """Main import script."""
    args = parse_args(argv)

    logger = setup_logger(
        "run_import",
        level="DEBUG" if args.verbose else "INFO",
    )

    try:
        settings = Config.settings()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    if args.init_db:
        Base.metadata.create_all(engine)
        logger.info("Database tables created")

    sources = sorted(COLLECTORS) if args.source == "all" else [args.source]
    ok = True
    for source in sources:
        try:
            ok = run_source(source, args, settings, logger) and ok
        except ConfigurationError as e:
            logger.error("Skipping %s: %s", source, e)
            ok = False
        except MacroCalError as e:
            logger.error("%s import failed: %s", source, e, exc_info=args.verbose)
            ok = False

    if ok:
        logger.info("[SUCCESS] Import complete")
        return 0
    logger.warning("Import finished with failures")
    return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Reconciliation of candidate indicators and releases against the store.

Both phases follow the same shape:

1. deduplicate candidates by natural key (last write wins)
2. look up existing rows in chunks of ``lookup_chunk_size`` keys
3. partition into an insert set and an update set
4. insert the insert set in one batch; fan updates out on a bounded pool

Indicators are reconciled first so that every release candidate can be
resolved from its indicator's natural key to an ``indicator_id``.

When an update overwrites a non-null ``actual`` with a different non-null
value, the old and new values are appended to the release's
``revision_history`` before the overwrite. A null-to-value change is a first
publication, not a revision, and appends nothing.

No transaction spans the two phases. A failure aborts the phase in progress
with ``StoreError``; writes that already landed stay. Re-running the same
input is safe: matched rows are updated in place with identical values.

Example:

    from macrocal.reconciliation.engine import ReconciliationEngine
    from macrocal.shared.db import SessionLocal, SQLAlchemyStore

    engine = ReconciliationEngine(SQLAlchemyStore(SessionLocal))
    outcome = engine.reconcile(indicators, releases)
"""

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from macrocal.reconciliation.types import IndicatorCandidate, ReconcileOutcome, ReleaseCandidate
from macrocal.reconciliation.validation import deduplicate
from macrocal.shared.errors import StoreError, ValidationError
from macrocal.shared.utils import setup_logger, to_naive_utc, utc_now

logger = setup_logger(__name__)

IndicatorKey = tuple[str, str]
ReleaseKey = tuple[int, datetime, str]

RELEASE_VALUE_FIELDS = ("actual", "forecast", "previous", "revised", "unit", "notes")


class ReconciliationStore(Protocol):
    def find_indicators(self, keys: Sequence[IndicatorKey]) -> list[dict]: ...
    def insert_indicators(self, rows: Sequence[dict]) -> list[dict]: ...
    def update_indicator(self, indicator_id: int, fields: dict) -> None: ...
    def find_releases(self, keys: Sequence[ReleaseKey]) -> list[dict]: ...
    def insert_releases(self, rows: Sequence[dict]) -> list[dict]: ...
    def update_release(self, release_id: int, fields: dict) -> None: ...


@dataclass(frozen=True)
class _ReleaseUpdate:
    release_id: int
    fields: dict[str, Any]
    is_revision: bool


def revision_entry(previous_actual: str, new_actual: str, revised_at: datetime) -> dict[str, str]:
    return {
        "previous_actual": previous_actual,
        "new_actual": new_actual,
        "revised_at": revised_at.isoformat(),
    }


def _chunks(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield items[i : i + size]


class ReconciliationEngine:
    """Match candidates to stored rows by natural key and apply inserts/updates."""

    def __init__(
        self,
        store: ReconciliationStore,
        lookup_chunk_size: int = 50,
        max_update_workers: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if lookup_chunk_size < 1:
            raise ValueError("lookup_chunk_size must be at least 1")
        if max_update_workers < 1:
            raise ValueError("max_update_workers must be at least 1")
        self.store = store
        self.lookup_chunk_size = lookup_chunk_size
        self.max_update_workers = max_update_workers
        self._clock = clock

    def reconcile(
        self,
        indicators: Sequence[IndicatorCandidate],
        releases: Sequence[ReleaseCandidate],
    ) -> ReconcileOutcome:
        """Reconcile indicators, then releases.

        Raises:
            ValidationError: A release refers to an indicator not in *indicators*
                and not already stored.
            StoreError: Any lookup, insert or update failed.
        """
        ids, ind_inserted, ind_updated = self._reconcile_indicators(indicators)
        rel_inserted, rel_updated, revisions, duplicates = self._reconcile_releases(releases, ids)

        outcome = ReconcileOutcome(
            indicators_inserted=ind_inserted,
            indicators_updated=ind_updated,
            releases_inserted=rel_inserted,
            releases_updated=rel_updated,
            revisions_recorded=revisions,
            duplicate_releases=duplicates,
            indicator_ids=ids,
        )
        logger.info(
            "Reconciled indicators +%d/~%d, releases +%d/~%d, %d revision(s), %d duplicate(s)",
            ind_inserted,
            ind_updated,
            rel_inserted,
            rel_updated,
            revisions,
            duplicates,
        )
        return outcome

    # ------------------------------------------------------------------
    # Indicators
    # ------------------------------------------------------------------

    def _reconcile_indicators(
        self, candidates: Sequence[IndicatorCandidate]
    ) -> tuple[dict[IndicatorKey, int], int, int]:
        unique, _ = deduplicate(candidates, key=lambda c: c.key)
        if not unique:
            return {}, 0, 0

        existing: dict[IndicatorKey, int] = {}
        for chunk in _chunks([c.key for c in unique], self.lookup_chunk_size):
            for row in self.store.find_indicators(chunk):
                existing[(row["name"], row["country_code"])] = row["id"]

        to_insert = [c for c in unique if c.key not in existing]
        to_update = [c for c in unique if c.key in existing]

        self._fan_out(
            [
                (
                    self.store.update_indicator,
                    existing[c.key],
                    {
                        "category": c.category,
                        "source_name": c.source_name,
                        "source_url": c.source_url,
                    },
                )
                for c in to_update
            ]
        )

        ids = dict(existing)
        if to_insert:
            for row in self.store.insert_indicators([c.to_row() for c in to_insert]):
                ids[(row["name"], row["country_code"])] = row["id"]

        return ids, len(to_insert), len(to_update)

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def _reconcile_releases(
        self, candidates: Sequence[ReleaseCandidate], indicator_ids: dict[IndicatorKey, int]
    ) -> tuple[int, int, int, int]:
        missing = {c.indicator_key for c in candidates if c.indicator_key not in indicator_ids}
        if missing:
            indicator_ids.update(self._lookup_indicator_ids(sorted(missing)))
            unresolved = [k for k in missing if k not in indicator_ids]
            if unresolved:
                raise ValidationError(
                    f"Releases refer to unknown indicators: {', '.join(f'{n} ({c})' for n, c in unresolved)}"
                )

        def release_key(c: ReleaseCandidate) -> ReleaseKey:
            return (indicator_ids[c.indicator_key], to_naive_utc(c.release_at), c.period)

        unique, duplicates = deduplicate(candidates, key=release_key)
        if not unique:
            return 0, 0, 0, duplicates
        if duplicates:
            logger.info("Collapsed %d duplicate release candidate(s)", duplicates)

        existing: dict[ReleaseKey, dict] = {}
        for chunk in _chunks([release_key(c) for c in unique], self.lookup_chunk_size):
            for row in self.store.find_releases(chunk):
                existing[(row["indicator_id"], to_naive_utc(row["release_at"]), row["period"])] = row

        to_insert: list[dict] = []
        updates: list[_ReleaseUpdate] = []
        for candidate in unique:
            key = release_key(candidate)
            current = existing.get(key)
            if current is None:
                to_insert.append(self._insert_row(candidate, key))
            else:
                updates.append(self._plan_update(candidate, current))

        self._fan_out([(self.store.update_release, u.release_id, u.fields) for u in updates])
        if to_insert:
            self.store.insert_releases(to_insert)

        revisions = sum(1 for u in updates if u.is_revision)
        return len(to_insert), len(updates), revisions, duplicates

    def _lookup_indicator_ids(self, keys: Sequence[IndicatorKey]) -> dict[IndicatorKey, int]:
        found: dict[IndicatorKey, int] = {}
        for chunk in _chunks(list(keys), self.lookup_chunk_size):
            for row in self.store.find_indicators(chunk):
                found[(row["name"], row["country_code"])] = row["id"]
        return found

    @staticmethod
    def _insert_row(candidate: ReleaseCandidate, key: ReleaseKey) -> dict:
        indicator_id, release_at, period = key
        row = {"indicator_id": indicator_id, "release_at": release_at, "period": period}
        for field in RELEASE_VALUE_FIELDS:
            row[field] = getattr(candidate, field)
        row["revision_history"] = []
        return row

    def _plan_update(self, candidate: ReleaseCandidate, current: dict) -> _ReleaseUpdate:
        # blank candidate fields never erase stored values
        fields = {
            field: getattr(candidate, field)
            for field in RELEASE_VALUE_FIELDS
            if getattr(candidate, field) is not None
        }

        previous_actual = current.get("actual")
        new_actual = candidate.actual
        is_revision = (
            previous_actual is not None and new_actual is not None and previous_actual != new_actual
        )
        if is_revision:
            history = list(current.get("revision_history") or [])
            history.append(revision_entry(previous_actual, new_actual, self._clock()))
            fields["revision_history"] = history

        return _ReleaseUpdate(current["id"], fields, is_revision)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _fan_out(self, calls: Sequence[tuple[Callable[[int, dict], None], int, dict]]) -> None:
        """Run per-row updates concurrently; wait for all, then raise the first failure."""
        if not calls:
            return
        workers = min(self.max_update_workers, len(calls))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reconcile") as pool:
            futures = [pool.submit(fn, row_id, fields) for fn, row_id, fields in calls]
        errors = [f.exception() for f in futures if f.exception() is not None]
        if errors:
            first = errors[0]
            logger.error("%d of %d update(s) failed; first error: %s", len(errors), len(calls), first)
            if isinstance(first, StoreError):
                raise first
            raise StoreError(f"Update failed: {first}") from first

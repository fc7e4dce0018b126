"""
SQLAlchemy-backed store for indicators, releases and the request log.

The reconciliation engine and the rate limiter only ever talk to this class:
keyed lookups, one batched insert per call, and per-row updates. Every
SQLAlchemy exception is wrapped in ``StoreError`` here so nothing above this
module has to know which database is underneath.

Rows cross the boundary as plain dicts. Related records may come back from
some backends as a single object or as a one-element list; ``coerce_relation``
normalizes that before any caller sees it.

Example:

    from macrocal.shared.db import SQLAlchemyStore, SessionLocal

    store = SQLAlchemyStore(SessionLocal)
    rows = store.find_indicators([("CPI", "US")])
"""

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, sessionmaker

from macrocal.shared.errors import StoreError
from macrocal.shared.utils import setup_logger, to_naive_utc, utc_now

from .models import Indicator, Release, RequestLog
from .session import get_db

logger = setup_logger(__name__)

IndicatorKey = tuple[str, str]
ReleaseKey = tuple[int, datetime, str]

INDICATOR_UPDATE_FIELDS = ("category", "source_name", "source_url")
RELEASE_UPDATE_FIELDS = (
    "actual",
    "forecast",
    "previous",
    "revised",
    "unit",
    "notes",
    "revision_history",
)


def coerce_relation(value: Any) -> dict | None:
    """Normalize a related record that may be an object or a one-element list."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return dict(value[0]) if value else None
    return dict(value)


def coerce_history(value: Any) -> list[dict]:
    """Normalize a revision_history column value to a list of entries."""
    if value is None:
        return []
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else []
    return [dict(entry) for entry in value]


def _indicator_dict(row: Indicator) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "country_code": row.country_code,
        "category": row.category,
        "source_name": row.source_name,
        "source_url": row.source_url,
    }


def _release_dict(row: Release) -> dict:
    return {
        "id": row.id,
        "indicator_id": row.indicator_id,
        "release_at": row.release_at,
        "period": row.period,
        "actual": row.actual,
        "forecast": row.forecast,
        "previous": row.previous,
        "revised": row.revised,
        "unit": row.unit,
        "notes": row.notes,
        "revision_history": coerce_history(row.revision_history),
    }


class SQLAlchemyStore:
    """Keyed lookup/insert/update service over the ORM models."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Indicators
    # ------------------------------------------------------------------

    def find_indicators(self, keys: Sequence[IndicatorKey]) -> list[dict]:
        """Return stored indicators matching any (name, country_code) in *keys*."""
        if not keys:
            return []
        condition = or_(
            *(and_(Indicator.name == name, Indicator.country_code == country) for name, country in keys)
        )
        try:
            with get_db(self._session_factory) as db:
                rows = db.execute(select(Indicator).where(condition)).scalars().all()
                return [_indicator_dict(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch existing indicators: {e}") from e

    def insert_indicators(self, rows: Sequence[dict]) -> list[dict]:
        """Insert *rows* in one transaction and return them with assigned ids."""
        if not rows:
            return []
        try:
            with get_db(self._session_factory) as db:
                objs = [Indicator(**row) for row in rows]
                db.add_all(objs)
                db.flush()
                return [_indicator_dict(obj) for obj in objs]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert new indicators: {e}") from e

    def update_indicator(self, indicator_id: int, fields: dict) -> None:
        values = {k: v for k, v in fields.items() if k in INDICATOR_UPDATE_FIELDS}
        if not values:
            return
        try:
            with get_db(self._session_factory) as db:
                result = db.execute(
                    update(Indicator).where(Indicator.id == indicator_id).values(**values)
                )
                if result.rowcount == 0:
                    raise StoreError(f"Indicator {indicator_id} not found")
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update indicator {indicator_id}: {e}") from e

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def find_releases(self, keys: Sequence[ReleaseKey]) -> list[dict]:
        """Return stored releases matching any (indicator_id, release_at, period)."""
        if not keys:
            return []
        condition = or_(
            *(
                and_(
                    Release.indicator_id == indicator_id,
                    Release.release_at == to_naive_utc(release_at),
                    Release.period == period,
                )
                for indicator_id, release_at, period in keys
            )
        )
        try:
            with get_db(self._session_factory) as db:
                rows = db.execute(select(Release).where(condition)).scalars().all()
                return [_release_dict(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch existing releases: {e}") from e

    def insert_releases(self, rows: Sequence[dict]) -> list[dict]:
        """Insert *rows* in one transaction and return them with assigned ids."""
        if not rows:
            return []
        try:
            with get_db(self._session_factory) as db:
                objs = []
                for row in rows:
                    values = dict(row)
                    values["release_at"] = to_naive_utc(values["release_at"])
                    values.setdefault("revision_history", [])
                    objs.append(Release(**values))
                db.add_all(objs)
                db.flush()
                return [_release_dict(obj) for obj in objs]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert releases: {e}") from e

    def update_release(self, release_id: int, fields: dict) -> None:
        values = {k: v for k, v in fields.items() if k in RELEASE_UPDATE_FIELDS}
        if not values:
            return
        try:
            with get_db(self._session_factory) as db:
                result = db.execute(update(Release).where(Release.id == release_id).values(**values))
                if result.rowcount == 0:
                    raise StoreError(f"Release {release_id} not found")
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update release {release_id}: {e}") from e

    def get_release(self, release_id: int) -> dict | None:
        """Fetch one release with its indicator attached under ``"indicator"`` (admin release view)."""
        try:
            with get_db(self._session_factory) as db:
                row = db.execute(
                    select(Release)
                    .options(selectinload(Release.indicator))
                    .where(Release.id == release_id)
                ).scalar_one_or_none()
                if row is None:
                    return None
                data = _release_dict(row)
                data["indicator"] = coerce_relation(
                    _indicator_dict(row.indicator) if row.indicator is not None else None
                )
                return data
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch release {release_id}: {e}") from e

    # ------------------------------------------------------------------
    # Request log
    # ------------------------------------------------------------------

    def count_requests(self, api_key_id: str, since: datetime) -> int:
        """Count request-log rows for *api_key_id* at or after *since*."""
        try:
            with get_db(self._session_factory) as db:
                count = db.execute(
                    select(func.count(RequestLog.id)).where(
                        RequestLog.api_key_id == api_key_id,
                        RequestLog.created_at >= to_naive_utc(since),
                    )
                ).scalar_one()
                return int(count or 0)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to count requests: {e}") from e

    def log_request(self, api_key_id: str, endpoint: str, at: datetime | None = None) -> None:
        try:
            with get_db(self._session_factory) as db:
                db.add(
                    RequestLog(
                        api_key_id=api_key_id,
                        endpoint=endpoint,
                        created_at=to_naive_utc(at) if at else utc_now(),
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to log request: {e}") from e

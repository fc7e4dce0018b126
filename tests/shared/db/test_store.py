"""Tests for the SQLAlchemy store boundary."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from macrocal.shared.db import SQLAlchemyStore, coerce_history, coerce_relation
from macrocal.shared.errors import StoreError

RELEASE_AT = datetime(2024, 1, 11, 13, 30)


def _indicator_row(name: str = "CPI", country: str = "US") -> dict:
    return {
        "name": name,
        "country_code": country,
        "category": "Inflation",
        "source_name": "BLS",
        "source_url": "https://www.bls.gov",
    }


def _release_row(indicator_id: int, period: str = "Dec 2023", actual: str = "3.1") -> dict:
    return {
        "indicator_id": indicator_id,
        "release_at": RELEASE_AT,
        "period": period,
        "actual": actual,
        "unit": "%",
    }


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------


class TestIndicators:
    def test_insert_returns_ids(self, store):
        rows = store.insert_indicators([_indicator_row(), _indicator_row("GDP")])

        assert [r["name"] for r in rows] == ["CPI", "GDP"]
        assert all(isinstance(r["id"], int) for r in rows)

    def test_find_by_natural_key(self, store):
        store.insert_indicators([_indicator_row("CPI", "US"), _indicator_row("CPI", "GB")])

        found = store.find_indicators([("CPI", "GB"), ("GDP", "US")])

        assert [(r["name"], r["country_code"]) for r in found] == [("CPI", "GB")]

    def test_find_empty_keys(self, store):
        assert store.find_indicators([]) == []

    def test_update_indicator(self, store):
        [row] = store.insert_indicators([_indicator_row()])

        store.update_indicator(row["id"], {"category": "Prices", "name": "ignored"})

        [found] = store.find_indicators([("CPI", "US")])
        assert found["category"] == "Prices"

    def test_update_missing_indicator(self, store):
        with pytest.raises(StoreError, match="Indicator 999 not found"):
            store.update_indicator(999, {"category": "Prices"})

    def test_duplicate_insert_wrapped(self, store):
        store.insert_indicators([_indicator_row()])
        with pytest.raises(StoreError, match="Failed to insert new indicators"):
            store.insert_indicators([_indicator_row()])


# ---------------------------------------------------------------------------
# Releases
# ---------------------------------------------------------------------------


class TestReleases:
    @pytest.fixture
    def indicator_id(self, store) -> int:
        return store.insert_indicators([_indicator_row()])[0]["id"]

    def test_insert_and_find(self, store, indicator_id):
        [inserted] = store.insert_releases([_release_row(indicator_id)])

        assert inserted["revision_history"] == []
        found = store.find_releases([(indicator_id, RELEASE_AT, "Dec 2023")])
        assert [r["id"] for r in found] == [inserted["id"]]
        assert found[0]["unit"] == "%"

    def test_find_with_aware_datetime(self, store, indicator_id):
        store.insert_releases([_release_row(indicator_id)])
        aware = RELEASE_AT.replace(tzinfo=timezone.utc)

        assert len(store.find_releases([(indicator_id, aware, "Dec 2023")])) == 1

    def test_find_period_mismatch(self, store, indicator_id):
        store.insert_releases([_release_row(indicator_id)])
        assert store.find_releases([(indicator_id, RELEASE_AT, "Q4 2023")]) == []

    def test_update_release(self, store, indicator_id):
        [row] = store.insert_releases([_release_row(indicator_id)])
        history = [{"previous_actual": "3.1", "new_actual": "3.2", "revised_at": "2024-02-01T09:00:00"}]

        store.update_release(row["id"], {"actual": "3.2", "revision_history": history})

        release = store.get_release(row["id"])
        assert release["actual"] == "3.2"
        assert release["revision_history"] == history

    def test_update_missing_release(self, store):
        with pytest.raises(StoreError, match="Release 42 not found"):
            store.update_release(42, {"actual": "1"})

    def test_empty_update_is_noop(self, store, indicator_id):
        [row] = store.insert_releases([_release_row(indicator_id)])
        store.update_release(row["id"], {})
        assert store.get_release(row["id"])["actual"] == "3.1"

    def test_get_release_with_indicator(self, store, indicator_id):
        [row] = store.insert_releases([_release_row(indicator_id)])

        release = store.get_release(row["id"])

        assert release["indicator"]["name"] == "CPI"
        assert release["indicator"]["id"] == indicator_id

    def test_get_release_missing(self, store):
        assert store.get_release(123) is None


# ---------------------------------------------------------------------------
# Request log
# ---------------------------------------------------------------------------


class TestRequestLog:
    def test_count_within_window(self, store):
        now = datetime(2024, 6, 1, 12, 0)
        store.log_request("key-1", "/api/v1/usage", now - timedelta(seconds=90))
        store.log_request("key-1", "/api/v1/usage", now - timedelta(seconds=30))
        store.log_request("key-1", "/api/v1/usage", now)
        store.log_request("key-2", "/api/v1/usage", now)

        assert store.count_requests("key-1", now - timedelta(seconds=60)) == 2
        assert store.count_requests("key-2", now - timedelta(seconds=60)) == 1
        assert store.count_requests("key-3", now - timedelta(seconds=60)) == 0

    def test_log_defaults_to_now(self, store):
        store.log_request("key-1", "/api/v1/usage")
        assert store.count_requests("key-1", datetime.now(timezone.utc) - timedelta(minutes=1)) == 1


class TestErrorWrapping:
    def test_sqlalchemy_error_wrapped(self):
        factory = Mock(side_effect=OperationalError("SELECT 1", {}, Exception("db down")))
        store = SQLAlchemyStore(factory)

        with pytest.raises(StoreError, match="Failed to count requests"):
            store.count_requests("key-1", datetime(2024, 1, 1))


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


class TestCoercion:
    def test_relation_object(self):
        assert coerce_relation({"id": 1}) == {"id": 1}

    def test_relation_list(self):
        assert coerce_relation([{"id": 1}]) == {"id": 1}

    def test_relation_empty(self):
        assert coerce_relation([]) is None
        assert coerce_relation(None) is None

    def test_history_from_json_string(self):
        assert coerce_history('[{"previous_actual": "1", "new_actual": "2"}]') == [
            {"previous_actual": "1", "new_actual": "2"}
        ]

    def test_history_blank(self):
        assert coerce_history(None) == []
        assert coerce_history("") == []

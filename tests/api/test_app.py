"""Tests for the HTTP surface: admin imports, CSV upload and usage."""

import dataclasses
import json
from datetime import datetime
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from macrocal.api.app import create_app
from macrocal.api.rate_limit import FREE_TIER_LIMIT
from macrocal.ingestion.collectors import COLLECTORS

SECRET_HEADERS = {"X-Admin-Secret": "test-secret"}
RELEASE_AT = datetime(2024, 1, 11, 13, 30)

CSV_HEADER = "indicator_name,country_code,category,source_name,source_url,release_at,period,actual,forecast,previous,revised,unit,notes"
CSV_ROW = "CPI YoY,US,Inflation,BLS,https://www.bls.gov,2024-01-11T13:30:00Z,Dec 2023,3.4,3.2,3.1,,%,"


def _make_response(json_data, status: int = 200) -> Mock:
    resp = Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = json.dumps(json_data)
    resp.content = resp.text.encode()
    resp.json.return_value = json_data
    return resp


def _fred_observations(method, url, timeout=None, params=None, **kwargs):
    return _make_response(
        {
            "observations": [
                {"date": "2024-01-01", "value": "3.7"},
                {"date": "2024-02-01", "value": "3.9"},
            ]
        }
    )


@pytest.fixture
def http_session():
    session = Mock()
    session.request.side_effect = _fred_observations
    return session


def _client(settings, store, http_session) -> TestClient:
    def factory(source, s):
        return COLLECTORS[source](settings=s, session=http_session, sleep=Mock())

    return TestClient(create_app(settings=settings, store=store, collector_factory=factory))


@pytest.fixture
def client(settings, store, http_session) -> TestClient:
    return _client(settings, store, http_session)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# Agency imports
# ---------------------------------------------------------------------------


class TestImportRoutes:
    def test_missing_secret(self, client):
        response = client.post("/admin/fred-import")
        assert response.status_code == 401
        assert response.json()["error"].startswith("Authentication required")

    def test_wrong_secret(self, client):
        response = client.post("/admin/fred-import", headers={"X-Admin-Secret": "nope"})
        assert response.status_code == 401

    def test_unknown_source(self, client):
        response = client.post("/admin/nowhere-import", headers=SECRET_HEADERS)
        assert response.status_code == 404

    def test_invalid_series(self, client, http_session):
        response = client.post(
            "/admin/fred-import", headers=SECRET_HEADERS, json={"seriesIds": ["UNRATE", "BOGUS"]}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid series IDs"
        assert body["invalidSeries"] == ["BOGUS"]
        assert "UNRATE" in body["validSeriesIds"]
        http_session.request.assert_not_called()

    def test_invalid_year(self, client):
        response = client.post("/admin/fred-import", headers=SECRET_HEADERS, json={"startYear": "20"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_invalid_json(self, client):
        response = client.post(
            "/admin/fred-import",
            headers={**SECRET_HEADERS, "Content-Type": "application/json"},
            content=b"{not json",
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON in request body"

    def test_fred_not_configured(self, settings, store, http_session):
        client = _client(dataclasses.replace(settings, fred_api_key=None), store, http_session)

        response = client.post("/admin/fred-import", headers=SECRET_HEADERS)

        assert response.status_code == 400
        assert response.json()["error"] == "FRED API key not configured"

    def test_country_codes_rejected_for_single_country_source(self, client):
        response = client.post("/admin/fred-import", headers=SECRET_HEADERS, json={"countryCodes": ["US"]})
        assert response.status_code == 400

    def test_invalid_country_codes(self, client):
        response = client.post(
            "/admin/world-bank-import", headers=SECRET_HEADERS, json={"countryCodes": ["US", "ZZ"]}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["invalidCountries"] == ["ZZ"]
        assert "US" in body["validCountryCodes"]

    def test_import_then_reimport(self, client):
        payload = {"seriesIds": ["UNRATE"], "startYear": "2024", "endYear": "2024"}

        first = client.post("/admin/fred-import", headers=SECRET_HEADERS, json=payload)
        second = client.post("/admin/fred-import", headers=SECRET_HEADERS, json=payload)

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert first.json()["result"]["totalInserted"] == 2
        assert first.json()["result"]["totalUpdated"] == 0
        assert second.json()["result"]["totalInserted"] == 0
        assert second.json()["result"]["failedImports"] == 0

    def test_import_status(self, client):
        response = client.get("/admin/fred-import", headers=SECRET_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["configured"] is True
        assert body["maxIdsPerRequest"] == 50
        assert body["totalSeries"] == len(body["availableSeries"])
        assert {"id", "name", "category", "frequency"} <= set(body["availableSeries"][0])

    def test_multi_country_status(self, client):
        body = client.get("/admin/world-bank-import", headers=SECRET_HEADERS).json()
        assert body["totalCountries"] == len(body["availableCountries"])


# ---------------------------------------------------------------------------
# CSV upload
# ---------------------------------------------------------------------------


class TestUpload:
    def _upload(self, client, content: bytes, filename: str = "releases.csv", content_type: str = "text/csv"):
        return client.post(
            "/admin/upload",
            data={"secret": "test-secret"},
            files={"file": (filename, content, content_type)},
        )

    def test_requires_secret(self, client):
        response = client.post(
            "/admin/upload", files={"file": ("releases.csv", CSV_HEADER.encode(), "text/csv")}
        )
        assert response.status_code == 401

    def test_header_secret_accepted(self, client):
        response = client.post(
            "/admin/upload",
            headers=SECRET_HEADERS,
            files={"file": ("releases.csv", f"{CSV_HEADER}\n{CSV_ROW}".encode(), "text/csv")},
        )
        assert response.status_code == 200

    def test_success(self, client, store):
        response = self._upload(client, f"{CSV_HEADER}\n{CSV_ROW}\n".encode())

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "indicatorsUpserted": 1,
            "releasesInserted": 1,
            "releasesUpdated": 0,
        }
        assert store.find_indicators([("CPI YoY", "US")])

    def test_revision_on_reupload(self, client, store):
        self._upload(client, f"{CSV_HEADER}\n{CSV_ROW}\n".encode())
        revised_row = CSV_ROW.replace(",3.4,", ",3.5,")

        response = self._upload(client, f"{CSV_HEADER}\n{revised_row}\n".encode())

        assert response.json()["releasesUpdated"] == 1
        [release] = store.find_releases(
            [(store.find_indicators([("CPI YoY", "US")])[0]["id"], RELEASE_AT, "Dec 2023")]
        )
        assert release["actual"] == "3.5"
        assert len(release["revision_history"]) == 1

    def test_not_csv(self, client):
        response = self._upload(client, b"hello", filename="notes.txt", content_type="text/plain")
        assert response.status_code == 400
        assert response.json()["error"] == "File must be a CSV"

    def test_empty_file(self, client):
        response = self._upload(client, b"   \n")
        assert response.json()["error"] == "CSV file is empty"

    def test_header_only(self, client):
        response = self._upload(client, CSV_HEADER.encode())
        assert response.json()["error"] == "CSV file contains no data rows"

    def test_validation_failure_rejects_whole_file(self, client, store):
        bad_row = CSV_ROW.replace("2024-01-11T13:30:00Z", "someday")

        response = self._upload(client, f"{CSV_HEADER}\n{CSV_ROW}\n{bad_row}\n".encode())

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "CSV validation failed"
        assert body["totalErrors"] == 1
        assert body["details"][0]["row"] == 3
        assert store.find_indicators([("CPI YoY", "US")]) == []


# ---------------------------------------------------------------------------
# Usage / rate limiting
# ---------------------------------------------------------------------------


class TestUsage:
    def test_missing_key(self, client):
        assert client.get("/api/v1/usage").status_code == 401

    def test_counts_requests(self, client):
        headers = {"X-API-Key": "key-1"}

        first = client.get("/api/v1/usage", headers=headers)
        second = client.get("/api/v1/usage", headers=headers)

        assert first.status_code == 200
        assert first.json()["plan"] == "Free"
        assert first.json()["remaining"] == FREE_TIER_LIMIT
        assert second.json()["remaining"] == FREE_TIER_LIMIT - 1
        assert second.headers["X-RateLimit-Limit"] == str(FREE_TIER_LIMIT)

    def test_limit_exceeded(self, client, store):
        for _ in range(FREE_TIER_LIMIT):
            store.log_request("key-1", "/api/v1/usage")

        response = client.get("/api/v1/usage", headers={"X-API-Key": "key-1"})

        assert response.status_code == 429
        assert response.json()["error"] == "Rate limit exceeded"
        assert response.headers["Retry-After"] == "60"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_paid_plan_not_limited(self, client, store):
        for _ in range(FREE_TIER_LIMIT):
            store.log_request("key-1", "/api/v1/usage")

        response = client.get("/api/v1/usage", headers={"X-API-Key": "key-1", "X-Plan": "Pro"})

        assert response.status_code == 200
        assert response.json()["limit"] == 600


# ---------------------------------------------------------------------------
# Release detail
# ---------------------------------------------------------------------------


class TestReleaseDetail:
    def _upload(self, client, row: str = CSV_ROW) -> None:
        client.post(
            "/admin/upload",
            headers=SECRET_HEADERS,
            files={"file": ("releases.csv", f"{CSV_HEADER}\n{row}\n".encode(), "text/csv")},
        )

    def _release_id(self, store) -> int:
        indicator_id = store.find_indicators([("CPI YoY", "US")])[0]["id"]
        return store.find_releases([(indicator_id, RELEASE_AT, "Dec 2023")])[0]["id"]

    def test_release_with_indicator_and_history(self, client, store):
        self._upload(client)
        self._upload(client, CSV_ROW.replace(",3.4,", ",3.5,"))

        response = client.get(f"/admin/releases/{self._release_id(store)}", headers=SECRET_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["actual"] == "3.5"
        assert body["release_at"] == "2024-01-11T13:30:00"
        assert body["indicator"]["name"] == "CPI YoY"
        assert body["indicator"]["country_code"] == "US"
        assert [(e["previous_actual"], e["new_actual"]) for e in body["revision_history"]] == [("3.4", "3.5")]

    def test_missing_release(self, client):
        response = client.get("/admin/releases/999", headers=SECRET_HEADERS)
        assert response.status_code == 404

    def test_requires_secret(self, client):
        assert client.get("/admin/releases/1").status_code == 401

"""Tests for API routes."""
import shutil
import tempfile
from io import BytesIO
from pathlib import Path

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from exportgate.config import settings
from exportgate.main import app
from exportgate.models import Session, SessionStatus
from exportgate.services import export_service, storage_service
from exportgate.services.provider_client import ProviderClient
from exportgate.services.tokens import issue_capability_token


SECRET = "route-capability-secret"
AUTH_SECRET = "route-auth-secret"
ORIGIN = "http://localhost:5173"


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def temp_storage(monkeypatch):
    """Use temporary storage for all tests."""
    temp_dir = Path(tempfile.mkdtemp())
    monkeypatch.setattr(storage_service, "base_path", temp_dir)
    storage_service._ensure_base_directory()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def provider_calls(monkeypatch):
    """Route provider traffic to an in-memory dataset of 80 records."""
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        if request.method == "DELETE":
            return httpx.Response(204)
        if "broken" in request.url.path:
            return httpx.Response(404)
        records = [
            {"title": f"Annonce {i}", "price": f"{(i + 1) * 10000} MGA", "url": f"https://site.example/{i}"}
            for i in range(80)
        ]
        return httpx.Response(200, json=records)

    def factory():
        return ProviderClient(base_url="https://provider.test/v2", transport=httpx.MockTransport(handler))

    monkeypatch.setattr(export_service, "provider_factory", factory)
    monkeypatch.setattr(export_service, "capability_secret", SECRET)
    monkeypatch.setattr(settings, "auth_jwt_secret", AUTH_SECRET)
    monkeypatch.setattr(settings, "allowed_origins", [ORIGIN, "http://localhost:3000"])
    return calls


def store_session(**fields):
    values = {
        "id": "sess_route1",
        "status": SessionStatus.FINISHED,
        "owner_user_id": "42",
        "dataset_id": "ds_1",
    }
    values.update(fields)
    session = Session(**values)
    storage_service.save_session(session)
    return session


def bearer(user_id):
    return {"Authorization": f"Bearer {jwt.encode({'userId': user_id}, AUTH_SECRET, algorithm='HS256')}"}


class TestHealthEndpoints:
    """Tests for health and root endpoints."""

    def test_health_check(self, client):
        """Test health check endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "service" in data

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert "version" in data


class TestExportEndpoint:
    """Tests for the export endpoint."""

    def test_csv_download(self, client, provider_calls):
        store_session(is_paid=True)
        response = client.get(
            "/api/export",
            params={"sessionId": "sess_route1", "format": "csv"},
            headers={**bearer(42), "Origin": ORIGIN},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="marketplace_data_sess_route1_')
        assert "filename*=UTF-8''marketplace_data_sess_route1_" in disposition
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert response.headers["access-control-allow-origin"] == ORIGIN
        assert response.headers["content-length"] == str(len(response.content))

        lines = response.content.decode("utf-8").splitlines()
        assert lines[0] == "Titre;Prix;Description;Localisation;URL;Date;Image URL"
        assert len(lines) == 51
        # provider dataset removed once the response went out
        assert ("DELETE", "/v2/datasets/ds_1") in provider_calls

    def test_excel_download_with_capability_token(self, client):
        store_session(owner_user_id="someone-else")
        token = issue_capability_token("sess_route1", SECRET)
        response = client.get("/api/export", params={"session_id": "sess_route1", "token": token})

        assert response.status_code == 200
        workbook = load_workbook(BytesIO(response.content))
        assert workbook["Données"].max_row == 51

    def test_token_header(self, client):
        store_session(download_token="legacy-tok", owner_user_id=None)
        headers = {"X-Session-Token": "legacy-tok"}
        first = client.get("/api/export", params={"sessionId": "sess_route1"}, headers=headers)
        second = client.get("/api/export", params={"sessionId": "sess_route1"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 402
        assert second.json()["code"] == "PAYMENT_REQUIRED"

    def test_provider_failure_still_returns_file(self, client, provider_calls):
        store_session(is_paid=True, dataset_id="broken", pack_id="pack-essentiel")
        response = client.get("/api/export", params={"sessionId": "sess_route1", "format": "csv"}, headers=bearer(42))

        assert response.status_code == 200
        assert 'filename="demo_data_sess_route1_' in response.headers["content-disposition"]
        assert len(response.content.decode("utf-8").splitlines()) == 151
        assert not any(method == "DELETE" for method, _ in provider_calls)

    def test_temporary_session(self, client):
        response = client.get("/api/export", params={"sessionId": "temp_xyz", "format": "csv"})
        assert response.status_code == 200
        assert storage_service.load_session("temp_xyz") is not None

    def test_missing_session_id(self, client):
        response = client.get("/api/export")
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_REQUEST"
        assert len(body["requestId"]) == 8
        assert "timestamp" in body

    def test_unsupported_format(self, client):
        store_session(is_paid=True)
        response = client.get("/api/export", params={"sessionId": "sess_route1", "format": "pdf"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"

    @pytest.mark.parametrize(
        "fields,headers,status,code",
        [
            ({"id": "sess_other"}, {}, 404, "NOT_FOUND"),
            ({}, {}, 402, "PAYMENT_REQUIRED"),
            ({"is_paid": True}, {}, 403, "NOT_OWNER"),
            ({"is_paid": True, "status": SessionStatus.RUNNING}, None, 425, "TOO_EARLY"),
        ],
    )
    def test_denials(self, client, provider_calls, fields, headers, status, code):
        store_session(**fields)
        response = client.get(
            "/api/export",
            params={"sessionId": "sess_route1"},
            headers=bearer(42) if headers is None else {**headers, "Origin": "https://evil.example"},
        )

        assert response.status_code == status
        body = response.json()
        assert body["code"] == code
        assert set(body) == {"code", "message", "requestId", "timestamp"}
        assert provider_calls == []
        if headers is not None:
            assert response.headers["access-control-allow-origin"] == ORIGIN

    def test_unexpected_error_hides_details(self, client, monkeypatch):
        async def explode(request):
            raise RuntimeError("database password is hunter2")

        monkeypatch.setattr(export_service, "export", explode)
        store_session(is_paid=True)
        response = client.get("/api/export", params={"sessionId": "sess_route1"}, headers=bearer(42))

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL"
        assert "hunter2" not in body["message"]


class TestSessionEndpoints:
    """Tests for session endpoints."""

    def test_get_session(self, client):
        store_session(is_paid=True, download_token="secret-tok", total_items=80)
        response = client.get("/api/sessions/sess_route1")

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"] == "sess_route1"
        assert data["status"] == "completed"
        assert data["has_dataset"] is True
        assert "download_token" not in data
        assert "owner_user_id" not in data

    def test_get_missing_session(self, client):
        response = client.get("/api/sessions/sess_nope")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_preview(self, client):
        store_session(is_paid=True)
        response = client.get("/api/sessions/sess_route1/preview")

        assert response.status_code == 200
        items = response.json()["items"]
        assert [item["title"] for item in items] == ["Annonce 0", "Annonce 1", "Annonce 2"]
        assert items[1]["price"] == "20000 MGA"

    def test_preview_unpaid(self, client):
        store_session()
        response = client.get("/api/sessions/sess_route1/preview")
        assert response.status_code == 402


class TestPackEndpoint:
    """Tests for the pack catalogue."""

    def test_list_packs(self, client):
        response = client.get("/api/packs")
        assert response.status_code == 200
        data = response.json()
        assert data["default_pack_id"] == "pack-decouverte"
        assert [pack["row_limit"] for pack in data["packs"]] == [50, 150, 350, 700, 1300]

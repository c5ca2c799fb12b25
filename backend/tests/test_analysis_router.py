"""
HTTP tests for the analysis router.

Storage calls are patched at the router, and the model client is replaced
through FastAPI's dependency overrides. The startup hook is not run.
"""

import io
import json
import zipfile
from unittest.mock import Mock, patch

import openpyxl
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.routers.analysis import get_analysis_client
from app.services.llm_client import ModelCallError

MODEL_REPLY = json.dumps({
    "tax_year": 2024,
    "properties": [{
        "address": "12 Elm St",
        "income": {"Rent": {"amount": 24000, "source_file": "lease.pdf"}},
    }],
    "email_draft": "Hi",
})

BLOBS = [
    {"blob_url": "https://x.supabase.co/storage/v1/object/sign/staging/u1/lease.pdf?t=1",
     "filename": "lease.pdf", "section": "files_current"},
    {"blob_url": "https://x.supabase.co/storage/v1/object/sign/staging/u1/notes.txt?t=1",
     "filename": "notes.txt", "section": "files_prior"},
]

RESULT = {
    "tax_year": 2024,
    "properties": [{
        "address": "12 Elm St",
        "income": {"Rent": {"amount": 24000, "source_file": "lease.pdf"}},
        "expenses": {"Repairs": {"amount": 450, "source_file": "lease.pdf"}},
    }],
    "all_files_detected": ["lease.pdf"],
}


@pytest.fixture
def model_client():
    client = Mock()
    client.analyze.return_value = MODEL_REPLY
    app.dependency_overrides[get_analysis_client] = lambda: client
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def http():
    return TestClient(app)


def _fake_download(url: str) -> bytes:
    return b"%PDF lease" if "lease.pdf" in url else b"tenant moved out"


# ---------------------------------------------------------------------------
# POST /api/analysis/analyze
# ---------------------------------------------------------------------------

class TestAnalyze:
    def test_success_returns_result_and_cleans_up(self, http, model_client):
        with patch("app.routers.analysis.download_staged_file", side_effect=_fake_download), \
             patch("app.routers.analysis.delete_staged_file") as mock_delete:
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["tax_year"] == 2024
        assert data["all_files_detected"] == ["lease.pdf", "notes.txt"]
        assert data["properties"][0]["income"]["Rent"]["amount"] == 24000
        assert mock_delete.call_count == 2

    def test_failed_download_is_skipped(self, http, model_client):
        def download(url):
            if "notes.txt" in url:
                raise Exception("Object not found")
            return b"%PDF lease"

        with patch("app.routers.analysis.download_staged_file", side_effect=download), \
             patch("app.routers.analysis.delete_staged_file") as mock_delete:
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 200
        assert response.json()["data"]["all_files_detected"] == ["lease.pdf"]
        assert mock_delete.call_count == 2

    def test_malformed_reply_returns_502_with_excerpt(self, http, model_client):
        model_client.analyze.return_value = "I cannot help with that."

        with patch("app.routers.analysis.download_staged_file", side_effect=_fake_download), \
             patch("app.routers.analysis.delete_staged_file") as mock_delete:
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["error_code"] == "malformed_response"
        assert detail["raw"] == "I cannot help with that."
        assert mock_delete.call_count == 2

    def test_empty_reply_returns_502(self, http, model_client):
        model_client.analyze.return_value = "   "

        with patch("app.routers.analysis.download_staged_file", side_effect=_fake_download), \
             patch("app.routers.analysis.delete_staged_file"):
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "empty_response"

    def test_model_failure_returns_502_and_still_cleans_up(self, http, model_client):
        model_client.analyze.side_effect = ModelCallError("Model API failed after 6 attempts.")

        with patch("app.routers.analysis.download_staged_file", side_effect=_fake_download), \
             patch("app.routers.analysis.delete_staged_file") as mock_delete:
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "model_call_failed"
        assert mock_delete.call_count == 2

    def test_cleanup_failure_does_not_mask_result(self, http, model_client):
        with patch("app.routers.analysis.download_staged_file", side_effect=_fake_download), \
             patch("app.routers.analysis.delete_staged_file", side_effect=Exception("denied")):
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 200

    def test_empty_blob_list_rejected(self, http, model_client):
        response = http.post("/api/analysis/analyze", json={"blobs": []})
        assert response.status_code == 422

    def test_missing_client_returns_503_and_still_cleans_up(self, http):
        with patch("app.routers.analysis.download_staged_file") as mock_download, \
             patch("app.routers.analysis.delete_staged_file") as mock_delete:
            response = http.post("/api/analysis/analyze", json={"blobs": BLOBS})

        assert response.status_code == 503
        assert response.json()["detail"]["error_code"] == "model_unavailable"
        mock_download.assert_not_called()
        assert mock_delete.call_count == 2


# ---------------------------------------------------------------------------
# POST /api/analysis/export
# ---------------------------------------------------------------------------

class TestExport:
    def test_returns_xlsx_attachment(self, http):
        response = http.post("/api/analysis/export", json=RESULT)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert "T776_Tax_Summary.xlsx" in response.headers["content-disposition"]
        wb = openpyxl.load_workbook(io.BytesIO(response.content))
        assert wb.sheetnames == ["12 Elm St", "Audit Trail"]


# ---------------------------------------------------------------------------
# POST /api/analysis/package
# ---------------------------------------------------------------------------

class TestPackage:
    def test_returns_zip_with_sources_and_workbook(self, http):
        response = http.post(
            "/api/analysis/package",
            data={"result": json.dumps(RESULT), "relative_paths": ["2024/lease.pdf"]},
            files=[("files", ("lease.pdf", b"%PDF lease", "application/pdf"))],
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert "T776_Audit_Package.zip" in response.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            names = zf.namelist()
            assert zf.read("Source_Documents/2024/lease.pdf") == b"%PDF lease"
        assert "T776_Tax_Summary.xlsx" in names

    def test_filename_used_without_relative_paths(self, http):
        response = http.post(
            "/api/analysis/package",
            data={"result": json.dumps(RESULT)},
            files=[("files", ("lease.pdf", b"%PDF lease", "application/pdf"))],
        )

        assert response.status_code == 200
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            assert "Source_Documents/lease.pdf" in zf.namelist()

    def test_invalid_result_returns_400(self, http):
        response = http.post(
            "/api/analysis/package",
            data={"result": "not json"},
            files=[("files", ("lease.pdf", b"x", "application/pdf"))],
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "invalid_result"


class TestHealth:
    def test_health(self, http):
        assert http.get("/health").json() == {"status": "ok"}

    def test_storage_health_unconfigured(self, http):
        with patch("app.main.get_supabase_admin", return_value=None):
            response = http.get("/health/storage")
        assert response.status_code == 503

"""
API tests for the assembled application (sheet_analyst/main.py).
Tests: lifespan startup, request-id middleware, body size limit,
router wiring, error format.
Startup probes the current interpreter; no LLM is contacted.
"""

import sys
import os

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

os.environ.setdefault("LLM_PROVIDER", "OLLAMA")


@pytest.fixture(scope="module")
def app_client():
    from sheet_analyst.main import app
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


class TestApplication:

    def test_request_id_header(self, app_client):
        r = app_client.get("/health/simple")
        assert r.status_code == 200
        assert len(r.headers["X-Request-ID"]) == 8

    def test_startup_created_directories(self, app_client):
        from sheet_analyst.core.config import settings
        for path in (settings.UPLOAD_DIR, settings.DATASET_DIR, settings.SCRIPT_DIR):
            assert os.path.isdir(path)

    def test_oversized_body_rejected(self, app_client):
        r = app_client.post(
            "/upload",
            content=b"x",
            headers={"content-length": str(100 * 1024 * 1024), "content-type": "application/octet-stream"},
        )
        assert r.status_code == 413

    def test_unknown_dataset_detail_format(self, app_client):
        r = app_client.get("/data/abcdef123456")
        assert r.status_code == 404
        assert r.json() == {"detail": "Data not found"}

    def test_all_routes_mounted(self, app_client):
        paths = {route.path for route in app_client.app.routes}
        for path in ("/upload", "/query", "/compare", "/data/{data_id}", "/health", "/"):
            assert path in paths


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

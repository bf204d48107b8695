"""
API tests for /upload and /data/{id} endpoints.
Tests: workbook parsing through the API, extension and content validation,
parse failures, dataset retrieval, upload cleanup.
Workbooks are generated with pandas/openpyxl; storage goes to the test dirs.
"""

import sys
import os

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

os.environ.setdefault("LLM_PROVIDER", "OLLAMA")

from fastapi import FastAPI
from sheet_analyst.core.config import settings
from sheet_analyst.routes.data import router as data_router
from sheet_analyst.routes.upload import router as upload_router

_app = FastAPI()
_app.include_router(upload_router)
_app.include_router(data_router)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def client():
    with TestClient(_app, raise_server_exceptions=False) as c:
        yield c


def _upload(client, name, content, mime=XLSX_MIME):
    return client.post("/upload", files={"file": (name, content, mime)})


# ────────────────────────────────────────────────────────────────────────────
# Successful uploads
# ────────────────────────────────────────────────────────────────────────────

class TestUploadSuccess:

    def test_workbook_parsed(self, client, workbook_path):
        with open(workbook_path, "rb") as f:
            r = _upload(client, "quarterly.xlsx", f.read())
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["original_name"] == "quarterly.xlsx"
        assert body["summary"] == "File contains 2 sheet(s): Q1, Q2. Total rows: 5"
        assert [s["name"] for s in body["sheets"]] == ["Q1", "Q2"]
        assert body["sheets"][0]["headers"] == ["Product", "Revenue"]
        assert body["sheets"][0]["row_count"] == 3

    def test_upload_file_removed_dataset_kept(self, client, workbook_path):
        with open(workbook_path, "rb") as f:
            r = _upload(client, "quarterly.xlsx", f.read())
        data_id = r.json()["id"]
        assert not any(n.endswith(".xlsx") for n in os.listdir(settings.UPLOAD_DIR))
        assert os.path.exists(os.path.join(settings.DATASET_DIR, f"{data_id}.json"))

    def test_data_endpoint(self, client, workbook_path):
        with open(workbook_path, "rb") as f:
            data_id = _upload(client, "quarterly.xlsx", f.read()).json()["id"]
        r = client.get(f"/data/{data_id}")
        assert r.status_code == 200
        body = r.json()
        assert body["id"] == data_id
        assert body["sheets"][1]["sample_data"] == [["Widget", 1500], ["Gadget", 910]]
        assert "created_at" in body


# ────────────────────────────────────────────────────────────────────────────
# Rejections
# ────────────────────────────────────────────────────────────────────────────

class TestUploadRejections:

    def test_wrong_extension(self, client):
        r = _upload(client, "data.csv", b"a,b\n1,2\n", "text/csv")
        assert r.status_code == 400
        assert r.json()["error_code"] == "VALIDATION_FAILED"

    def test_empty_file(self, client):
        r = _upload(client, "empty.xlsx", b"")
        assert r.status_code == 400

    def test_renamed_script(self, client):
        r = _upload(client, "sheet.xlsx", b"#!/bin/sh\necho hello\n")
        assert r.status_code == 400
        assert "Blocked file type" in r.json()["details"]

    def test_corrupt_workbook(self, client):
        r = _upload(client, "broken.xlsx", b"PK\x03\x04 definitely not a real zip archive")
        assert r.status_code == 422
        assert r.json()["error_code"] == "PARSE_FAILED"

    def test_unknown_dataset(self, client):
        r = client.get("/data/0123456789abcdef")
        assert r.status_code == 404

    def test_invalid_dataset_id(self, client):
        r = client.get("/data/..%2F..%2Fetc")
        assert r.status_code == 404


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""Tests for the FastAPI REST endpoints."""

import io
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from src.api.app import API_VERSION, app
from src.extraction.pipeline import FieldExtractor
from src.ocr.document_processor import DocumentProcessor, DocumentResult
from src.rendering.render_queue import RenderCancelledError


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Create a FastAPI test client with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


def _make_test_image_bytes() -> bytes:
    """Create a minimal PNG image as bytes."""
    img = Image.fromarray(np.zeros((100, 200, 3), dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _make_doc_result(invoice_ocr: dict[str, Any]) -> DocumentResult:
    """Create a DocumentResult from the sample invoice OCR output."""
    extraction = FieldExtractor().extract_page(invoice_ocr)
    return DocumentResult(
        source_file="invoice.pdf",
        page_count=2,
        pages=[],
        fields=extraction.fields,
        combined_text=extraction.raw_text,
    )


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_health_returns_200(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == API_VERSION
        assert isinstance(data["tesseract_available"], bool)

    def test_health_reports_idle_queue(self, client: TestClient) -> None:
        data = client.get("/health").json()
        assert data["render_queue"] == {
            "state": "idle",
            "pending": 0,
            "current_task": None,
        }


class TestRenderStatusEndpoint:
    """Tests for GET /render/status."""

    def test_idle(self, client: TestClient) -> None:
        response = client.get("/render/status")
        assert response.status_code == 200
        assert response.json()["state"] == "idle"


class TestExtractFromOCREndpoint:
    """Tests for POST /extract/ocr."""

    def test_single_labeled_line(self, client: TestClient) -> None:
        payload = {
            "lines": [
                {
                    "text": "Invoice Number: INV-2024-0001",
                    "confidence": 90,
                    "bbox": {"x0": 10, "y0": 20, "x1": 200, "y1": 40},
                }
            ]
        }
        response = client.post("/extract/ocr", json=payload)
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert len(data["fields"]) == 1
        field = data["fields"][0]
        assert field["type"] == "invoiceNumber"
        assert field["label"] == "Invoice Number"
        assert field["value"] == "INV-2024-0001"
        assert field["rawSourceText"] == "Invoice Number: INV-2024-0001"
        assert field["bbox"] == {"x": 10, "y": 20, "w": 190, "h": 20}

    def test_full_invoice(self, client: TestClient, invoice_ocr: dict) -> None:
        response = client.post("/extract/ocr", json=invoice_ocr)
        assert response.status_code == 200

        data = response.json()
        by_type = {f["type"]: f["value"] for f in data["fields"] if f["type"] != "text"}
        assert by_type["total"] == "1250.00"
        assert by_type["customer"] == "Globex Corporation"
        assert data["summary"]["total_fields"] == len(data["fields"])
        assert data["line_items"][0]["description"] == "Consulting services"
        assert data["raw_text"].startswith("Acme Supplies Inc.")

    def test_empty_result(self, client: TestClient) -> None:
        response = client.post("/extract/ocr", json={})
        assert response.status_code == 200
        data = response.json()
        assert data["fields"] == []
        assert data["summary"] == {"total_fields": 0, "average_confidence": 0}

    def test_missing_box_accepted(self, client: TestClient) -> None:
        payload = {"lines": [{"text": "Total: $10.00", "confidence": 88, "bbox": None}]}
        data = client.post("/extract/ocr", json=payload).json()
        assert data["fields"][0]["bbox"] == {"x": 0, "y": 0, "w": 100, "h": 20}

    def test_invalid_body(self, client: TestClient) -> None:
        response = client.post("/extract/ocr", json={"lines": [{"confidence": 90}]})
        assert response.status_code == 422


class TestExtractEndpoint:
    """Tests for POST /extract."""

    def test_rejects_unsupported_type(self, client: TestClient) -> None:
        response = client.post(
            "/extract",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert "Unsupported" in response.json()["detail"]

    def test_success(self, client: TestClient, invoice_ocr: dict) -> None:
        mock_process = AsyncMock(return_value=_make_doc_result(invoice_ocr))
        with patch.object(DocumentProcessor, "process", mock_process):
            response = client.post(
                "/extract",
                files={"file": ("invoice.png", _make_test_image_bytes(), "image/png")},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["page_count"] == 2
        assert any(f["type"] == "invoiceNumber" for f in data["fields"])
        _, filename = mock_process.await_args.args
        assert filename == "invoice.png"

    def test_superseded_render_is_conflict(self, client: TestClient) -> None:
        mock_process = AsyncMock(side_effect=RenderCancelledError("Superseded"))
        with patch.object(DocumentProcessor, "process", mock_process):
            response = client.post(
                "/extract",
                files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")},
            )
        assert response.status_code == 409

    def test_processing_error(self, client: TestClient) -> None:
        mock_process = AsyncMock(side_effect=RuntimeError("PDF conversion failed"))
        with patch.object(DocumentProcessor, "process", mock_process):
            response = client.post(
                "/extract",
                files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")},
            )
        assert response.status_code == 500
        assert "PDF conversion failed" in response.json()["detail"]

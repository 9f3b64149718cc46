"""Tests for conversion API routes"""

import pytest
from unittest.mock import patch


@pytest.mark.api
class TestConvertEndpoint:
    """Test cases for POST /api/convert"""

    def test_convert_docx_to_markdown(self, client, sample_docx):
        """Test a successful conversion returns a download link"""
        with open(sample_docx, "rb") as handle:
            response = client.post(
                "/api/convert",
                files={"file": ("report.docx", handle, "application/octet-stream")},
                data={"format": "md"},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "File converted successfully"
        assert data["originalName"] == "report.docx"
        assert data["convertedName"].startswith("report-")
        assert data["convertedName"].endswith(".md")
        assert data["downloadUrl"] == f"/api/download/{data['convertedName']}"

    def test_convert_without_image_backend(self, client, sample_png):
        """Test a conversion failure is reported as a server error"""
        with open(sample_png, "rb") as handle:
            response = client.post(
                "/api/convert",
                files={"file": ("photo.png", handle, "image/png")},
                data={"format": "ico"},
            )

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Conversion failed"
        assert "image" in data["details"]
        assert "no image backend was available" in data["details"]

    def test_convert_without_file(self, client):
        response = client.post("/api/convert", data={"format": "md"})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "No file uploaded",
            "details": None,
        }

    @pytest.mark.parametrize("data", [{}, {"format": ""}, {"format": "../etc"}])
    def test_convert_without_format(self, client, data):
        response = client.post(
            "/api/convert",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            data=data,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Target format not specified"

    def test_convert_unsupported_type(self, client):
        response = client.post(
            "/api/convert",
            files={"file": ("setup.exe", b"MZ", "application/octet-stream")},
            data={"format": "zip"},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid conversion request"
        assert "Unsupported file type '.exe'" in data["details"]

    def test_convert_oversized_upload(self, client, test_settings):
        payload = b"x" * (test_settings.max_file_size_bytes + 1)

        response = client.post(
            "/api/convert",
            files={"file": ("big.txt", payload, "text/plain")},
            data={"format": "md"},
        )

        assert response.status_code == 413
        assert response.json()["error"] == "File too large"
        assert list(test_settings.upload_dir.iterdir()) == []

    def test_uploads_are_removed(self, client, test_settings, sample_text):
        response = client.post(
            "/api/convert",
            files={"file": ("notes.txt", sample_text.encode("utf-8"), "text/plain")},
            data={"format": "md", "useCompression": "true", "quality": "high"},
        )

        assert response.status_code == 200
        assert list(test_settings.upload_dir.iterdir()) == []


@pytest.mark.api
class TestInfoEndpoints:
    """Test cases for informational endpoints"""

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "fastfile"
        assert data["status"] == "running"
        assert data["docs"] == "/docs"

    def test_formats_endpoint(self, client):
        response = client.get("/api/formats")

        assert response.status_code == 200
        data = response.json()
        assert list(data) == [
            "video", "audio", "image", "document", "spreadsheet", "presentation", "archive",
        ]
        assert "md" in data["document"]

    def test_capabilities_endpoint(self, client):
        response = client.get("/api/capabilities")

        assert response.status_code == 200
        data = response.json()
        assert data["ready"] is False
        assert data["categories"]["document"]["backends"] == ["builtin"]
        assert data["categories"]["image"]["output_formats"] == []
        assert "folder" in data["categories"]["archive"]["input_formats"]

    def test_health_endpoint(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "fastfile"
        assert data["trackedFiles"] == 0
        assert data["capabilitiesReady"] is False
        assert data["memory"]["rss"] > 0
        assert data["uptime"] >= 0

    def test_security_headers(self, client):
        response = client.get("/api/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "X-Process-Time" in response.headers

    def test_failed_requests_logged_as_warnings(self, client):
        with patch("fastfile.api.middleware.logger") as mock_logger:
            client.get("/api/download/never-converted.md")

        assert mock_logger.info.call_args.args[0].startswith(
            "Request: GET /api/download/never-converted.md"
        )
        assert mock_logger.warning.call_args.args[0].startswith("Response: 410")

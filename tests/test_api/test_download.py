"""Tests for download and cleanup API routes"""

import time

import pytest


def convert(client, name: str, content: bytes, target_format: str) -> dict:
    response = client.post(
        "/api/convert",
        files={"file": (name, content, "application/octet-stream")},
        data={"format": target_format},
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.api
class TestDownloadEndpoint:
    """Test cases for GET /api/download/{filename}"""

    def test_download_once(self, client, sample_docx, test_settings):
        """Test the artifact is served once and deleted afterwards"""
        data = convert(client, "report.docx", sample_docx.read_bytes(), "md")

        response = client.get(data["downloadUrl"])

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert response.headers["content-disposition"] == (
            f'attachment; filename="{data["convertedName"]}"'
        )
        assert response.text.startswith("# Quarterly Report")
        assert not (test_settings.output_dir / data["convertedName"]).exists()

        second = client.get(data["downloadUrl"])
        assert second.status_code == 410
        assert second.json()["code"] == "DOWNLOAD_EXPIRED"

    @pytest.mark.slow
    def test_download_after_expiry(self, client, sample_text, test_settings):
        data = convert(client, "notes.txt", sample_text.encode("utf-8"), "md")

        time.sleep(test_settings.artifact_expiry_seconds + 0.5)
        response = client.get(data["downloadUrl"])

        assert response.status_code == 410
        body = response.json()
        assert body["error"] == "DOWNLOAD_EXPIRED"
        assert body["message"] == (
            "Download link has expired. "
            "Files are only available for 2 seconds after conversion."
        )
        assert not (test_settings.output_dir / data["convertedName"]).exists()

    def test_download_unknown_file(self, client):
        response = client.get("/api/download/never-converted.md")

        assert response.status_code == 410
        assert response.json()["code"] == "DOWNLOAD_EXPIRED"

    def test_download_missing_on_disk(self, client, sample_text, test_settings):
        data = convert(client, "notes.txt", sample_text.encode("utf-8"), "md")
        (test_settings.output_dir / data["convertedName"]).unlink()

        response = client.get(data["downloadUrl"])

        assert response.status_code == 404
        assert response.json() == {
            "error": "FILE_NOT_FOUND",
            "message": "File not found. It may have been deleted or never existed.",
            "code": "FILE_NOT_FOUND",
        }
        assert client.get("/api/cleanup/stats").json()["trackedFiles"] == 0

    def test_download_archive_content_type(self, client, sample_text):
        data = convert(client, "notes.txt", sample_text.encode("utf-8"), "zip")

        response = client.get(data["downloadUrl"])

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert response.content[:2] == b"PK"


@pytest.mark.api
class TestCleanupStats:
    """Test cases for GET /api/cleanup/stats"""

    def test_empty_stats(self, client):
        response = client.get("/api/cleanup/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["trackedFiles"] == 0
        assert data["oldestFile"] is None
        assert data["newestFile"] is None
        assert data["fileExpiryTime"] == "2 seconds"
        assert "timestamp" in data

    def test_stats_follow_conversions(self, client, sample_text):
        first = convert(client, "first.txt", sample_text.encode("utf-8"), "md")
        second = convert(client, "second.txt", sample_text.encode("utf-8"), "md")

        data = client.get("/api/cleanup/stats").json()

        assert data["trackedFiles"] == 2
        assert data["oldestFile"] == first["convertedName"]
        assert data["newestFile"] == second["convertedName"]

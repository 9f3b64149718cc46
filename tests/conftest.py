"""Test configuration and fixtures"""

import pytest
import tempfile
from pathlib import Path
from fastapi.testclient import TestClient

from fastfile.app import create_app
from fastfile.artifacts.service import ArtifactLifecycleManager
from fastfile.core.config import Settings
from fastfile.core.types import UploadedFile
from fastfile.services.classifier import FileClassifier, get_extension
from fastfile.services.converter_registry import ConverterRegistry
from fastfile.services.dispatcher import ConversionDispatcher
from fastfile.services.file_service import FileService


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


@pytest.fixture
def temp_dir():
    """Temporary directory for tests"""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def test_settings(temp_dir):
    """Settings pointing at temporary directories, with probing disabled"""
    return Settings(
        debug=True,
        upload_dir=temp_dir / "uploads",
        output_dir=temp_dir / "output",
        temp_dir=temp_dir / "tmp",
        max_file_size_mb=1,
        artifact_expiry_seconds=2,
        backend_timeout_seconds=30,
        probe_backends_on_startup=False,
    )


@pytest.fixture
def short_expiry_settings(test_settings):
    """Same settings with an expiry window short enough to wait out"""
    return test_settings.model_copy(update={"artifact_expiry_seconds": 0.2})


@pytest.fixture
def classifier():
    return FileClassifier()


@pytest.fixture
def registry(test_settings):
    return ConverterRegistry(test_settings)


@pytest.fixture
def file_service(test_settings):
    return FileService(test_settings)


@pytest.fixture
def artifact_manager(test_settings):
    manager = ArtifactLifecycleManager(test_settings)
    yield manager
    manager.shutdown()


@pytest.fixture
def dispatcher(classifier, registry, file_service, artifact_manager):
    """Dispatcher wired to fresh service objects"""
    return ConversionDispatcher(classifier, registry, file_service, artifact_manager)


@pytest.fixture
def make_upload(file_service):
    """Write bytes into the upload directory as a stored upload"""

    def _make_upload(name: str, content: bytes) -> UploadedFile:
        path = file_service.upload_path_for(name)
        path.write_bytes(content)
        return UploadedFile(
            original_name=name,
            path=path,
            size=len(content),
            extension=get_extension(name),
        )

    return _make_upload


@pytest.fixture
def sample_text():
    """Plain text document with a title and three paragraphs"""
    return (
        "Quarterly Report\n"
        "\n"
        "Revenue grew in every region this quarter.\n"
        "\n"
        "Costs stayed flat while headcount\n"
        "increased slightly.\n"
        "\n"
        "The outlook for next quarter is stable.\n"
    )


@pytest.fixture
def sample_docx(temp_dir):
    """Word document built with python-docx"""
    from docx import Document

    document = Document()
    document.add_heading("Quarterly Report", 0)
    document.add_paragraph("Revenue grew in every region this quarter.")
    document.add_paragraph("The outlook for next quarter is stable.")
    path = temp_dir / "report.docx"
    document.save(str(path))
    return path


@pytest.fixture
def sample_png(temp_dir):
    """One pixel PNG image"""
    from PIL import Image

    path = temp_dir / "photo.png"
    Image.new("RGB", (1, 1), color=(255, 0, 0)).save(path)
    return path


@pytest.fixture
def client(test_settings):
    """Test client running the full application lifespan"""
    app = create_app(test_settings)
    with TestClient(app) as test_client:
        yield test_client

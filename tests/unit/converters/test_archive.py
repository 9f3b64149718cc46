"""Tests for archive conversion"""

import tarfile
import threading
import zipfile

import pytest
from unittest.mock import patch

from fastfile.core.exceptions import ConversionError, UnsupportedFormatError
from fastfile.services.capabilities import CapabilitySet
from fastfile.services.converters.archive import (
    FOLDER_FORMAT,
    MANIFEST_NAME,
    ArchiveCodec,
    ArchiveConverter,
    TarCodec,
    list_entries,
    read_manifest,
    write_manifest,
)

EXPECTED_ENTRIES = ["docs/", "docs/notes.txt", "readme.txt"]


@pytest.fixture
def archive_converter(test_settings):
    return ArchiveConverter(test_settings)


@pytest.fixture
def source_tree(temp_dir):
    """A small directory tree to archive"""
    root = temp_dir / "source"
    (root / "docs").mkdir(parents=True)
    (root / "readme.txt").write_text("hello", encoding="utf-8")
    (root / "docs" / "notes.txt").write_text("notes", encoding="utf-8")
    return root


@pytest.mark.unit
class TestArchiveConverter:
    """Extract, create and transcode"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("archive_format", [".zip", ".tar", ".tar.gz", ".tgz", ".tar.bz2"])
    async def test_round_trip(self, archive_converter, source_tree, temp_dir, archive_format):
        """Create then extract reproduces the entry names listed in the manifest"""
        archive_path = temp_dir / f"bundle{archive_format}"
        await archive_converter.convert(source_tree, archive_path, FOLDER_FORMAT, archive_format)

        destination = temp_dir / "extracted"
        result = await archive_converter.convert(
            archive_path, destination, archive_format, FOLDER_FORMAT
        )

        assert result == destination
        assert list_entries(destination, exclude=MANIFEST_NAME) == EXPECTED_ENTRIES
        assert read_manifest(destination) == EXPECTED_ENTRIES
        assert (destination / "docs" / "notes.txt").read_text(encoding="utf-8") == "notes"

    @pytest.mark.asyncio
    async def test_manifest_header(self, archive_converter, source_tree, temp_dir):
        archive_path = temp_dir / "bundle.zip"
        await archive_converter.create(source_tree, archive_path, ".zip")

        destination = await archive_converter.extract(archive_path, temp_dir / "out", ".zip")

        manifest = (destination / MANIFEST_NAME).read_text(encoding="utf-8")
        assert manifest.startswith("Extracted from: bundle.zip\nFiles extracted: 2\n\nContents:\n")

    @pytest.mark.asyncio
    async def test_create_from_single_file(self, archive_converter, temp_dir):
        source = temp_dir / "1234_report.pdf"
        source.write_bytes(b"%PDF-1.4")
        archive_path = temp_dir / "report.zip"

        await archive_converter.create(source, archive_path, ".zip", arcname="report.pdf")

        with zipfile.ZipFile(archive_path) as archive:
            assert archive.namelist() == ["report.pdf"]

    @pytest.mark.asyncio
    async def test_transcode_zip_to_tar_gz_cleans_up(
        self, archive_converter, source_tree, temp_dir, test_settings
    ):
        zip_path = temp_dir / "bundle.zip"
        await archive_converter.create(source_tree, zip_path, ".zip")

        tar_path = temp_dir / "bundle.tar.gz"
        await archive_converter.convert(zip_path, tar_path, ".zip", ".tar.gz")

        with tarfile.open(tar_path, "r:gz") as archive:
            names = sorted(archive.getnames())
        assert names == ["docs", "docs/notes.txt", "readme.txt"]
        assert MANIFEST_NAME not in names
        assert list(test_settings.temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_transcode_failure_cleans_up(
        self, archive_converter, temp_dir, test_settings
    ):
        broken = temp_dir / "broken.zip"
        broken.write_bytes(b"this is not a zip archive")

        with pytest.raises(ConversionError) as exc_info:
            await archive_converter.convert(broken, temp_dir / "out.tar", ".zip", ".tar")

        assert "archive conversion from .zip to .folder failed" in str(exc_info.value)
        assert list(test_settings.temp_dir.iterdir()) == []
        assert not (temp_dir / "out.tar").exists()

    @pytest.mark.asyncio
    async def test_seven_zip_requires_probe(self, archive_converter, source_tree, temp_dir):
        with pytest.raises(UnsupportedFormatError):
            await archive_converter.create(source_tree, temp_dir / "bundle.7z", ".7z")

    @pytest.mark.asyncio
    async def test_seven_zip_round_trip(self, test_settings, source_tree, temp_dir):
        converter = ArchiveConverter(
            test_settings, CapabilitySet(backends=frozenset({"zip", "tar", "7z"}))
        )
        archive_path = temp_dir / "bundle.7z"
        await converter.create(source_tree, archive_path, ".7z")

        destination = await converter.extract(archive_path, temp_dir / "out", ".7z")

        assert read_manifest(destination) == EXPECTED_ENTRIES

    @pytest.mark.asyncio
    async def test_probe_detects_py7zr(self, archive_converter):
        capabilities = await archive_converter.probe()

        assert capabilities.backends == frozenset({"zip", "tar", "7z"})
        assert capabilities.probed is True

    @pytest.mark.asyncio
    async def test_codec_failure_surfaces_as_conversion_error(
        self, archive_converter, source_tree, temp_dir
    ):
        with patch.object(TarCodec, "create_sync", side_effect=OSError("disk full")):
            with pytest.raises(ConversionError) as exc_info:
                await archive_converter.create(source_tree, temp_dir / "bundle.tar", ".tar")

        assert "disk full" in str(exc_info.value)
        assert not (temp_dir / "bundle.tar").exists()

    def test_supported_formats(self, archive_converter):
        formats = archive_converter.supported_formats()

        assert "folder" in formats["input"]
        assert "tar.gz" in formats["output"]
        assert "7z" not in formats["output"]

    @pytest.mark.asyncio
    async def test_manifest_written_off_event_loop(self, archive_converter, source_tree, temp_dir):
        archive_path = temp_dir / "bundle.zip"
        await archive_converter.create(source_tree, archive_path, ".zip")
        loop_thread = threading.get_ident()
        writer_threads = []

        def recording_write(directory, archive_name):
            writer_threads.append(threading.get_ident())
            return write_manifest(directory, archive_name)

        with patch(
            "fastfile.services.converters.archive.write_manifest", side_effect=recording_write
        ):
            destination = await archive_converter.extract(archive_path, temp_dir / "out", ".zip")

        assert read_manifest(destination) == EXPECTED_ENTRIES
        assert len(writer_threads) == 1
        assert writer_threads[0] != loop_thread

    @pytest.mark.asyncio
    async def test_manifest_failure_surfaces_as_conversion_error(
        self, archive_converter, source_tree, temp_dir
    ):
        archive_path = temp_dir / "bundle.zip"
        await archive_converter.create(source_tree, archive_path, ".zip")

        with patch(
            "fastfile.services.converters.archive.write_manifest",
            side_effect=OSError("read-only file system"),
        ):
            with pytest.raises(ConversionError) as exc_info:
                await archive_converter.extract(archive_path, temp_dir / "out", ".zip")

        assert "read-only file system" in str(exc_info.value)
        assert not (temp_dir / "out").exists()


@pytest.mark.unit
class TestArchiveCodec:
    """Codec contract"""

    def test_codec_base_is_abstract(self, test_settings):
        with pytest.raises(TypeError):
            ArchiveCodec(test_settings)

    def test_codec_must_write_as_well_as_read(self, test_settings):
        class ReadOnlyCodec(ArchiveCodec):
            name = "read-only"

            def extract_sync(self, archive_path, destination, archive_format):
                pass

        with pytest.raises(TypeError):
            ReadOnlyCodec(test_settings)

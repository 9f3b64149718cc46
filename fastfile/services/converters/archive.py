"""Archive extraction, creation and transcoding"""

import functools
import tarfile
import tempfile
import zipfile
from abc import abstractmethod
from pathlib import Path
from typing import FrozenSet, List, Optional

from ...core.config import Settings
from ...core.exceptions import BackendUnavailableError, UnsupportedFormatError
from ...core.logger import get_logger
from ...core.types import ConversionJob, FileCategory
from ..capabilities import CapabilitySet, probe_module
from .base import (
    ConverterBackend,
    ConverterChain,
    attempt_in_order,
    discard_path,
    run_blocking,
)

logger = get_logger(__name__)

# Pseudo-format: extracting "to folder" or creating "from folder"
FOLDER_FORMAT = ".folder"
MANIFEST_NAME = "extraction_summary.txt"

TAR_WRITE_MODES = {
    ".tar": "w",
    ".tar.gz": "w:gz",
    ".tgz": "w:gz",
    ".tar.bz2": "w:bz2",
    ".tar.xz": "w:xz",
}


def list_entries(directory: Path, exclude: Optional[str] = None) -> List[str]:
    """Relative entry names below a directory, directories suffixed with '/'"""
    entries = []
    for path in sorted(directory.rglob("*")):
        relative = path.relative_to(directory).as_posix()
        if relative == exclude:
            continue
        entries.append(f"{relative}/" if path.is_dir() else relative)
    return entries


def write_manifest(directory: Path, archive_name: str) -> Path:
    """Write the extraction summary listing every extracted entry"""
    entries = list_entries(directory, exclude=MANIFEST_NAME)
    file_count = sum(1 for entry in entries if not entry.endswith("/"))
    manifest = directory / MANIFEST_NAME
    manifest.write_text(
        f"Extracted from: {archive_name}\n"
        f"Files extracted: {file_count}\n"
        "\n"
        "Contents:\n" + "".join(f"{entry}\n" for entry in entries),
        encoding="utf-8",
    )
    return manifest


def read_manifest(directory: Path) -> List[str]:
    """Entry names recorded in an extraction summary"""
    text = (directory / MANIFEST_NAME).read_text(encoding="utf-8")
    _, _, contents = text.partition("Contents:\n")
    return [line for line in contents.splitlines() if line]


class ArchiveCodec(ConverterBackend):
    """One archive family: reads and writes a fixed set of formats"""

    readable: FrozenSet[str] = frozenset()
    writable: FrozenSet[str] = frozenset()

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return job.input_format in self.readable or job.output_format in self.writable

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        if job.output_format == FOLDER_FORMAT:
            await self.extract(job.input_path, job.output_path, job.input_format)
        else:
            await self.create(job.input_path, job.output_path, job.output_format)
        return job.output_path

    async def extract(
        self,
        archive_path: Path,
        destination: Path,
        archive_format: str,
        write_summary: bool = False
    ) -> None:
        destination.mkdir(parents=True, exist_ok=True)
        await run_blocking(
            self.name, self.extract_sync, archive_path, destination, archive_format,
            timeout=self.settings.backend_timeout_seconds,
        )
        if write_summary:
            await run_blocking(
                self.name, write_manifest, destination, archive_path.name,
                timeout=self.settings.backend_timeout_seconds,
            )

    async def create(
        self, source: Path, output_path: Path, archive_format: str, arcname: Optional[str] = None
    ) -> None:
        await run_blocking(
            self.name, self.create_sync, source, output_path, archive_format, arcname,
            timeout=self.settings.backend_timeout_seconds,
        )

    @abstractmethod
    def extract_sync(self, archive_path: Path, destination: Path, archive_format: str) -> None:
        """Extract every entry below destination"""
        pass

    @abstractmethod
    def create_sync(
        self, source: Path, output_path: Path, archive_format: str, arcname: Optional[str] = None
    ) -> None:
        """Write a directory's contents, or one file named arcname, to output_path"""
        pass


class ZipCodec(ArchiveCodec):
    """zip and jar through the zipfile module"""

    name = "zip"
    readable = frozenset({".zip", ".jar"})
    writable = frozenset({".zip", ".jar"})

    def extract_sync(self, archive_path: Path, destination: Path, archive_format: str) -> None:
        with zipfile.ZipFile(archive_path) as archive:
            archive.extractall(destination)

    def create_sync(
        self, source: Path, output_path: Path, archive_format: str, arcname: Optional[str] = None
    ) -> None:
        with zipfile.ZipFile(
            output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
        ) as archive:
            if source.is_file():
                archive.write(source, arcname=arcname or source.name)
                return
            for path in sorted(source.rglob("*")):
                archive.write(path, arcname=path.relative_to(source).as_posix())


class TarCodec(ArchiveCodec):
    """tar with optional gzip, bzip2 or xz compression"""

    name = "tar"
    readable = frozenset(TAR_WRITE_MODES)
    writable = frozenset(TAR_WRITE_MODES)

    def extract_sync(self, archive_path: Path, destination: Path, archive_format: str) -> None:
        with tarfile.open(archive_path, "r:*") as archive:
            if hasattr(tarfile, "data_filter"):
                archive.extractall(destination, filter="data")
            else:
                archive.extractall(destination, members=_safe_members(archive, destination))

    def create_sync(
        self, source: Path, output_path: Path, archive_format: str, arcname: Optional[str] = None
    ) -> None:
        with tarfile.open(output_path, TAR_WRITE_MODES[archive_format]) as archive:
            if source.is_file():
                archive.add(source, arcname=arcname or source.name)
                return
            for child in sorted(source.iterdir()):
                archive.add(child, arcname=child.name)


def _safe_members(archive: tarfile.TarFile, destination: Path):
    root = destination.resolve()
    for member in archive.getmembers():
        target = (root / member.name).resolve()
        if member.issym() or member.islnk() or not target.is_relative_to(root):
            logger.warning(f"Skipping unsafe archive member {member.name}")
            continue
        yield member


class SevenZipCodec(ArchiveCodec):
    """7z through py7zr"""

    name = "7z"
    readable = frozenset({".7z"})
    writable = frozenset({".7z"})

    def extract_sync(self, archive_path: Path, destination: Path, archive_format: str) -> None:
        import py7zr

        with py7zr.SevenZipFile(archive_path, mode="r") as archive:
            archive.extractall(path=destination)

    def create_sync(
        self, source: Path, output_path: Path, archive_format: str, arcname: Optional[str] = None
    ) -> None:
        import py7zr

        with py7zr.SevenZipFile(output_path, mode="w") as archive:
            if source.is_file():
                archive.write(source, arcname=arcname or source.name)
                return
            for child in sorted(source.iterdir()):
                archive.writeall(child, arcname=child.name)


class ArchiveConverter(ConverterChain):
    """
    Converter chain for archives

    Output format 'folder' extracts, input format 'folder' creates, and any
    other pair is transcoded by extracting into a private temporary
    directory and re-archiving its contents.
    """

    category = FileCategory.ARCHIVE

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        initial_capabilities: Optional[CapabilitySet] = None
    ):
        super().__init__(
            [],
            app_settings,
            initial_capabilities or CapabilitySet(backends=frozenset({"zip", "tar"})),
        )
        self.backends = [
            ZipCodec(self.settings),
            TarCodec(self.settings),
            SevenZipCodec(self.settings),
        ]

    async def probe(self) -> CapabilitySet:
        backends = {"zip", "tar"}
        if probe_module("py7zr"):
            backends.add("7z")
        return CapabilitySet(backends=frozenset(backends), probed=True)

    def _codecs(self, capabilities: CapabilitySet) -> List[ArchiveCodec]:
        return [codec for codec in self.backends if codec.is_available(capabilities)]

    def readable_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        return frozenset().union(*(codec.readable for codec in self._codecs(capabilities)))

    def writable_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        return frozenset().union(*(codec.writable for codec in self._codecs(capabilities)))

    def supported_input_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        return self.readable_formats(capabilities) | {FOLDER_FORMAT}

    def supported_output_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        return self.writable_formats(capabilities) | {FOLDER_FORMAT}

    async def run_job(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        if job.output_format == FOLDER_FORMAT:
            return await self.extract(
                job.input_path, job.output_path, job.input_format, capabilities=capabilities
            )
        if job.input_format == FOLDER_FORMAT:
            return await self.create(
                job.input_path, job.output_path, job.output_format, capabilities=capabilities
            )
        return await self.transcode(job, capabilities)

    async def extract(
        self,
        archive_path: Path,
        destination: Path,
        archive_format: str,
        write_summary: bool = True,
        capabilities: Optional[CapabilitySet] = None
    ) -> Path:
        """
        Extract an archive into a directory

        Args:
            archive_path: Archive file
            destination: Directory to extract into (created if needed)
            archive_format: Archive extension, e.g. '.tar.gz'
            write_summary: Also write the extraction summary manifest
            capabilities: Capability snapshot (defaults to the current one)

        Returns:
            The destination directory
        """
        capabilities = capabilities or self.capabilities
        codecs = [c for c in self._codecs(capabilities) if archive_format in c.readable]
        if not codecs:
            raise BackendUnavailableError(self.category.value, archive_format, FOLDER_FORMAT)

        await attempt_in_order(
            self.category.value,
            archive_format,
            FOLDER_FORMAT,
            [(codec.name, functools.partial(
                codec.extract, archive_path, destination, archive_format, write_summary
            )) for codec in codecs],
            cleanup=destination,
        )
        logger.info(f"Extracted {archive_path.name} into {destination}")
        return destination

    async def create(
        self,
        source: Path,
        output_path: Path,
        archive_format: str,
        capabilities: Optional[CapabilitySet] = None,
        arcname: Optional[str] = None
    ) -> Path:
        """
        Create an archive from a directory's contents or from a single file

        Args:
            source: Directory whose contents are archived, or a single file
            output_path: Archive to write
            archive_format: Archive extension, e.g. '.zip'
            capabilities: Capability snapshot (defaults to the current one)
            arcname: Entry name for a single-file source

        Raises:
            UnsupportedFormatError: If no present codec writes the format
            ConversionError: If every capable codec failed
        """
        capabilities = capabilities or self.capabilities
        writable = self.writable_formats(capabilities)
        if archive_format not in writable:
            raise UnsupportedFormatError(
                f"Output format {archive_format} is not supported for archive files. "
                f"Supported formats: {', '.join(sorted(f.lstrip('.') for f in writable))}"
            )
        codecs = [c for c in self._codecs(capabilities) if archive_format in c.writable]

        await attempt_in_order(
            self.category.value,
            FOLDER_FORMAT if source.is_dir() else source.suffix.lower(),
            archive_format,
            [(codec.name, functools.partial(codec.create, source, output_path, archive_format, arcname))
             for codec in codecs],
            cleanup=output_path,
        )
        return output_path

    async def transcode(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        """Re-archive into another format through a private temporary directory"""
        self.settings.temp_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="archive_", dir=self.settings.temp_dir))
        try:
            contents = work_dir / "contents"
            await self.extract(
                job.input_path, contents, job.input_format,
                write_summary=False, capabilities=capabilities,
            )
            return await self.create(
                contents, job.output_path, job.output_format, capabilities=capabilities
            )
        finally:
            await discard_path(work_dir)


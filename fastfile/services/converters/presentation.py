"""Presentation conversion through an office suite"""

import tempfile
from pathlib import Path
from typing import FrozenSet, List, Optional

from ...core.config import Settings
from ...core.exceptions import BackendFailure
from ...core.logger import get_logger
from ...core.types import ConversionJob, FileCategory
from ..capabilities import CapabilitySet, probe_module
from .base import ConverterBackend, ConverterChain, discard_path, run_blocking
from .office import (
    convert_with_libreoffice,
    convert_with_unoconv,
    probe_libreoffice,
    probe_unoconv,
)

logger = get_logger(__name__)

PRESENTATION_FORMATS = frozenset({".ppt", ".pptx", ".odp"})
LIBREOFFICE_FILTERS = {
    ".pptx": "Impress MS PowerPoint 2007 XML",
    ".ppt": "MS PowerPoint 97",
    ".odp": "impress8",
    ".pdf": "impress_pdf_Export",
}
OUTPUT_FORMATS = frozenset(LIBREOFFICE_FILTERS)

# Slide previews: the deck is exported to PDF and each page rendered to PNG
SLIDE_IMAGE_FORMAT = ".png"
SLIDE_DPI = 150


def render_pdf_pages(pdf_path: Path, output_dir: Path, dpi: int = SLIDE_DPI) -> List[Path]:
    """Render every page of a PDF to slide-N.png"""
    import fitz

    output_dir.mkdir(parents=True, exist_ok=True)
    images = []
    with fitz.open(str(pdf_path)) as document:
        for number, page in enumerate(document, start=1):
            image_path = output_dir / f"slide-{number}.png"
            page.get_pixmap(dpi=dpi).save(str(image_path))
            images.append(image_path)
    return images


class LibreOfficePresentationBackend(ConverterBackend):
    """Presentation conversion through LibreOffice Impress"""

    name = "libreoffice"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        if job.input_format not in PRESENTATION_FORMATS:
            return False
        if job.output_format == SLIDE_IMAGE_FORMAT:
            return capabilities.has("pymupdf")
        return job.output_format in OUTPUT_FORMATS

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        executable = capabilities.tool(self.name, "libreoffice")
        if job.output_format == SLIDE_IMAGE_FORMAT:
            return await self.convert_to_images(executable, job.input_path, job.output_path)
        return await convert_with_libreoffice(
            executable,
            job.input_path,
            job.output_path,
            job.output_format.lstrip("."),
            LIBREOFFICE_FILTERS[job.output_format],
            timeout=self.settings.backend_timeout_seconds,
            temp_root=self.settings.temp_dir,
        )

    async def convert_to_images(self, executable: str, input_path: Path, output_path: Path) -> Path:
        """
        Export every slide as a PNG image

        Args:
            executable: LibreOffice binary
            input_path: Presentation file
            output_path: Requested output; slides go to a sibling directory

        Returns:
            Directory holding slide-1.png, slide-2.png, ...
        """
        self.settings.temp_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="slides_", dir=self.settings.temp_dir))
        slides_dir = output_path.with_name(f"{output_path.stem}_slides")
        try:
            pdf_path = await convert_with_libreoffice(
                executable,
                input_path,
                work_dir / f"{input_path.stem}.pdf",
                "pdf",
                LIBREOFFICE_FILTERS[".pdf"],
                timeout=self.settings.backend_timeout_seconds,
                temp_root=self.settings.temp_dir,
            )
            images = await run_blocking(
                self.name,
                render_pdf_pages,
                pdf_path,
                slides_dir,
                timeout=self.settings.backend_timeout_seconds,
            )
        except Exception:
            await discard_path(slides_dir)
            raise
        finally:
            await discard_path(work_dir)

        if not images:
            await discard_path(slides_dir)
            raise BackendFailure(self.name, "presentation has no slides")
        logger.info(f"Rendered {len(images)} slides from {input_path.name}")
        return slides_dir


class UnoconvBackend(ConverterBackend):
    """Presentation conversion through unoconv"""

    name = "unoconv"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return job.input_format in PRESENTATION_FORMATS and job.output_format in OUTPUT_FORMATS

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await convert_with_unoconv(
            capabilities.tool(self.name, "unoconv"),
            job.input_path,
            job.output_path,
            job.output_format.lstrip("."),
            timeout=self.settings.backend_timeout_seconds,
        )


class PresentationConverter(ConverterChain):
    """Converter chain for presentations; there is no built-in fallback"""

    category = FileCategory.PRESENTATION

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        initial_capabilities: Optional[CapabilitySet] = None
    ):
        super().__init__([], app_settings, initial_capabilities)
        self.backends = [
            LibreOfficePresentationBackend(self.settings),
            UnoconvBackend(self.settings),
        ]

    async def probe(self) -> CapabilitySet:
        timeout = self.settings.probe_timeout_seconds
        backends = set()
        tools = {}

        executable = await probe_libreoffice(timeout)
        if executable:
            backends.add("libreoffice")
            tools["libreoffice"] = executable
        unoconv = await probe_unoconv(timeout)
        if unoconv:
            backends.add("unoconv")
            tools["unoconv"] = unoconv
        if probe_module("fitz"):
            backends.add("pymupdf")

        return CapabilitySet(backends=frozenset(backends), tools=tools, probed=True)

    def supported_input_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        if capabilities.has("libreoffice") or capabilities.has("unoconv"):
            return PRESENTATION_FORMATS
        return frozenset()

    def supported_output_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        formats = set()
        if capabilities.has("libreoffice") or capabilities.has("unoconv"):
            formats |= OUTPUT_FORMATS
        if capabilities.has("libreoffice") and capabilities.has("pymupdf"):
            formats.add(SLIDE_IMAGE_FORMAT)
        return frozenset(formats)

    async def convert_to_images(self, input_path: Path, output_path: Path) -> Path:
        """Render each slide of a presentation to PNG"""
        return await self.convert(
            input_path, output_path, input_path.suffix.lower(), SLIDE_IMAGE_FORMAT
        )

"""Converter chain registry"""

import asyncio
from typing import Any, Dict, Optional

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import UnsupportedFileTypeError
from ..core.logger import get_logger
from ..core.types import FileCategory
from .converters import (
    ArchiveConverter,
    ConverterChain,
    DocumentConverter,
    MediaConverter,
    PresentationConverter,
    SpreadsheetConverter,
)

logger = get_logger(__name__)


class ConverterRegistry:
    """Owns one converter chain per category and their capability probes"""

    def __init__(self, app_settings: Optional[Settings] = None):
        self.settings = app_settings or default_settings
        self._chains: Dict[FileCategory, ConverterChain] = {
            FileCategory.VIDEO: MediaConverter(FileCategory.VIDEO, self.settings),
            FileCategory.AUDIO: MediaConverter(FileCategory.AUDIO, self.settings),
            FileCategory.IMAGE: MediaConverter(FileCategory.IMAGE, self.settings),
            FileCategory.DOCUMENT: DocumentConverter(self.settings),
            FileCategory.SPREADSHEET: SpreadsheetConverter(self.settings),
            FileCategory.PRESENTATION: PresentationConverter(self.settings),
            FileCategory.ARCHIVE: ArchiveConverter(self.settings),
        }
        self._probe_task: Optional[asyncio.Task] = None
        self._ready = False
        logger.info(f"Initialized {len(self._chains)} converter chains")

    @property
    def ready(self) -> bool:
        """Whether capability probing has finished for every chain"""
        return self._ready

    @property
    def archive(self) -> ArchiveConverter:
        return self._chains[FileCategory.ARCHIVE]

    def get_chain(self, category: FileCategory) -> ConverterChain:
        """
        Get the converter chain of a category

        Raises:
            UnsupportedFileTypeError: If the category has no chain
        """
        chain = self._chains.get(category)
        if chain is None:
            raise UnsupportedFileTypeError(f"No converter for {category.value} files")
        return chain

    def chains(self) -> Dict[FileCategory, ConverterChain]:
        return dict(self._chains)

    async def probe_all(self) -> None:
        """Probe every chain concurrently; probe failures never propagate"""
        results = await asyncio.gather(
            *(chain.refresh_capabilities() for chain in self._chains.values()),
            return_exceptions=True,
        )
        for category, result in zip(self._chains, results):
            if isinstance(result, Exception):
                logger.error(f"Probing {category.value} backends failed: {result}")
        self._ready = True
        logger.info("Capability probing finished")

    def start_probing(self) -> asyncio.Task:
        """Start probing in the background; until it finishes only built-in backends count"""
        if self._probe_task is None or self._probe_task.done():
            self._probe_task = asyncio.create_task(self.probe_all())
        return self._probe_task

    async def stop(self) -> None:
        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                logger.info("Capability probing cancelled")
        self._probe_task = None

    def get_capabilities(self) -> Dict[str, Any]:
        """Per category backends and currently supported formats"""
        report: Dict[str, Any] = {}
        for category, chain in self._chains.items():
            capabilities = chain.capabilities
            formats = chain.supported_formats()
            report[category.value] = {
                "backends": sorted(
                    backend.name for backend in chain.backends
                    if backend.is_available(capabilities)
                ),
                "probed": capabilities.probed,
                "input_formats": formats["input"],
                "output_formats": formats["output"],
            }
        return report


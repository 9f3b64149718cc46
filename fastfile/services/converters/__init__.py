"""Converter chains, one per file category"""

from .archive import ArchiveConverter
from .base import ConverterBackend, ConverterChain
from .document import DocumentConverter
from .media import MediaConverter
from .presentation import PresentationConverter
from .spreadsheet import SpreadsheetConverter

__all__ = [
    "ArchiveConverter",
    "ConverterBackend",
    "ConverterChain",
    "DocumentConverter",
    "MediaConverter",
    "PresentationConverter",
    "SpreadsheetConverter",
]

"""Extension based file classification"""

from typing import Dict, List, Optional, Tuple

from ..core.types import FileCategory

# Checked in this order; the first category listing an extension wins,
# so ".gif" classifies as video.
CATEGORY_FORMATS: Dict[FileCategory, Tuple[str, ...]] = {
    FileCategory.VIDEO: (
        ".mp4", ".avi", ".mov", ".mkv", ".webm", ".flv", ".mpeg", ".mpg",
        ".wmv", ".3gp", ".m4v", ".mts", ".m2ts", ".ts", ".ogv", ".f4v", ".gif",
    ),
    FileCategory.AUDIO: (
        ".mp3", ".wav", ".aac", ".flac", ".ogg", ".m4a", ".wma", ".oga",
        ".aiff", ".amr", ".opus", ".ac3", ".caf", ".dss", ".voc", ".weba",
    ),
    FileCategory.IMAGE: (
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".tif",
        ".heic", ".ico", ".svg", ".avif", ".psd", ".eps", ".ai",
        ".cr2", ".arw", ".dng", ".raf", ".nef", ".rw2", ".crw", ".orf",
        ".srw", ".x3f", ".dcr", ".mrw", ".3fr", ".erf", ".mef", ".mos",
        ".nrw", ".pef", ".rwl", ".srf",
    ),
    FileCategory.DOCUMENT: (
        ".pdf", ".doc", ".docx", ".odt", ".txt", ".rtf", ".html", ".htm",
        ".md", ".tex", ".djvu", ".wps", ".abw", ".pages", ".dotx",
    ),
    FileCategory.SPREADSHEET: (".csv", ".tsv", ".xls", ".xlsx", ".ods"),
    FileCategory.PRESENTATION: (".ppt", ".pptx", ".odp"),
    FileCategory.ARCHIVE: (
        ".zip", ".tar", ".jar", ".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".7z",
    ),
}

MEDIA_CATEGORIES = (FileCategory.VIDEO, FileCategory.AUDIO, FileCategory.IMAGE)

_COMPOUND_EXTENSIONS = sorted(
    (ext for formats in CATEGORY_FORMATS.values() for ext in formats if ext.count(".") > 1),
    key=len,
    reverse=True,
)


def get_extension(filename: Optional[str]) -> str:
    """
    Get the lower-cased extension of a filename, including the leading dot

    Compound archive suffixes such as '.tar.gz' are kept whole.

    Args:
        filename: File name or path

    Returns:
        Extension such as '.mp4', or '' when there is none
    """
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].lower()
    for compound in _COMPOUND_EXTENSIONS:
        if name.endswith(compound) and len(name) > len(compound):
            return compound
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem or not ext:
        return ""
    return f".{ext}"


def strip_extension(filename: str) -> str:
    """Return the filename without its (possibly compound) extension"""
    ext = get_extension(filename)
    return filename[: len(filename) - len(ext)] if ext else filename


class FileClassifier:
    """Maps filename extensions to semantic categories"""

    def __init__(self, category_formats: Optional[Dict[FileCategory, Tuple[str, ...]]] = None):
        self._category_formats = category_formats or CATEGORY_FORMATS

    def classify_extension(self, extension: str) -> FileCategory:
        """Classify an extension such as '.png'"""
        extension = (extension or "").lower()
        if not extension:
            return FileCategory.UNKNOWN
        if not extension.startswith("."):
            extension = f".{extension}"
        for category, formats in self._category_formats.items():
            if extension in formats:
                return category
        return FileCategory.UNKNOWN

    def classify(self, filename: Optional[str]) -> FileCategory:
        """Classify a filename; unrecognised or missing extensions are unknown"""
        return self.classify_extension(get_extension(filename))

    def is_supported(self, filename: Optional[str]) -> bool:
        return self.classify(filename) is not FileCategory.UNKNOWN

    def formats_for(self, category: FileCategory) -> Tuple[str, ...]:
        """Dotted extensions listed for a category"""
        return self._category_formats.get(category, ())

    def list_supported_formats(self) -> Dict[str, List[str]]:
        """Category to extension table, extensions without the leading dot"""
        return {
            category.value: [ext.lstrip(".") for ext in formats]
            for category, formats in self._category_formats.items()
        }

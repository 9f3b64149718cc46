"""Type definitions for the file conversion service"""

from typing import Dict, Any, List, Optional
from pathlib import Path
from enum import Enum
from dataclasses import dataclass, field


class FileCategory(str, Enum):
    """Semantic file category"""
    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    ARCHIVE = "archive"
    UNKNOWN = "unknown"


class Quality(str, Enum):
    """Quality hint for media conversions"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Quality":
        """Parse a quality hint; unrecognised values fall back to medium"""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.MEDIUM

    def lower_tier(self) -> "Quality":
        if self is Quality.HIGH:
            return Quality.MEDIUM
        return Quality.LOW


class FailureKind(str, Enum):
    """Why a conversion request failed"""
    VALIDATION = "validation"
    CONVERSION = "conversion"


@dataclass(frozen=True)
class ConversionOptions:
    """Quality and compression hints attached to a job"""
    quality: Quality = Quality.MEDIUM
    use_compression: bool = False

    @property
    def effective_quality(self) -> Quality:
        """Compression trades one quality tier for smaller output"""
        return self.quality.lower_tier() if self.use_compression else self.quality


@dataclass(frozen=True)
class ConversionJob:
    """Unit of work passed through a converter chain"""
    input_path: Path
    output_path: Path
    input_format: str
    output_format: str
    options: ConversionOptions = field(default_factory=ConversionOptions)


@dataclass
class UploadedFile:
    """One received upload, owned by the request that created it"""
    original_name: str
    path: Path
    size: int
    extension: str
    content_type: Optional[str] = None


@dataclass
class ConversionResult:
    """Outcome of a conversion request"""
    success: bool
    message: str
    output_path: Optional[Path] = None
    failure_reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    original_name: Optional[str] = None
    category: Optional[FileCategory] = None
    processing_time: Optional[float] = None

    def __post_init__(self):
        if (self.output_path is None) == (self.failure_reason is None):
            raise ValueError(
                "ConversionResult needs exactly one of output_path or failure_reason"
            )
        if self.success != (self.output_path is not None):
            raise ValueError("success flag does not match the populated outcome")

    @property
    def converted_name(self) -> Optional[str]:
        return self.output_path.name if self.output_path else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "success": self.success,
            "message": self.message,
            "output_path": str(self.output_path) if self.output_path else None,
            "failure_reason": self.failure_reason,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "original_name": self.original_name,
            "category": self.category.value if self.category else None,
            "processing_time": self.processing_time,
        }


@dataclass
class StructuredContent:
    """Intermediate document form: a title plus ordered paragraphs"""
    title: str
    paragraphs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class QualitySettings:
    """Concrete encoder settings for one quality tier"""
    crf: int
    video_bitrate: str
    audio_bitrate: str
    jpeg_qscale: int
    image_quality: int

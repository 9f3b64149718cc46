"""Data validation utilities for the file conversion service"""

import re
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from .types import ConversionOptions, Quality

_UNSAFE_CHARS = re.compile(r"[^\w.\- ]+")


def normalize_format(value: Optional[str]) -> str:
    """
    Normalize a requested format to its canonical form

    'MD', '.md' and '..md' all become '.md'.

    Args:
        value: Raw format string from the client

    Returns:
        Lower-cased format with a single leading dot, or '' when empty
    """
    cleaned = (value or "").strip().lower().lstrip(".")
    return f".{cleaned}" if cleaned else ""


def parse_bool(value: Optional[str]) -> bool:
    """Parse a form flag such as 'true' / 'false'"""
    return (value or "").strip().lower() in ("true", "1", "yes", "on")


def sanitize_filename(filename: Optional[str], default: str = "upload") -> str:
    """Strip directories and unsafe characters from a client filename"""
    name = Path((filename or "").replace("\\", "/")).name
    name = _UNSAFE_CHARS.sub("_", name).strip(" .")
    return name or default


def is_safe_artifact_name(filename: str) -> bool:
    """Check that a download name cannot escape the output directory"""
    return (
        bool(filename)
        and filename not in (".", "..")
        and "/" not in filename
        and "\\" not in filename
        and "\x00" not in filename
    )


class ConversionRequest(BaseModel):
    """Validated conversion request parameters"""

    target_format: str = Field(..., description="Requested output format")
    use_compression: bool = Field(False, description="Prefer smaller output")
    quality: Quality = Field(Quality.MEDIUM, description="Quality hint")

    @field_validator("target_format", mode="before")
    @classmethod
    def validate_target_format(cls, v):
        """Normalize the target format"""
        fmt = normalize_format(v)
        if not fmt or not re.fullmatch(r"\.[a-z0-9]+(\.[a-z0-9]+)?", fmt):
            raise ValueError("Target format not specified")
        return fmt

    @field_validator("use_compression", mode="before")
    @classmethod
    def validate_use_compression(cls, v):
        if isinstance(v, bool):
            return v
        return parse_bool(v)

    @field_validator("quality", mode="before")
    @classmethod
    def validate_quality(cls, v):
        if isinstance(v, Quality):
            return v
        return Quality.parse(v)

    def to_options(self) -> ConversionOptions:
        return ConversionOptions(quality=self.quality, use_compression=self.use_compression)

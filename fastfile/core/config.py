"""Configuration settings for the file conversion service"""

import logging
import tempfile
from pathlib import Path
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # Service settings
    service_name: str = Field(default="fastfile")
    version: str = Field(default="1.0.0", alias="SERVICE_VERSION")
    debug: bool = Field(default=False)

    # API settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3001)
    cors_origins: List[str] = Field(default=["*"])

    # Upload settings
    max_file_size_mb: int = Field(default=500)
    upload_chunk_size: int = Field(default=1024 * 1024)

    # Storage settings
    upload_dir: Path = Field(default=Path("./uploads"))
    output_dir: Path = Field(default=Path("./output"))
    temp_dir: Path = Field(default=Path(tempfile.gettempdir()) / "fastfile")

    # Artifact lifecycle
    artifact_expiry_seconds: float = Field(default=300)

    # Backend settings
    backend_timeout_seconds: float = Field(default=600)
    probe_timeout_seconds: float = Field(default=15)
    default_quality: str = Field(default="medium")
    probe_backends_on_startup: bool = Field(default=True)

    # Logging settings
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure the log level is a known logging level name"""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator(
        "max_file_size_mb",
        "artifact_expiry_seconds",
        "backend_timeout_seconds",
        "probe_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator("default_quality")
    @classmethod
    def validate_quality(cls, v: str) -> str:
        quality = v.lower()
        if quality not in ("low", "medium", "high"):
            raise ValueError(f"Unknown quality tier: {v}")
        return quality

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def artifact_expiry_label(self) -> str:
        """Human readable expiry window, e.g. '5 minutes'"""
        seconds = int(self.artifact_expiry_seconds)
        if seconds >= 60 and seconds % 60 == 0:
            minutes = seconds // 60
            return f"{minutes} minute{'s' if minutes != 1 else ''}"
        return f"{seconds} second{'s' if seconds != 1 else ''}"


# Global settings instance
settings = Settings()

"""Custom exceptions for file conversion"""

from typing import Optional


class FileConversionError(Exception):
    """Base exception for file conversion errors"""
    pass


class ValidationError(FileConversionError):
    """Raised when a conversion request is malformed or unsupported"""
    pass


class UnsupportedFileTypeError(ValidationError):
    """Raised when the uploaded file type is not supported"""
    pass


class UnsupportedFormatError(ValidationError):
    """Raised when a format is outside the supported set for its category"""
    pass


class FileSizeExceededError(ValidationError):
    """Raised when file size exceeds maximum allowed size"""
    pass


class BackendFailure(FileConversionError):
    """Raised when a single converter backend fails"""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend
        self.reason = message


class ConversionError(FileConversionError):
    """Raised when every backend of a category failed"""

    def __init__(
        self,
        category: str,
        input_format: str,
        output_format: str,
        cause: Optional[str] = None
    ):
        message = f"{category} conversion from {input_format} to {output_format} failed"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.category = category
        self.input_format = input_format
        self.output_format = output_format
        self.cause = cause


class BackendUnavailableError(ConversionError):
    """Raised when no backend of a category can handle the conversion"""

    def __init__(self, category: str, input_format: str, output_format: str):
        super().__init__(
            category,
            input_format,
            output_format,
            f"no {category} backend was available",
        )


class LifecycleError(FileConversionError):
    """Raised when an artifact or temporary file cannot be removed"""
    pass


class DownloadError(FileConversionError):
    """Raised when an artifact cannot be served"""
    pass


class DownloadExpiredError(DownloadError):
    """Raised when an artifact is expired or no longer tracked"""
    pass


class ArtifactNotFoundError(DownloadError):
    """Raised when a tracked artifact is missing on disk"""
    pass

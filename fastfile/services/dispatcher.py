"""Conversion dispatcher: classify, convert, track"""

import time
from pathlib import Path
from typing import Optional

from ..artifacts.service import ArtifactLifecycleManager
from ..core.exceptions import ConversionError, UnsupportedFileTypeError, ValidationError
from ..core.logger import get_logger
from ..core.types import (
    ConversionOptions,
    ConversionResult,
    FailureKind,
    FileCategory,
    UploadedFile,
)
from ..core.validators import normalize_format, sanitize_filename
from .classifier import FileClassifier
from .converter_registry import ConverterRegistry
from .converters.archive import FOLDER_FORMAT
from .converters.base import discard_path
from .file_service import FileService

logger = get_logger(__name__)

# Directory results (extractions, slide images) are delivered as one zip
PACKAGE_FORMAT = ".zip"


class ConversionDispatcher:
    """
    Entry point for one conversion request

    The dispatcher owns the uploaded input for the duration of the call and
    deletes it exactly once, whatever the outcome. Successful outputs are
    handed to the artifact manager before the result is returned.
    """

    def __init__(
        self,
        classifier: FileClassifier,
        registry: ConverterRegistry,
        file_service: FileService,
        artifact_manager: ArtifactLifecycleManager
    ):
        self.classifier = classifier
        self.registry = registry
        self.file_service = file_service
        self.artifact_manager = artifact_manager

    async def handle_conversion(
        self,
        uploaded: UploadedFile,
        target_format: Optional[str],
        options: Optional[ConversionOptions] = None
    ) -> ConversionResult:
        """
        Convert an uploaded file to the requested format

        Args:
            uploaded: Stored upload; deleted before this method returns
            target_format: Requested format, with or without a leading dot
            options: Quality and compression hints

        Returns:
            Successful result with the tracked output path, or a failed
            result whose failure_kind tells validation and conversion apart
        """
        start_time = time.time()
        options = options or ConversionOptions()
        category: Optional[FileCategory] = None

        try:
            output_format = normalize_format(target_format)
            if not output_format:
                raise ValidationError("Target format not specified")

            category = self.classifier.classify(uploaded.original_name)
            if category is FileCategory.UNKNOWN:
                raise UnsupportedFileTypeError(
                    f"Unsupported file type '{uploaded.extension or uploaded.original_name}'. "
                    f"Supported categories: {', '.join(self.classifier.list_supported_formats())}"
                )

            logger.info(
                f"Converting {uploaded.original_name} ({category.value}) "
                f"from {uploaded.extension} to {output_format}"
            )
            output_path = await self._convert(uploaded, category, output_format, options)
            self.artifact_manager.track(output_path.name)

            processing_time = time.time() - start_time
            logger.info(
                f"Converted {uploaded.original_name} to {output_path.name} "
                f"in {processing_time:.2f}s"
            )
            return ConversionResult(
                success=True,
                message="File converted successfully",
                output_path=output_path,
                original_name=uploaded.original_name,
                category=category,
                processing_time=processing_time,
            )

        except ValidationError as e:
            logger.warning(f"Rejected conversion of {uploaded.original_name}: {e}")
            return self._failure(uploaded, category, e, FailureKind.VALIDATION, start_time)
        except ConversionError as e:
            logger.error(f"Conversion of {uploaded.original_name} failed: {e}")
            return self._failure(uploaded, category, e, FailureKind.CONVERSION, start_time)
        finally:
            self.file_service.delete_upload(uploaded)

    async def _convert(
        self,
        uploaded: UploadedFile,
        category: FileCategory,
        output_format: str,
        options: ConversionOptions
    ) -> Path:
        output_path = self.file_service.output_path_for(uploaded.original_name, output_format)
        archive = self.registry.archive

        archive_formats = self.classifier.formats_for(FileCategory.ARCHIVE)
        if category is not FileCategory.ARCHIVE and output_format in archive_formats:
            return await archive.create(
                uploaded.path, output_path, output_format,
                arcname=sanitize_filename(uploaded.original_name),
            )

        chain = self.registry.get_chain(category)
        result = await chain.convert(
            uploaded.path, output_path, uploaded.extension, output_format, options
        )
        if result.is_dir():
            return await self._package_directory(result)
        return result

    async def _package_directory(self, directory: Path) -> Path:
        """Zip a directory result so it can be downloaded as one file"""
        stem = directory.stem if directory.suffix == FOLDER_FORMAT else directory.name
        package_path = directory.with_name(f"{stem}{PACKAGE_FORMAT}")
        try:
            await self.registry.archive.create(directory, package_path, PACKAGE_FORMAT)
        finally:
            await discard_path(directory)
        logger.debug(f"Packaged {directory.name} as {package_path.name}")
        return package_path

    def _failure(
        self,
        uploaded: UploadedFile,
        category: Optional[FileCategory],
        error: Exception,
        kind: FailureKind,
        start_time: float
    ) -> ConversionResult:
        return ConversionResult(
            success=False,
            message="Conversion failed" if kind is FailureKind.CONVERSION else "Invalid conversion request",
            failure_reason=str(error),
            failure_kind=kind,
            original_name=uploaded.original_name,
            category=category,
            processing_time=time.time() - start_time,
        )

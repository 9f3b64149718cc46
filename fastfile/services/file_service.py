"""Upload intake and storage naming"""

import uuid
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import FileSizeExceededError
from ..core.logger import get_logger
from ..core.types import UploadedFile
from ..core.validators import sanitize_filename
from .classifier import get_extension, strip_extension

logger = get_logger(__name__)


class FileService:
    """Service for upload and output file operations"""

    def __init__(self, app_settings: Optional[Settings] = None):
        self.settings = app_settings or default_settings
        self.upload_dir = Path(self.settings.upload_dir)
        self.output_dir = Path(self.settings.output_dir)
        self.ensure_directories()

    def ensure_directories(self) -> None:
        """Ensure required directories exist"""
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directories exist: {self.upload_dir}, {self.output_dir}")

    def upload_path_for(self, original_name: str) -> Path:
        """Unique storage path for an upload"""
        return self.upload_dir / f"{uuid.uuid4().hex}_{sanitize_filename(original_name)}"

    def output_path_for(self, original_name: str, output_format: str) -> Path:
        """
        Unique output path for a conversion

        Args:
            original_name: Client filename of the upload
            output_format: Target format with leading dot

        Returns:
            Path such as output/report-1a2b3c4d.md
        """
        stem = strip_extension(sanitize_filename(original_name)) or "converted"
        return self.output_dir / f"{stem}-{uuid.uuid4().hex[:8]}{output_format}"

    async def save_upload(self, upload: UploadFile) -> UploadedFile:
        """
        Stream an upload to disk, enforcing the size limit

        Args:
            upload: Multipart file from the request

        Returns:
            The stored upload

        Raises:
            FileSizeExceededError: If the upload exceeds the configured limit
        """
        original_name = upload.filename or "upload"
        path = self.upload_path_for(original_name)
        limit = self.settings.max_file_size_bytes
        size = 0

        try:
            with open(path, "wb") as handle:
                while True:
                    chunk = await upload.read(self.settings.upload_chunk_size)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > limit:
                        raise FileSizeExceededError(
                            f"File size exceeds maximum allowed size "
                            f"{self.settings.max_file_size_mb}MB"
                        )
                    handle.write(chunk)
        except BaseException:
            self.delete_file(path)
            raise

        logger.info(f"Received upload {original_name} ({size} bytes) as {path.name}")
        return UploadedFile(
            original_name=original_name,
            path=path,
            size=size,
            extension=get_extension(original_name),
            content_type=upload.content_type,
        )

    def delete_upload(self, uploaded: UploadedFile) -> None:
        """Remove an upload once its conversion finished"""
        self.delete_file(uploaded.path)

    def delete_file(self, path: Path) -> bool:
        """
        Delete a file, logging failures instead of raising

        Returns:
            True if the file was removed
        """
        try:
            path.unlink()
            logger.debug(f"Deleted {path}")
            return True
        except FileNotFoundError:
            logger.debug(f"File already gone: {path}")
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
        return False

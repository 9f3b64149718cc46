"""API endpoints for artifact download and cleanup statistics"""

import mimetypes
from datetime import datetime
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from .schemas import CleanupStatsResponse, DownloadErrorResponse
from .service import ArtifactLifecycleManager
from ..core.exceptions import ArtifactNotFoundError, DownloadExpiredError
from ..core.logger import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["Artifacts"])

DOWNLOAD_CHUNK_SIZE = 64 * 1024

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".html": "text/html",
    ".md": "text/markdown",
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".7z": "application/x-7z-compressed",
}


def content_type_for(filename: str) -> str:
    """Best-effort content type from the file extension"""
    suffix = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if suffix in CONTENT_TYPES:
        return CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


# Dependency injection
def get_artifact_manager(request: Request) -> ArtifactLifecycleManager:
    return request.app.state.artifact_manager


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    body = DownloadErrorResponse(error=code, message=message, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.get("/download/{filename}")
async def download_file(
    filename: str,
    manager: ArtifactLifecycleManager = Depends(get_artifact_manager)
):
    """Stream a converted file once, then delete it"""
    try:
        path, handle, size = manager.open_for_download(filename)
    except DownloadExpiredError:
        logger.info(f"Download of expired or untracked artifact {filename}")
        return _error(
            status.HTTP_410_GONE,
            "DOWNLOAD_EXPIRED",
            "Download link has expired. Files are only available for "
            f"{manager.settings.artifact_expiry_label} after conversion.",
        )
    except ArtifactNotFoundError:
        logger.warning(f"Tracked artifact missing on disk: {filename}")
        manager.stop_tracking(filename)
        return _error(
            status.HTTP_404_NOT_FOUND,
            "FILE_NOT_FOUND",
            "File not found. It may have been deleted or never existed.",
        )
    except OSError as e:
        logger.error(f"File download error for {filename}: {e}")
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "DOWNLOAD_ERROR",
            "Failed to read the converted file.",
        )

    def iter_file():
        try:
            while chunk := handle.read(DOWNLOAD_CHUNK_SIZE):
                yield chunk
        finally:
            handle.close()

    logger.info(f"Streaming {filename} ({size} bytes)")
    return StreamingResponse(
        iter_file(),
        media_type=content_type_for(path.name),
        headers={
            "Content-Length": str(size),
            "Content-Disposition": f'attachment; filename="{path.name}"',
        },
        background=BackgroundTask(manager.complete_download, filename),
    )


@router.get("/cleanup/stats", response_model=CleanupStatsResponse, response_model_by_alias=True)
async def get_cleanup_stats(
    manager: ArtifactLifecycleManager = Depends(get_artifact_manager)
):
    """Tracked artifact statistics"""
    stats = manager.get_stats()
    return CleanupStatsResponse(
        tracked_files=stats.tracked_files,
        oldest_file=stats.oldest_file,
        newest_file=stats.newest_file,
        file_expiry_time=manager.settings.artifact_expiry_label,
        timestamp=datetime.now(),
    )

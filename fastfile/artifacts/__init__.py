"""Artifact Lifecycle Feature Module"""

from .api import router as artifact_router
from .service import ArtifactLifecycleManager
from .models import ArtifactRecord, ArtifactState, ArtifactStats
from .schemas import CleanupStatsResponse, DownloadErrorResponse

__all__ = [
    "artifact_router",
    "ArtifactLifecycleManager",
    "ArtifactRecord",
    "ArtifactState",
    "ArtifactStats",
    "CleanupStatsResponse",
    "DownloadErrorResponse",
]

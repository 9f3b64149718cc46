"""Pydantic schemas for artifact download and cleanup API"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class DownloadErrorResponse(BaseModel):
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human readable explanation")
    code: str = Field(..., description="Error code, repeated for clients keyed on 'code'")


class CleanupStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tracked_files: int = Field(..., alias="trackedFiles")
    oldest_file: Optional[str] = Field(None, alias="oldestFile")
    newest_file: Optional[str] = Field(None, alias="newestFile")
    file_expiry_time: str = Field(..., alias="fileExpiryTime")
    timestamp: datetime

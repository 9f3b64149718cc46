"""Models for artifact lifecycle management"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class ArtifactState(str, Enum):
    UNTRACKED = "untracked"
    TRACKED = "tracked"
    EXPIRED = "expired"


@dataclass
class ArtifactRecord:
    """An output file awaiting download"""
    filename: str
    created_at: float
    started_monotonic: float
    timer: asyncio.TimerHandle
    token: int

    def age_seconds(self, now_monotonic: float) -> float:
        return now_monotonic - self.started_monotonic


class ArtifactStats(BaseModel):
    tracked_files: int
    oldest_file: Optional[str] = None
    newest_file: Optional[str] = None

"""API schemas for the file conversion service"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ConversionResponse(BaseModel):
    """Response schema for a successful conversion"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(True, description="Whether conversion was successful")
    message: str = Field(..., description="Human readable outcome")
    download_url: str = Field(..., alias="downloadUrl", description="Where to fetch the result")
    original_name: str = Field(..., alias="originalName")
    converted_name: str = Field(..., alias="convertedName")


class ErrorResponse(BaseModel):
    """Error response schema"""
    success: bool = Field(False)
    error: str = Field(..., description="Error summary")
    details: Optional[str] = Field(None, description="Error details")


class MemoryUsage(BaseModel):
    rss: int = Field(..., description="Resident set size in bytes")
    vms: int = Field(..., description="Virtual memory size in bytes")
    percent: float = Field(..., description="Share of system memory")


class HealthResponse(BaseModel):
    """Health check response schema"""
    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Check timestamp")
    uptime: float = Field(..., description="Seconds since startup")
    tracked_files: int = Field(..., alias="trackedFiles")
    capabilities_ready: bool = Field(..., alias="capabilitiesReady")
    memory: Optional[MemoryUsage] = None


class CategoryCapabilities(BaseModel):
    backends: List[str] = Field(default_factory=list)
    probed: bool = False
    input_formats: List[str] = Field(default_factory=list)
    output_formats: List[str] = Field(default_factory=list)


class CapabilitiesResponse(BaseModel):
    """Detected backends and supported formats per category"""
    ready: bool = Field(..., description="Whether capability probing has finished")
    categories: Dict[str, CategoryCapabilities]


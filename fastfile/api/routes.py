"""API routes for the file conversion service"""

import time
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import psutil
import pydantic
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse

from .dependencies import (
    get_classifier,
    get_dispatcher,
    get_file_service,
    get_registry,
    get_settings,
)
from .schemas import (
    CapabilitiesResponse,
    ConversionResponse,
    ErrorResponse,
    HealthResponse,
    MemoryUsage,
)
from ..core.config import Settings
from ..core.exceptions import FileSizeExceededError
from ..core.logger import get_logger
from ..core.types import FailureKind
from ..core.validators import ConversionRequest
from ..services.classifier import FileClassifier
from ..services.converter_registry import ConverterRegistry
from ..services.dispatcher import ConversionDispatcher
from ..services.file_service import FileService

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["File Conversion"])


def error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=details).model_dump(),
    )


@router.post("/convert", response_model=ConversionResponse)
async def convert_file(
    file: Optional[UploadFile] = File(None, description="File to convert"),
    target_format: Optional[str] = Form(None, alias="format", description="Target extension"),
    use_compression: Optional[str] = Form(None, alias="useCompression"),
    quality: Optional[str] = Form(None, description="low, medium or high"),
    app_settings: Settings = Depends(get_settings),
    file_service: FileService = Depends(get_file_service),
    dispatcher: ConversionDispatcher = Depends(get_dispatcher)
):
    """Convert an uploaded file to the requested format"""
    if file is None or not file.filename:
        return error_response(status.HTTP_400_BAD_REQUEST, "No file uploaded")

    try:
        conversion_request = ConversionRequest(
            target_format=target_format,
            use_compression=use_compression,
            quality=quality or app_settings.default_quality,
        )
    except pydantic.ValidationError:
        return error_response(status.HTTP_400_BAD_REQUEST, "Target format not specified")

    try:
        uploaded = await file_service.save_upload(file)
    except FileSizeExceededError as e:
        logger.warning(f"Upload {file.filename} rejected: {e}")
        return error_response(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "File too large", str(e))

    result = await dispatcher.handle_conversion(
        uploaded, conversion_request.target_format, conversion_request.to_options()
    )

    if not result.success:
        status_code = (
            status.HTTP_400_BAD_REQUEST
            if result.failure_kind is FailureKind.VALIDATION
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        return error_response(status_code, result.message, result.failure_reason)

    response = ConversionResponse(
        message=result.message,
        download_url=f"/api/download/{quote(result.converted_name)}",
        original_name=uploaded.original_name,
        converted_name=result.converted_name,
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


@router.get("/formats")
async def get_formats(classifier: FileClassifier = Depends(get_classifier)):
    """Supported extensions per category"""
    return classifier.list_supported_formats()


@router.get("/capabilities", response_model=CapabilitiesResponse)
async def get_capabilities(registry: ConverterRegistry = Depends(get_registry)):
    """Detected backends and currently supported formats"""
    return CapabilitiesResponse(ready=registry.ready, categories=registry.get_capabilities())


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health_check(
    request: Request,
    app_settings: Settings = Depends(get_settings),
    registry: ConverterRegistry = Depends(get_registry)
):
    """Health check endpoint"""
    process = psutil.Process()
    memory_info = process.memory_info()

    return HealthResponse(
        status="ok",
        service=app_settings.service_name,
        version=app_settings.version,
        timestamp=datetime.now().isoformat(),
        uptime=time.time() - request.app.state.start_time,
        tracked_files=request.app.state.artifact_manager.tracked_count,
        capabilities_ready=registry.ready,
        memory=MemoryUsage(
            rss=memory_info.rss,
            vms=memory_info.vms,
            percent=round(process.memory_percent(), 2),
        ),
    )

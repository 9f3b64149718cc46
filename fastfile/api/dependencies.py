"""API dependencies for dependency injection"""

from fastapi import Request

from ..core.config import Settings
from ..services.classifier import FileClassifier
from ..services.converter_registry import ConverterRegistry
from ..services.dispatcher import ConversionDispatcher
from ..services.file_service import FileService


def get_settings(request: Request) -> Settings:
    """Settings the running application was created with"""
    return request.app.state.settings


def get_classifier(request: Request) -> FileClassifier:
    return request.app.state.classifier


def get_registry(request: Request) -> ConverterRegistry:
    return request.app.state.registry


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service


def get_dispatcher(request: Request) -> ConversionDispatcher:
    """Get the dispatcher constructed at startup"""
    return request.app.state.dispatcher

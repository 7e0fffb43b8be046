"""Service layer: cache, fetch client, registry and ambient services."""

from .cache import ArtifactCache
from .config import ConfigurationService, ValidationResult
from .errors import (
    AppError,
    ConfigurationError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    FetchError,
    NotFoundError,
    StorageError,
    UpstreamError,
    UserFriendlyError,
    ValidationError,
    get_error_service,
    handle_error,
)
from .filesystem import FileSystemService
from .http_client import HttpClientService
from .logging import LoggingService, setup_logging
from .reclaimer import CacheReclaimer
from .registry import GameRegistry

__all__ = [
    "AppError",
    "ArtifactCache",
    "CacheReclaimer",
    "ConfigurationError",
    "ConfigurationService",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "FetchError",
    "FileSystemService",
    "GameRegistry",
    "HttpClientService",
    "LoggingService",
    "NotFoundError",
    "StorageError",
    "UpstreamError",
    "UserFriendlyError",
    "ValidationError",
    "ValidationResult",
    "get_error_service",
    "handle_error",
    "setup_logging",
]

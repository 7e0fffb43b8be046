"""Error taxonomy and centralized error handling for the warehouse gateway.

Every failure a caller can see is one of:
- NotFoundError: unknown game, loader, version, build or download URL
- UpstreamError / FetchError: a provider request or its decoding failed
- StorageError: the cache could not read, write or remove files
- ValidationError: caller input was rejected
- ConfigurationError: settings are invalid (fatal at startup)

ErrorHandlingService converts arbitrary exceptions into this taxonomy,
logs the technical details and keeps a short history.
"""

import json
import time
from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()


class ErrorCategory(Enum):
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"
    STORAGE = "storage"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Where an unexpected error happened."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class UserFriendlyError:
    """What gets shown to a caller: message, hints and the raw details."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True


def _details(*lines: tuple[str, Any]) -> str | None:
    """Join ``(label, value)`` pairs into "Label: value" lines, skipping empty values."""
    text = "\n".join(f"{label}: {value}" for label, value in lines if value is not None and value != "")
    return text or None


def _describe(error: BaseException | None) -> str | None:
    return f"{type(error).__name__}: {error}" if error is not None else None


class AppError(Exception):
    """Base class for every error the gateway reports."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.suggested_actions = suggested_actions or []
        self.technical_details = technical_details
        self.recoverable = recoverable
        self.context = context

    def to_user_friendly(self) -> UserFriendlyError:
        return UserFriendlyError(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=list(self.suggested_actions),
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


class NotFoundError(AppError):
    """A game, loader, version, build or download URL does not exist."""

    def __init__(self, message: str, resource: str | None = None, identifier: str | None = None) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.WARNING,
            suggested_actions=["Check the identifier for typos", "List the available entries first"],
            technical_details=_details(("Resource", resource), ("Id", identifier)),
        )
        self.resource = resource
        self.identifier = identifier


_UPSTREAM_STATUS_HINTS = {
    429: ["The upstream is rate limiting requests", "Wait a few minutes before retrying"],
    404: ["The upstream resource may no longer exist"],
}


class UpstreamError(AppError):
    """An upstream provider could not be reached or returned unusable data."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        if status_code in _UPSTREAM_STATUS_HINTS:
            hints = _UPSTREAM_STATUS_HINTS[status_code]
        elif status_code is not None and status_code >= 500:
            hints = ["The upstream server is experiencing issues", "Try again later"]
        else:
            hints = ["Check connectivity to the upstream provider", "Try again in a few moments"]

        super().__init__(
            message=message,
            category=ErrorCategory.UPSTREAM,
            suggested_actions=list(hints),
            technical_details=_details(
                ("Status", status_code),
                ("URL", url),
                ("Cause", _describe(original_error)),
            ),
        )
        self.original_error = original_error
        self.url = url
        self.status_code = status_code


class FetchError(UpstreamError):
    """An outbound request or its decoding failed."""


class StorageError(AppError):
    """A cache read, write or delete failed on disk."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        path: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            suggested_actions=self._hints_for(original_error),
            technical_details=_details(
                ("Operation", operation),
                ("Path", path),
                ("Cause", _describe(original_error)),
            ),
        )
        self.original_error = original_error
        self.path = path
        self.operation = operation

    @staticmethod
    def _hints_for(original_error: Exception | None) -> list[str]:
        if isinstance(original_error, PermissionError):
            return [
                "Check permissions of the storage directory",
                "Run the gateway as a user that owns the storage path",
            ]
        reason = str(original_error).lower() if isinstance(original_error, OSError) else ""
        if "no space" in reason or "disk full" in reason:
            return ["Free up disk space", "Lower the cache TTL so entries expire sooner"]
        if "read-only" in reason:
            return ["Point storage_path at a writable location"]
        return ["Check the storage path and permissions", "Ensure sufficient disk space"]


class ValidationError(AppError):
    """Caller input was rejected."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=["Review the input requirements"] + [f"Ensure: {c}" for c in constraints or []],
            technical_details=_details(
                ("Field", field),
                ("Value", str(value)[:100] if value is not None else None),
            ),
        )
        self.field = field
        self.value = value
        self.constraints = constraints or []


class ConfigurationError(AppError):
    """Invalid settings. Never recoverable: the process cannot start."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        current_value: Any = None,
        expected: str | None = None,
    ) -> None:
        hints = ["Check the configuration file and WAREHOUSE_* environment variables"]
        if expected:
            hints.append(f"Expected: {expected}")

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            suggested_actions=hints,
            technical_details=_details(("Setting", setting), ("Current", current_value)),
            recoverable=False,
        )
        self.setting = setting
        self.current_value = current_value
        self.expected = expected


_HTTP_STATUS_MESSAGES = {
    403: "The upstream denied access to this resource.",
    404: "The upstream resource was not found.",
    429: "The upstream is rate limiting requests.",
    500: "The upstream encountered an error.",
    502: "The upstream is temporarily unavailable.",
    503: "The upstream is temporarily unavailable.",
    504: "The upstream took too long to respond.",
}


class ErrorHandlingService:
    """Converts exceptions into the error taxonomy, logs them and keeps a short history."""

    def __init__(self, max_history_size: int = 100) -> None:
        self._history: deque[tuple[float, AppError]] = deque(maxlen=max_history_size)

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> UserFriendlyError:
        """Record an error and return what a caller should be shown.

        Args:
            error: The exception that occurred
            operation: What was being done, e.g. "download"
            component: Where, e.g. "cli" or "registry"
            context: Extra fields for the log record (url, path, field, value...)
        """
        app_error = self.to_app_error(error, operation, component, context or {})
        self._log_error(app_error, operation, component, context)
        self._history.append((time.time(), app_error))
        return app_error.to_user_friendly()

    def to_app_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any],
    ) -> AppError:
        if isinstance(error, AppError):
            return error

        # Order matters: JSONDecodeError is a ValueError and timeouts are request errors
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            return FetchError(
                _HTTP_STATUS_MESSAGES.get(status_code, f"Upstream HTTP error {status_code} occurred."),
                original_error=error,
                url=str(error.request.url),
                status_code=status_code,
            )
        if isinstance(error, httpx.TimeoutException):
            return FetchError("The upstream request timed out.", original_error=error, url=context.get("url"))
        if isinstance(error, httpx.RequestError):
            return FetchError("Unable to reach the upstream provider.", original_error=error, url=context.get("url"))
        if isinstance(error, json.JSONDecodeError):
            return FetchError("The upstream returned malformed JSON.", original_error=error, url=context.get("url"))
        if isinstance(error, OSError):
            return StorageError(
                f"A storage error occurred: {error}",
                original_error=error,
                path=context.get("path"),
                operation=operation,
            )
        if isinstance(error, (ValueError, TypeError)):
            return ValidationError(str(error), field=context.get("field"), value=context.get("value"))

        return AppError(
            message="An unexpected error occurred.",
            technical_details=_describe(error),
            context=ErrorContext(operation=operation, component=component, details=context),
        )

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        emit = log.warning if error.severity is ErrorSeverity.WARNING else log.error
        emit(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_recent_errors(self, count: int = 10) -> list[AppError]:
        """Most recent handled errors, oldest first."""
        if count <= 0:
            return []
        return [error for _, error in list(self._history)[-count:]]

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        return dict(Counter(error.category for _, error in self._history))

    def create_user_message(self, error: UserFriendlyError, include_suggestions: bool = True) -> str:
        """Render an error as text, with up to three suggested actions."""
        lines = [error.message]
        if include_suggestions and error.suggested_actions:
            lines.append("\nSuggested actions:")
            lines.extend(f"  • {action}" for action in error.suggested_actions[:3])
        return "\n".join(lines)


_error_service: ErrorHandlingService | None = None


def get_error_service() -> ErrorHandlingService:
    """Process-wide ErrorHandlingService, created on first use."""
    global _error_service
    if _error_service is None:
        _error_service = ErrorHandlingService()
    return _error_service


def handle_error(
    error: Exception,
    operation: str,
    component: str,
    context: dict[str, Any] | None = None,
) -> UserFriendlyError:
    return get_error_service().handle_error(error, operation, component, context)

"""
Exception Hierarchy & Error Handling Framework
===============================================
Type-safe exception taxonomy with structured context propagation,
retry metadata, and observability integration.

Profile mutation failures are raised inside the engine and translated
into discriminated results (``UpdateErrorKind``) at the service boundary.

Architecture: Railway-Oriented Programming + Error Algebra
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity, UpdateErrorKind

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class VoiceProfileException(Exception):
    """
    Root exception for all application errors.

    Implements structured error context with:
    - Unique error ID for distributed tracing
    - Severity classification for alerting
    - Structured context dictionary
    - Retry metadata
    - Timestamp for temporal analysis
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        *,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity or self.default_severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.now(timezone.utc)

        # Exception chaining for causal analysis
        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        """Human-readable error representation."""
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


# =============================================================================
# PROFILE UPDATE EXCEPTIONS
# =============================================================================


class ProfileUpdateException(VoiceProfileException):
    """
    Base exception for profile mutation failures.

    Each subclass maps onto exactly one ``UpdateErrorKind`` so the atomic
    update service can report it as a discriminated result.
    """

    kind: UpdateErrorKind = UpdateErrorKind.VALIDATION


class ProfileNotFoundError(ProfileUpdateException):
    """User document or its style profile does not exist."""

    kind = UpdateErrorKind.NOT_FOUND
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        user_id: str,
        message: Optional[str] = None,
        *,
        missing: str = "profile",
        **kwargs,
    ):
        message = message or f"Style profile not found for user {user_id}"
        super().__init__(
            message,
            retryable=False,
            context={"user_id": user_id, "missing": missing},
            error_code="PROFILE_NOT_FOUND",
            **kwargs,
        )
        self.user_id = user_id
        self.missing = missing


class UserNotFoundError(ProfileNotFoundError):
    """User document does not exist."""

    def __init__(self, user_id: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            user_id,
            message or f"User {user_id} not found",
            missing="user",
            **kwargs,
        )
        self.error_code = "USER_NOT_FOUND"


class NoProfileError(ProfileNotFoundError):
    """Operation requires a style profile the user does not have."""

    def __init__(self, user_id: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            user_id,
            message or f"User {user_id} has no style profile",
            missing="profile",
            **kwargs,
        )
        self.error_code = "NO_PROFILE"


class ProfileValidationError(ProfileUpdateException):
    """Proposed value violates a declared range or enum constraint."""

    kind = UpdateErrorKind.VALIDATION
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str = "Profile validation failed",
        *,
        field_path: Optional[str] = None,
        value: Any = None,
        validation_errors: Optional[list[str]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=False,
            context={
                "field_path": field_path,
                "value": repr(value)[:200],
                "validation_errors": validation_errors or [],
            },
            error_code="PROFILE_VALIDATION_FAILED",
            **kwargs,
        )
        self.field_path = field_path
        self.validation_errors = validation_errors or []


class ConcurrencyConflictError(ProfileUpdateException):
    """Optimistic-concurrency retries exhausted."""

    kind = UpdateErrorKind.CONCURRENCY

    def __init__(
        self,
        user_id: str,
        *,
        attempts: int,
        message: Optional[str] = None,
        **kwargs,
    ):
        message = message or f"Max retries exceeded updating profile for user {user_id}"
        super().__init__(
            message,
            retryable=True,
            context={"user_id": user_id, "attempts": attempts},
            error_code="MAX_RETRIES_EXCEEDED",
            **kwargs,
        )
        self.attempts = attempts


class LockAcquisitionError(ProfileUpdateException):
    """Distributed lock could not be acquired within the timeout."""

    kind = UpdateErrorKind.LOCK
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        lock_key: str,
        *,
        timeout_seconds: Optional[float] = None,
        message: Optional[str] = None,
        **kwargs,
    ):
        message = message or f"Could not acquire lock {lock_key}"
        super().__init__(
            message,
            retryable=False,
            context={"lock_key": lock_key, "timeout_seconds": timeout_seconds},
            error_code="LOCK_NOT_ACQUIRED",
            **kwargs,
        )
        self.lock_key = lock_key


# =============================================================================
# CONTENT EXCEPTIONS
# =============================================================================


class ContentNotFoundError(VoiceProfileException):
    """Generated content item does not exist."""

    default_severity = ErrorSeverity.WARNING

    def __init__(self, content_id: str, message: Optional[str] = None, **kwargs):
        message = message or f"Content {content_id} not found"
        super().__init__(
            message,
            retryable=False,
            context={"content_id": content_id},
            error_code="CONTENT_NOT_FOUND",
            **kwargs,
        )
        self.content_id = content_id


class VersionNotFoundError(VoiceProfileException):
    """Requested profile version snapshot does not exist."""

    default_severity = ErrorSeverity.WARNING

    def __init__(self, user_id: str, index: int, available: int, **kwargs):
        super().__init__(
            f"Version {index} not found for user {user_id} ({available} available)",
            retryable=False,
            context={"user_id": user_id, "index": index, "available": available},
            error_code="VERSION_NOT_FOUND",
            **kwargs,
        )


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS
# =============================================================================


class InfrastructureException(VoiceProfileException):
    """Base exception for infrastructure errors."""

    default_severity = ErrorSeverity.CRITICAL


# Alias for backward compatibility
InfrastructureError = InfrastructureException


class DatabaseException(InfrastructureException):
    """Base exception for database errors."""


class DatabaseConnectionError(DatabaseException):
    """Failed to establish database connection."""

    def __init__(
        self,
        message: str = "Database connection failed",
        *,
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"host": host, "database": database},
            error_code="DB_CONNECTION_FAILED",
            **kwargs,
        )


class CacheException(VoiceProfileException):
    """Base exception for caching errors."""

    # Cache failures should degrade gracefully
    default_severity = ErrorSeverity.WARNING


CacheError = CacheException


class CacheWriteError(CacheException):
    """Failed to write to cache."""

    def __init__(
        self, message: str = "Cache write failed", *, cache_key: Optional[str] = None, **kwargs
    ):
        super().__init__(
            message,
            retryable=True,
            context={"cache_key": cache_key},
            error_code="CACHE_WRITE_FAILED",
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================


class ConfigurationException(VoiceProfileException):
    """Base exception for configuration errors."""

    default_severity = ErrorSeverity.CRITICAL


class InvalidConfigurationError(ConfigurationException):
    """Configuration parameter has invalid value."""

    def __init__(
        self, parameter_name: str, invalid_value: Any, message: Optional[str] = None, **kwargs
    ):
        message = message or f"Invalid configuration value for {parameter_name}: {invalid_value}"
        super().__init__(
            message,
            retryable=False,
            context={
                "parameter_name": parameter_name,
                "invalid_value": str(invalid_value),
            },
            error_code="INVALID_CONFIGURATION",
            **kwargs,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def handle_exception(
    exc: Exception,
    *,
    log_function: Optional[Callable[[str], Any]] = None,
    raise_new: bool = False,
    default_return: Any = None,
) -> Any:
    """
    Centralized exception handler with logging and error transformation.

    Args:
        exc: The exception to handle
        log_function: Optional logging function (e.g., logger.error)
        raise_new: If True, wraps unknown exceptions in VoiceProfileException
        default_return: Value to return if not re-raising

    Returns:
        default_return value if not raising

    Raises:
        VoiceProfileException: If raise_new=True and exc is not already one
    """
    if log_function:
        if isinstance(exc, VoiceProfileException):
            log_function(f"Application error: {exc} | {exc.to_dict()}")
        else:
            log_function(f"Unexpected error: {type(exc).__name__}: {exc}")

    if raise_new and not isinstance(exc, VoiceProfileException):
        raise VoiceProfileException(
            message=str(exc),
            cause=exc,
            severity=ErrorSeverity.ERROR,
        ) from exc

    return default_return


def is_retryable(exc: Exception) -> bool:
    """
    Determine if an exception is retryable.

    Args:
        exc: Exception to check

    Returns:
        True if operation should be retried, False otherwise
    """
    if isinstance(exc, VoiceProfileException):
        return exc.retryable

    # Heuristic for non-application exceptions
    retryable_types = (
        TimeoutError,
        ConnectionError,
    )
    return isinstance(exc, retryable_types)


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    # Base
    "VoiceProfileException",
    # Profile updates
    "ProfileUpdateException",
    "ProfileNotFoundError",
    "UserNotFoundError",
    "NoProfileError",
    "ProfileValidationError",
    "ConcurrencyConflictError",
    "LockAcquisitionError",
    # Content
    "ContentNotFoundError",
    "VersionNotFoundError",
    # Infrastructure
    "InfrastructureException",
    "InfrastructureError",
    "DatabaseException",
    "DatabaseConnectionError",
    "CacheException",
    "CacheError",
    "CacheWriteError",
    # Configuration
    "ConfigurationException",
    "InvalidConfigurationError",
    # Utilities
    "handle_exception",
    "is_retryable",
]

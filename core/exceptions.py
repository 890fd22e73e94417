"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the moderation core.

- Provides clear exception hierarchy
- Maps every request-level error onto an HTTP-class status
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
ModerationError (base)
├── RequestError
│   ├── UnauthorizedError      (401)
│   ├── ForbiddenError         (403)
│   ├── NotFoundError          (404)
│   ├── ConflictError          (409)
│   └── BadRequestError        (400)
├── InternalError              (500)
│   ├── DatabasePersistenceError
│   ├── CacheStoreError
│   └── CollaboratorError
└── ConfigurationError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for logging."""

    LOW = "low"
    """Expected rejection, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, an operation could not complete."""

    CRITICAL = "critical"
    """The process cannot continue."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class ModerationError(Exception):
    """
    Base exception for all moderation core errors.

    All exceptions carry:
    - status_code: HTTP-class status the result envelope reports
    - error_code: short machine-readable reason
    - severity: for logging
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    default_error_code: str = "ModerationError"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def errors(self) -> List[str]:
        """Error list reported in the result envelope."""
        return [self.error_code]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code,
            "status_code": int(self.status_code),
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# REQUEST ERRORS (detected before any mutation)
# ============================================================

class RequestError(ModerationError):
    """A request was rejected; no side effects were applied."""

    default_severity = Severity.LOW
    status_code = HTTPStatus.BAD_REQUEST
    default_error_code = "BadRequest"


class UnauthorizedError(RequestError):
    """Caller cannot be resolved to any account."""

    status_code = HTTPStatus.UNAUTHORIZED
    default_error_code = "Unauthorized"


class ForbiddenError(RequestError):
    """Caller resolved but lacks the required role, or the target is protected."""

    status_code = HTTPStatus.FORBIDDEN
    default_error_code = "Forbidden"


class NotFoundError(RequestError):
    """Target user, proposal or record does not exist."""

    status_code = HTTPStatus.NOT_FOUND
    default_error_code = "NotFound"

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        identifier: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if resource:
            context["resource"] = resource
        if identifier:
            context["identifier"] = identifier

        super().__init__(message, context=context, **kwargs)


class ConflictError(RequestError):
    """Target is in a state that does not allow the transition."""

    status_code = HTTPStatus.CONFLICT
    default_error_code = "Conflict"

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if current_state:
            context["current_state"] = current_state

        super().__init__(message, context=context, **kwargs)


class BadRequestError(RequestError):
    """Request input failed validation."""

    status_code = HTTPStatus.BAD_REQUEST
    default_error_code = "BadRequest"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[List[str]] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if field:
            context["field"] = field

        super().__init__(message, context=context, **kwargs)
        self.details = details or []

    @property
    def errors(self) -> List[str]:
        return self.details or [self.error_code]


# ============================================================
# INTERNAL ERRORS (raised by the store or a collaborator)
# ============================================================

class InternalError(ModerationError):
    """Unexpected failure while applying a mutation."""

    default_severity = Severity.HIGH
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    default_error_code = "InternalError"


class DatabasePersistenceError(InternalError):
    """The relational store rejected a read or write."""

    default_error_code = "DatabaseError"


class CacheStoreError(InternalError):
    """The cache store is unreachable or returned an error."""

    default_severity = Severity.MEDIUM
    default_error_code = "CacheUnavailable"

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if key:
            context["key"] = key

        super().__init__(message, context=context, **kwargs)


class CollaboratorError(InternalError):
    """An external collaborator (accounts, notifications, storage) failed."""

    default_error_code = "CollaboratorError"

    def __init__(
        self,
        message: str,
        collaborator: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if collaborator:
            context["collaborator"] = collaborator
        if operation:
            context["operation"] = operation

        super().__init__(message, context=context, **kwargs)


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(ModerationError):
    """Error in configuration."""

    default_severity = Severity.CRITICAL
    default_error_code = "ConfigurationError"

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


__all__ = [
    "Severity",
    "ModerationError",
    "RequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "BadRequestError",
    "InternalError",
    "DatabasePersistenceError",
    "CacheStoreError",
    "CollaboratorError",
    "ConfigurationError",
]

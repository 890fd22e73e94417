"""
Core Module Package.

This package contains the infrastructure pieces every other
package depends on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- result: Operation result envelope
- constants: Shared constants
- config: Environment-driven configuration
"""

from .clock import ClockProtocol, SystemClock, MockClock, ClockFactory, naive_utc
from .exceptions import (
    ModerationError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    BadRequestError,
    InternalError,
)
from .result import Result
from .config import AppConfig, load_config

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "naive_utc",
    "ModerationError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "BadRequestError",
    "InternalError",
    "Result",
    "AppConfig",
    "load_config",
]

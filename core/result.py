"""
Core Module - Operation Result Envelope.

Every admin- or user-facing operation returns a Result instead of
raising: success flag, human-readable message, machine status code,
optional payload and error list. The presentation layer renders it.
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .exceptions import ModerationError

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of a lifecycle operation."""

    is_success: bool
    message: str
    status_code: int
    data: Optional[T] = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def good(
        cls,
        message: str,
        data: Optional[T] = None,
        status_code: int = HTTPStatus.OK,
    ) -> "Result[T]":
        return cls(
            is_success=True,
            message=message,
            status_code=int(status_code),
            data=data,
        )

    @classmethod
    def bad(
        cls,
        message: str,
        status_code: int,
        errors: Optional[List[str]] = None,
        data: Optional[T] = None,
    ) -> "Result[T]":
        return cls(
            is_success=False,
            message=message,
            status_code=int(status_code),
            data=data,
            errors=errors or [],
        )

    @classmethod
    def from_error(cls, error: ModerationError) -> "Result[T]":
        """Build a failed result from a ModerationError."""
        return cls.bad(error.message, error.status_code, error.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_success": self.is_success,
            "message": self.message,
            "status_code": self.status_code,
            "data": self.data,
            "errors": list(self.errors),
        }


__all__ = ["Result"]

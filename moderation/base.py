"""
Shared plumbing of the lifecycle services.

- Request parsing (pydantic ValidationError -> BadRequestError)
- Caller resolution (Unauthorized / Forbidden)
- Collaborator calls (exceptions and False results -> CollaboratorError)
- Best-effort calls (logged, never raised)
- The operation boundary that turns every error into a Result
"""

import logging
from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from core.clock import ClockFactory, ClockProtocol
from core.constants import ADMIN_ROLE
from core.exceptions import (
    BadRequestError,
    CollaboratorError,
    ForbiddenError,
    InternalError,
    ModerationError,
    RequestError,
    UnauthorizedError,
)
from core.result import Result
from integrations.interfaces import Account, AccountDirectory


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_request(model: Type[M], data: Union[M, Dict[str, Any]]) -> M:
    """Validate a request payload, raising BadRequestError with one entry per failed field."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise BadRequestError("Invalid request", details=details, cause=e) from e


class LifecycleService:
    """Base class of the moderation services."""

    def __init__(
        self,
        accounts: AccountDirectory,
        clock: Optional[ClockProtocol] = None,
        admin_role: str = ADMIN_ROLE,
    ):
        self._accounts = accounts
        self._clock = clock or ClockFactory.get_clock()
        self._admin_role = admin_role

    # ---------------------------------------------------------
    # CALLER RESOLUTION
    # ---------------------------------------------------------

    def _resolve_caller(self, email: Optional[str]) -> Account:
        if not email or not email.strip():
            raise UnauthorizedError("Caller is not authenticated")
        user = self._call("accounts", "find_user_by_email", self._accounts.find_user_by_email, email.strip())
        if user is None:
            raise UnauthorizedError("Caller account not found", context={"email": email})
        return user

    def _resolve_admin(self, email: Optional[str]) -> Account:
        user = self._resolve_caller(email)
        if not self._is_admin(user):
            raise ForbiddenError("Administrator role required", context={"email": user.email})
        return user

    def _is_admin(self, user: Account) -> bool:
        return bool(self._call("accounts", "is_in_role", self._accounts.is_in_role, user, self._admin_role))

    # ---------------------------------------------------------
    # COLLABORATOR CALLS
    # ---------------------------------------------------------

    @staticmethod
    def _call(collaborator: str, operation: str, fn: Callable, *args, **kwargs):
        """Call a collaborator query; a raised exception becomes CollaboratorError."""
        try:
            return fn(*args, **kwargs)
        except ModerationError:
            raise
        except Exception as e:
            raise CollaboratorError(
                f"{collaborator}.{operation} failed: {e}",
                collaborator=collaborator,
                operation=operation,
                cause=e,
            ) from e

    @classmethod
    def _apply(cls, collaborator: str, operation: str, fn: Callable, *args, **kwargs):
        """Call a collaborator command; a False result also becomes CollaboratorError."""
        result = cls._call(collaborator, operation, fn, *args, **kwargs)
        if result is False:
            raise CollaboratorError(
                f"{collaborator}.{operation} reported failure",
                collaborator=collaborator,
                operation=operation,
            )
        return result

    @staticmethod
    def _best_effort(description: str, fn: Callable, *args, **kwargs) -> bool:
        """Call fn, logging instead of raising. Returns whether it succeeded."""
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            logger.warning(f"{description} failed: {e}", exc_info=True)
            return False
        if result is False:
            logger.warning(f"{description} reported failure")
            return False
        return True

    # ---------------------------------------------------------
    # OPERATION BOUNDARY
    # ---------------------------------------------------------

    @staticmethod
    def _execute(operation: str, fn: Callable[..., Result], *args, **kwargs) -> Result:
        """Run an operation; every error comes back as a failed Result."""
        try:
            return fn(*args, **kwargs)
        except RequestError as e:
            logger.warning(f"{operation} rejected: {e.to_log_format()}")
            return Result.from_error(e)
        except ModerationError as e:
            logger.error(f"{operation} failed: {e.to_log_format()}", exc_info=True)
            return Result.bad(f"Failed to {operation}", e.status_code, e.errors)
        except Exception as e:
            logger.error(f"{operation} failed with unexpected error: {e}", exc_info=True)
            error = InternalError(f"Failed to {operation}", cause=e)
            return Result.bad(error.message, error.status_code, error.errors)


__all__ = ["LifecycleService", "parse_request"]

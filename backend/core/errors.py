from enum import Enum
from typing import Optional
import functools
import logging

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed set of failure categories; HTTP status is assigned in api.error_handling."""
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INTERNAL = "internal_error"


class AuthError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(AuthError):
    """Malformed input or a business rule the client can fix (400)."""
    kind = ErrorKind.VALIDATION


class ConflictError(AuthError):
    kind = ErrorKind.CONFLICT


class UnauthorizedError(AuthError):
    """Bad credentials, bad token or wrong verification state."""
    kind = ErrorKind.UNAUTHORIZED


class NotFoundError(AuthError):
    kind = ErrorKind.NOT_FOUND


class InternalError(AuthError):
    kind = ErrorKind.INTERNAL


def operation(failure_message: str):
    """Wrap an async service operation so only AuthError leaves it.

    Anything else is logged and replaced by an InternalError carrying
    failure_message, so driver errors, SMTP errors and secrets never reach
    the caller.
    """

    def _decorate(func):
        @functools.wraps(func)
        async def _wrapped(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except AuthError:
                raise
            except Exception as e:
                logger.error(f"{func.__qualname__} failed: {e}")
                raise InternalError(failure_message) from e

        return _wrapped

    return _decorate

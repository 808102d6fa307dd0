"""
Unified error handling for rolesd.

Discovery loops handle every query and record error locally; only startup
failures reach the command line, where they are converted to exit codes.

Exit Codes:
- 0: Success
- 10: Configuration error
- 11: Provider error (metrics backend failure)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for the command line."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    UNKNOWN_ERROR = 127


class RoleSDError(Exception):
    """Base exception for rolesd errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(RoleSDError):
    """Raised for configuration-related errors at startup."""

    exit_code = ExitCode.CONFIG_ERROR


class QueryError(RoleSDError):
    """Base class for failures of a single backend query."""

    exit_code = ExitCode.PROVIDER_ERROR
    kind = "query"


class RequestBuildError(QueryError):
    """The endpoint or query could not be turned into a request."""

    kind = "request_build"


class TransportError(QueryError):
    """The backend could not be reached or the exchange broke off."""

    kind = "transport"


class BackendStatusError(TransportError):
    """The backend answered with a non-success HTTP or API status."""

    kind = "backend_status"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class DecodeError(QueryError):
    """The response body is not a single, well-formed query result."""

    kind = "decode"


class RecordConversionError(RoleSDError):
    """A single metric record cannot be turned into a target group."""

    kind = "record_conversion"


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for command line entry points that provides unified error handling.

    Exit codes:
        - RoleSDError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except RoleSDError as e:
                print(f"error: {format_error_message(e)}", file=sys.stderr)
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: RoleSDError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg

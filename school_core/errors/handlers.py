# =============================================================================
# school_core/errors/handlers.py
# Error Handling Utilities for the sync core
# =============================================================================

from __future__ import annotations
import logging
import sys
import traceback
from typing import Optional

from school_core.logging import get_logger
from .exceptions import SchoolCoreError

logger = get_logger(__name__)


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
    level: int = logging.ERROR,
    log: Optional[logging.Logger] = None,
) -> str:
    """
    Centralized error handling function.

    Errors never cross the core/consumer boundary as exceptions, so this
    only logs and returns the message a consumer should render.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Custom message (uses error message if None)
        level: Logging level for the record
        log: Logger to write to (defaults to this module's logger)

    Returns:
        The message suitable for display
    """
    # Only attach a traceback when called while an exception is being handled
    in_except = sys.exc_info()[0] is not None

    if isinstance(error, SchoolCoreError):
        message = user_message or error.message
        code = error.code
        details = error.details
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()} if in_except else {}

    if log_error:
        (log or logger).log(
            level,
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=level >= logging.ERROR and in_except,
        )

    return message


class ErrorContext:
    """
    Context manager that logs an operation and handles its errors.

    Usage:
        with ErrorContext("Closing view on class_sessions"):
            await view.close()

    Recoverable contexts suppress the exception after logging it.
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        log: Optional[logging.Logger] = None,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.log = log or logger
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        self.log.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.log.debug(f"Completed: {self.operation}")
            return False
        if not isinstance(exc_val, Exception):
            # Cancellation and interpreter exits always propagate
            return False

        self.error = exc_val
        if isinstance(exc_val, SchoolCoreError):
            handle_error(exc_val, log=self.log)
        else:
            handle_error(
                exc_val,
                user_message=f"Error during: {self.operation}: {exc_val}",
                log=self.log,
            )
        return self.recoverable

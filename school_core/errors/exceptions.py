# =============================================================================
# school_core/errors/exceptions.py
# Custom Exception Hierarchy for the sync core
# =============================================================================

from typing import Optional, Dict, Any


class SchoolCoreError(Exception):
    """
    Base exception for all sync core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CORE_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# SYNC LAYER EXCEPTIONS
# =============================================================================

class FetchError(SchoolCoreError):
    """Raised when the initial load (or a refresh) of a view fails"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        filters: Optional[list] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if filters:
            details["filters"] = filters

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class SubscriptionError(SchoolCoreError):
    """Raised when a change feed cannot be established or has dropped"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        state: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if state:
            details["state"] = state
        if attempts is not None:
            details["attempts"] = attempts

        super().__init__(
            message=message,
            code="SYNC_002",
            details=details,
            **kwargs,
        )


class MutationError(SchoolCoreError):
    """Raised when a create/update/remove request fails"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if operation:
            details["operation"] = operation
        if record_id:
            details["record_id"] = record_id

        super().__init__(
            message=message,
            code="SYNC_003",
            details=details,
            **kwargs,
        )


class MalformedEventError(SchoolCoreError):
    """Raised when a raw change notification has an unexpected shape"""

    def __init__(
        self,
        message: str,
        payload: Optional[Any] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if payload is not None:
            details["payload"] = repr(payload)[:500]

        super().__init__(
            message=message,
            code="SYNC_004",
            details=details,
            **kwargs,
        )


# =============================================================================
# SESSION LIFECYCLE EXCEPTIONS
# =============================================================================

class InvalidTransitionError(SchoolCoreError):
    """Raised when a session status transition is not allowed"""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if session_id:
            details["session_id"] = session_id
        if from_status:
            details["from_status"] = from_status
        if to_status:
            details["to_status"] = to_status

        super().__init__(
            message=message,
            code="SESSION_001",
            details=details,
            **kwargs,
        )


class InvalidStatusError(SchoolCoreError):
    """Raised when a session carries a status outside the lifecycle"""

    def __init__(self, message: str, status: Optional[Any] = None, **kwargs):
        details = kwargs.pop("details", {})
        if status is not None:
            details["status"] = status

        super().__init__(
            message=message,
            code="SESSION_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(SchoolCoreError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )

# =============================================================================
# school_core/errors/__init__.py
# Centralized Error Handling for the sync core
# =============================================================================

from .exceptions import (
    SchoolCoreError,
    FetchError,
    SubscriptionError,
    MutationError,
    MalformedEventError,
    InvalidTransitionError,
    InvalidStatusError,
    ConfigurationError,
)

from .handlers import handle_error, ErrorContext

__all__ = [
    # Exceptions
    "SchoolCoreError",
    "FetchError",
    "SubscriptionError",
    "MutationError",
    "MalformedEventError",
    "InvalidTransitionError",
    "InvalidStatusError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "ErrorContext",
]

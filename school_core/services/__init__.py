# =============================================================================
# school_core/services/__init__.py
# Service Layer primitives shared by the sync and session packages
# =============================================================================

from .base_service import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
]

# =============================================================================
# school_core/__init__.py
# School operations core: live collection sync and session lifecycle
# =============================================================================

__version__ = "0.1.0"

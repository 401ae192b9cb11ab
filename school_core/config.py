# =============================================================================
# school_core/config.py
# Settings for the sync core (Supabase credentials, provider, reconnect policy)
# =============================================================================
"""
Settings are resolved in this order:

1. Streamlit secrets (``.streamlit/secrets.toml``)::

       [supabase]
       url = "https://your-project.supabase.co"
       key = "your-anon-key"
       # optional
       schema = "public"
       provider = "supabase"

2. Environment variables (a local ``.env`` is loaded first):
   ``SUPABASE_URL``, ``SUPABASE_KEY``, ``SUPABASE_SCHEMA``,
   ``SCHOOL_CORE_PROVIDER``, ``SCHOOL_CORE_MAX_RECONNECT_ATTEMPTS``,
   ``SCHOOL_CORE_RECONNECT_BASE_DELAY``, ``SCHOOL_CORE_RECONNECT_MAX_DELAY``.

3. Defaults, which select the in-memory ``mock`` provider.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

import streamlit as st
from dotenv import load_dotenv

from school_core.errors import ConfigurationError
from school_core.logging import get_logger

logger = get_logger(__name__)

PROVIDERS = ("supabase", "mock")


@dataclass(frozen=True)
class SyncSettings:
    """Connection and reconnection settings for views and the CRUD facade."""
    provider: str = "mock"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    schema: str = "public"

    # Feed reconnection (exponential backoff)
    max_reconnect_attempts: int = 5
    backoff_base: float = 2.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0

    def reconnect_delay(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (0-based), capped."""
        delay = self.reconnect_base_delay * (self.backoff_base ** attempt)
        return min(delay, self.reconnect_max_delay)

    def validate(self) -> SyncSettings:
        if self.provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider '{self.provider}'",
                config_key="provider",
                expected_type=" | ".join(PROVIDERS),
            )
        if self.provider == "supabase":
            if not self.supabase_url:
                raise ConfigurationError("Supabase URL is not configured", config_key="supabase.url")
            if not self.supabase_key:
                raise ConfigurationError("Supabase key is not configured", config_key="supabase.key")
        if self.max_reconnect_attempts < 0:
            raise ConfigurationError(
                "max_reconnect_attempts must be >= 0",
                config_key="max_reconnect_attempts",
                expected_type="int",
            )
        return self


def _read_streamlit_secrets() -> Dict[str, Any]:
    """Return the ``[supabase]`` secrets table, or {} when none is configured."""
    try:
        if "supabase" in st.secrets:
            return dict(st.secrets["supabase"])
    except Exception as e:
        # No secrets.toml outside a Streamlit deployment
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def _read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    mapping = {
        "SUPABASE_URL": "url",
        "SUPABASE_KEY": "key",
        "SUPABASE_SCHEMA": "schema",
        "SCHOOL_CORE_PROVIDER": "provider",
        "SCHOOL_CORE_MAX_RECONNECT_ATTEMPTS": "max_reconnect_attempts",
        "SCHOOL_CORE_RECONNECT_BASE_DELAY": "reconnect_base_delay",
        "SCHOOL_CORE_RECONNECT_MAX_DELAY": "reconnect_max_delay",
    }
    for env_key, name in mapping.items():
        if environ.get(env_key):
            values[name] = environ[env_key]
    return values


def _coerce(name: str, value: Any, cast):
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid value for {name}: {value!r}",
            config_key=name,
            expected_type=cast.__name__,
        )


def settings_from_mapping(values: Mapping[str, Any]) -> SyncSettings:
    """Build validated settings from a flat mapping of secrets/env values."""
    url = values.get("url")
    key = values.get("key")
    default_provider = "supabase" if url and key else "mock"

    settings = SyncSettings(
        provider=str(values.get("provider") or default_provider).lower(),
        supabase_url=url,
        supabase_key=key,
        schema=values.get("schema") or "public",
    )

    overrides: Dict[str, Any] = {}
    if "max_reconnect_attempts" in values:
        overrides["max_reconnect_attempts"] = _coerce(
            "max_reconnect_attempts", values["max_reconnect_attempts"], int
        )
    for name in ("backoff_base", "reconnect_base_delay", "reconnect_max_delay"):
        if name in values:
            overrides[name] = _coerce(name, values[name], float)

    return replace(settings, **overrides).validate()


def load_settings(environ: Optional[Mapping[str, str]] = None) -> SyncSettings:
    """
    Resolve settings from Streamlit secrets, then the environment.

    Args:
        environ: Environment mapping (defaults to ``os.environ`` after
            loading ``.env``)

    Returns:
        Validated SyncSettings
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    values = _read_environment(environ)
    secrets = _read_streamlit_secrets()
    values.update({k: v for k, v in secrets.items() if v not in (None, "")})

    settings = settings_from_mapping(values)
    logger.info(f"Sync settings loaded (provider={settings.provider}, schema={settings.schema})")
    return settings

"""Service layer helpers (settings, session persistence)."""

from .session_cache import SessionCacheStore, SessionSnapshot
from .settings import SecretVault, Settings, SettingsStore

__all__ = [
    "SecretVault",
    "SessionCacheStore",
    "SessionSnapshot",
    "Settings",
    "SettingsStore",
]

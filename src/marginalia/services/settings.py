"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "ENV_OVERRIDES",
    "Settings",
    "SettingsStore",
    "SecretVault",
    "FernetSecretProvider",
    "active_env_overrides",
    "clamp_font_size",
    "redact_secret",
    "settings_dir",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR_ENV = "MARGINALIA_HOME"
_SETTINGS_VERSION = 1
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def _parse_flag(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


# Environment variable -> (settings field, parser). Values that fail to parse are skipped.
ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "MARGINALIA_API_KEY": ("api_key", str),
    "MARGINALIA_BASE_URL": ("base_url", str),
    "MARGINALIA_MODEL": ("model", str),
    "MARGINALIA_ORGANIZATION": ("organization", str),
    "MARGINALIA_THEME": ("theme", str),
    "MARGINALIA_DEBUG_LOGGING": ("debug_logging", _parse_flag),
    "MARGINALIA_TEMPERATURE": ("temperature", float),
    "MARGINALIA_REQUEST_TIMEOUT": ("request_timeout", float),
    "MARGINALIA_AUTO_DISMISS_DELAY": ("auto_dismiss_delay", float),
    "MARGINALIA_MAX_TOKENS": ("max_tokens", int),
    "MARGINALIA_HISTORY_WINDOW": ("history_window", int),
}
_API_KEY_FIELD = "api_key_ciphertext"
FONT_SIZE_MIN = 11
FONT_SIZE_MAX = 24
DEFAULT_FONT_SIZE = 15


def settings_dir() -> Path:
    """Directory holding settings, the session file and logs."""

    override = os.environ.get(_SETTINGS_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".marginalia"


def clamp_font_size(value: Any) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError):
        return DEFAULT_FONT_SIZE
    return max(FONT_SIZE_MIN, min(FONT_SIZE_MAX, size))


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    max_tokens: int = 4096
    history_window: int = 10
    auto_dismiss_delay: float = 1.2
    session_save_delay: float = 1.5
    default_headers: dict[str, str] = field(default_factory=dict)
    theme: str = "dark"
    font_size: int = DEFAULT_FONT_SIZE
    debug_logging: bool = False

    def __post_init__(self) -> None:
        self.font_size = clamp_font_size(self.font_size)


class FernetSecretProvider:
    """Symmetric Fernet key stored next to the settings file."""

    name = "fernet"

    def __init__(self, key_path: Path) -> None:
        self._key_path = key_path
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        return self._get_fernet().encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        return self._get_fernet().decrypt(token.encode("ascii")).decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SecretVault:
    """Encrypts and decrypts sensitive strings for settings persistence.

    Tokens are stored as ``<provider>:<payload>`` so the backend can change
    without losing previously stored secrets.
    """

    def __init__(self, *, key_path: Path | None = None, provider: FernetSecretProvider | None = None) -> None:
        self._provider = provider or FernetSecretProvider(key_path or (settings_dir() / "settings.key"))

    @property
    def strategy(self) -> str:
        return self._provider.name

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        return f"{self._provider.name}:{self._provider.encrypt(secret)}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if not payload:
            prefix, payload = self._provider.name, token
        if prefix != self._provider.name:
            raise ValueError(f"Unknown secret backend {prefix!r}")
        try:
            return self._provider.decrypt(payload)
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (settings_dir() / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False
        if payload:
            plaintext_key, needs_migration = self._decrypt_api_key(
                payload.pop(_API_KEY_FIELD, None), payload.pop("api_key", None)
            )
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if plaintext_key:
                settings = replace(settings, api_key=plaintext_key)
            LOGGER.debug("Settings loaded from %s", self._path)

        if needs_migration:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - disk failure
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        body = json.dumps(self._serialize(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        api_key = data.pop("api_key", "") or ""
        if api_key:
            data[_API_KEY_FIELD] = self._vault.encrypt(api_key)
        data["version"] = _SETTINGS_VERSION
        data["secret_backend"] = self._vault.strategy
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        return dict(data) if isinstance(data, Mapping) else {}

    def _apply_overrides(self, settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if "font_size" in filtered:
            filtered["font_size"] = clamp_font_size(filtered["font_size"])
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name in active_env_overrides():
            field_name, parse = ENV_OVERRIDES[env_name]
            raw = os.environ[env_name]
            try:
                overrides[field_name] = parse(raw)
            except ValueError:
                LOGGER.warning("Ignoring %s=%r: expected %s", env_name, raw, parse.__name__)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

    def _decrypt_api_key(self, ciphertext: str | None, legacy_plaintext: str | None) -> tuple[str, bool]:
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
                return "", False
        if legacy_plaintext:
            LOGGER.info("Detected plaintext API key; migrating to encrypted storage.")
            return legacy_plaintext, True
        return "", False


def active_env_overrides() -> list[str]:
    """Names of the recognised override variables set in the environment."""

    return sorted(name for name in ENV_OVERRIDES if name in os.environ)


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)} - {"api_key"}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"

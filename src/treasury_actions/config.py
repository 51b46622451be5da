"""Configuration management for the treasury action service."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from treasury_actions.payments.client import DEFAULT_API_BASE_URL
from treasury_actions.store.state_store import STORAGE_KEY, SYNC_KEY

_config_logger = logging.getLogger(__name__)

_IN_MEMORY_DATABASE = ":memory:"


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    environment: str = Field(default="development")
    http_allowed_origins: tuple[str, ...] = Field(default=())
    http_enable_cors: bool = Field(default=False)
    http_trust_forwarded_headers: bool = Field(default=False)


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/treasury.sqlite")
    sqlite_wal: bool = Field(default=True)
    storage_key: str = Field(default=STORAGE_KEY, min_length=1)
    sync_key: str = Field(default=SYNC_KEY, min_length=1)
    sync_poll_seconds: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Interval for picking up marker changes written by other processes.",
    )


class PaymentsSettings(BaseModel):
    api_key: str | None = Field(default=None, description="Server-held payment API key")
    base_url: str = Field(default=DEFAULT_API_BASE_URL)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("https://", "http://")):
            raise ValueError("PI_API_BASE_URL must be an http(s) URL")
        return value


class SignalSettings(BaseModel):
    """Which approval signal source drives new actions.

    ``auto`` uses the live wallet bridge when a payment API key is configured
    and the testnet simulator otherwise.
    """

    mode: Literal["auto", "testnet", "live", "none"] = Field(default="auto")
    approval_delay_seconds: float = Field(default=2.0, ge=0, le=300)
    completion_delay_seconds: float = Field(default=3.0, ge=0, le=300)


class ActionTableSettings(BaseModel):
    path: str | None = Field(default=None, description="Optional action_types.yaml override")


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    payments: PaymentsSettings = Field(default_factory=PaymentsSettings)
    signals: SignalSettings = Field(default_factory=SignalSettings)
    action_table: ActionTableSettings = Field(default_factory=ActionTableSettings)


ENV_KEYS = {
    "host": "TREASURY_HOST",
    "port": "TREASURY_PORT",
    "environment": "TREASURY_ENVIRONMENT",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "sqlite_path": "SQLITE_PATH",
    "storage_key": "TREASURY_STORAGE_KEY",
    "sync_key": "TREASURY_SYNC_KEY",
    "sync_poll_seconds": "TREASURY_SYNC_POLL_SECONDS",
    "api_key": "PI_API_KEY",
    "api_base_url": "PI_API_BASE_URL",
    "api_timeout": "PI_API_TIMEOUT_SECONDS",
    "signal_mode": "TREASURY_SIGNAL_MODE",
    "approval_delay": "TESTNET_APPROVAL_DELAY_SECONDS",
    "completion_delay": "TESTNET_COMPLETION_DELAY_SECONDS",
    "action_types_path": "ACTION_TYPES_PATH",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _resolve_sqlite_path(path: str) -> str:
    if path == _IN_MEMORY_DATABASE:
        return path
    return _resolve_path(path)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_optional(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    return value.strip() or None


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = _env_optional(ENV_KEYS["log_file"])
    action_types_env = _env_optional(ENV_KEYS["action_types_path"])

    try:
        settings_data: dict[str, object] = {
            "server": {
                "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
                "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
                "environment": os.getenv(
                    ENV_KEYS["environment"], ServerSettings().environment
                ),
                "http_allowed_origins": tuple(
                    _split_csv_preserve_case(os.getenv("HTTP_ALLOWED_ORIGINS"))
                ),
                "http_enable_cors": _env_bool(
                    "HTTP_ENABLE_CORS",
                    ServerSettings().http_enable_cors,
                ),
                "http_trust_forwarded_headers": _env_bool(
                    "HTTP_TRUST_FORWARDED_HEADERS",
                    ServerSettings().http_trust_forwarded_headers,
                ),
            },
            "logging": {
                "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
                "file": _resolve_path(log_file_env) if log_file_env else None,
            },
            "storage": {
                "sqlite_path": _resolve_sqlite_path(
                    os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
                ),
                "sqlite_wal": _env_bool("SQLITE_WAL", StorageSettings().sqlite_wal),
                "storage_key": os.getenv(
                    ENV_KEYS["storage_key"], StorageSettings().storage_key
                ),
                "sync_key": os.getenv(ENV_KEYS["sync_key"], StorageSettings().sync_key),
                "sync_poll_seconds": _env_float(
                    ENV_KEYS["sync_poll_seconds"],
                    StorageSettings().sync_poll_seconds,
                ),
            },
            "payments": {
                "api_key": _env_optional(ENV_KEYS["api_key"]),
                "base_url": os.getenv(ENV_KEYS["api_base_url"], PaymentsSettings().base_url),
                "timeout_seconds": _env_float(
                    ENV_KEYS["api_timeout"],
                    PaymentsSettings().timeout_seconds,
                ),
            },
            "signals": {
                "mode": os.getenv(ENV_KEYS["signal_mode"], SignalSettings().mode)
                .strip()
                .lower(),
                "approval_delay_seconds": _env_float(
                    ENV_KEYS["approval_delay"],
                    SignalSettings().approval_delay_seconds,
                ),
                "completion_delay_seconds": _env_float(
                    ENV_KEYS["completion_delay"],
                    SignalSettings().completion_delay_seconds,
                ),
            },
            "action_table": {
                "path": _resolve_path(action_types_env) if action_types_env else None,
            },
        }
        settings = Settings.model_validate(settings_data)
    except (ValidationError, ValueError) as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.storage.storage_key == settings.storage.sync_key:
        raise RuntimeError(
            "Invalid configuration: TREASURY_STORAGE_KEY and TREASURY_SYNC_KEY must differ"
        )

    if settings.storage.sqlite_path != _IN_MEMORY_DATABASE:
        Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings

"""
BillVault Configuration — Load and validate billvault.yaml at startup.

Usage:
    from billvault.engine.config import load_platform_config, get_platform_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from billvault.engine.errors import BillVaultConfigError

CONFIG_FILE_NAME = "billvault.yaml"

# Choices offered by the auto-save settings menu.
AUTOSAVE_INTERVAL_CHOICES_MS: Tuple[int, ...] = (15000, 30000, 60000, 120000, 300000)
DEFAULT_AUTOSAVE_INTERVAL_MS = 30000


# ---------------------------------------------------------------------------
# Pydantic models for billvault.yaml
# ---------------------------------------------------------------------------

class StorageConfig(BaseModel):
    url: str = "sqlite:///.billvault/documents.db"
    echo: bool = False


class AutoSaveConfig(BaseModel):
    """Scheduler configuration. Any positive interval is accepted here."""
    enabled: bool = True
    interval_ms: int = Field(default=DEFAULT_AUTOSAVE_INTERVAL_MS, gt=0)

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0


class AutoSavePreferences(AutoSaveConfig):
    """User-facing auto-save settings, restricted to the menu choices."""

    @field_validator("interval_ms")
    @classmethod
    def validate_interval_choice(cls, v: int) -> int:
        if v not in AUTOSAVE_INTERVAL_CHOICES_MS:
            raise ValueError(
                f"interval_ms must be one of {list(AUTOSAVE_INTERVAL_CHOICES_MS)}, got {v}"
            )
        return v


class SecurityConfig(BaseModel):
    password_min_length: int = Field(default=4, ge=1)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)


class DocumentsConfig(BaseModel):
    default_bill_type: int = Field(default=1, ge=1)
    template_path: Optional[str] = None


class LogRetentionConfig(BaseModel):
    execution_days: int = 90
    performance_days: int = 30
    security_days: int = 365


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".billvault/logs"
    compress_after_days: int = 7
    retention: LogRetentionConfig = LogRetentionConfig()
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{v}'")
        return v


ENVIRONMENTS = ("dev", "staging", "prod")


class PlatformConfig(BaseModel):
    """Root model for billvault.yaml."""
    name: str = "BillVault"
    environment: str = "dev"

    storage: StorageConfig = StorageConfig()
    autosave: AutoSavePreferences = AutoSavePreferences()
    security: SecurityConfig = SecurityConfig()
    documents: DocumentsConfig = DocumentsConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def check_environment(cls, v: str) -> str:
        if v not in ENVIRONMENTS:
            raise ValueError(f"unknown environment '{v}', expected one of {', '.join(ENVIRONMENTS)}")
        return v

    def retention_days(self) -> Dict[str, int]:
        r = self.logging.retention
        return {
            "execution": r.execution_days,
            "performance": r.performance_days,
            "security": r.security_days,
        }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

# Sections copied verbatim from the YAML document into PlatformConfig.
_SECTIONS = ("storage", "autosave", "security", "documents", "logging")

_platform_config: Optional[PlatformConfig] = None


def _find_project_root() -> Path:
    """Nearest directory, walking up from the CWD, that holds billvault.yaml."""
    cwd = Path.cwd()
    for candidate in (cwd, *cwd.parents):
        if (candidate / CONFIG_FILE_NAME).is_file():
            return candidate
    return cwd


def get_project_root() -> Path:
    return _find_project_root()


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise BillVaultConfigError(f"Cannot parse {path}: {e}", path=str(path)) from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise BillVaultConfigError(f"{path} must contain a mapping", path=str(path))
    return raw


def _flatten(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Lift ``platform.name`` / ``platform.environment`` to the top level."""
    header = raw.get("platform") or {}
    data: Dict[str, Any] = {}
    for key in ("name", "environment"):
        value = header.get(key, raw.get(key))
        if value is not None:
            data[key] = value
    for section in _SECTIONS:
        data[section] = raw.get(section) or {}
    return data


def load_platform_config(config_path: Optional[str] = None) -> PlatformConfig:
    """
    Load and validate billvault.yaml, caching the result.

    Args:
        config_path: Explicit path to billvault.yaml. If None, auto-discovers.

    Returns:
        Validated PlatformConfig instance. Defaults if the file is missing.

    Raises:
        BillVaultConfigError: The file exists but is not valid.
    """
    global _platform_config

    path = Path(config_path) if config_path else _find_project_root() / CONFIG_FILE_NAME
    if path.exists():
        try:
            cfg = PlatformConfig(**_flatten(_read_yaml(path)))
        except ValidationError as e:
            raise BillVaultConfigError(f"Invalid {path}: {e}", path=str(path)) from e
    else:
        cfg = PlatformConfig()

    _platform_config = cfg
    return cfg


def get_platform_config() -> PlatformConfig:
    """The cached config, loaded on first use."""
    if _platform_config is None:
        return load_platform_config()
    return _platform_config


def get_environment() -> str:
    return get_platform_config().environment

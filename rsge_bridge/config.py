"""
Configuration loader for the RS.ge bridge.

Settings come from environment variables (a local .env is loaded first) and
can be overlaid by a YAML file pointed to by RSGE_CONFIG.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from rsge_bridge.errors import ConfigError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("SOAP_ENDPOINT", "SOAP_SU", "SOAP_SP")

DEVELOPMENT_ORIGINS = ["http://localhost:3004", "http://localhost:3005"]


class SoapConfig(BaseModel):
    """SOAP endpoint and service-user credentials"""

    endpoint: str
    su: str
    sp: str
    timeout: float = Field(default=30.0, gt=0)
    chunk_hours: int = Field(default=72, ge=1)

    @property
    def seller_un_id(self) -> str:
        # SOAP_SU is "<user>:<seller id>"; the seller id is the part after the colon
        return self.su.split(":")[1] if ":" in self.su else ""


class LedgerConfig(BaseModel):
    """Cutoff dates and fan-out limits for the bookkeeping services"""

    inventory_cutoff_date: str = "2024-04-29"
    waybill_cutoff_date: str = "2025-04-29"
    payment_cutoff_date: str = "2025-04-29"
    detail_batch_size: int = Field(default=10, ge=1, le=100)
    detail_batch_delay: float = Field(default=0.5, ge=0.0)
    import_batch_size: int = Field(default=100, ge=1)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    max_date_range_months: int = Field(default=12, ge=1)


class StorageConfig(BaseModel):
    """Document store and response cache backends"""

    backend: str = "memory"
    firebase_credentials: Optional[str] = None
    firebase_project_id: Optional[str] = None
    redis_url: Optional[str] = None
    cache_ttl: int = Field(default=300, ge=0)


class Settings(BaseModel):
    """Complete application settings"""

    soap: SoapConfig
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    port: int = 3005
    environment: str = "development"
    frontend_url: Optional[str] = None
    api_keys: List[str] = Field(default_factory=list)
    log_level: str = "INFO"
    service_name: str = "9-tones-backend"

    @property
    def cors_origins(self) -> List[str]:
        if self.environment == "development":
            return list(DEVELOPMENT_ORIGINS)
        if self.frontend_url:
            return [self.frontend_url]
        return ["*"]


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _settings_from_env() -> Dict[str, Any]:
    missing = [name for name in REQUIRED_ENV_VARS if not _env(name)]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}", missing=missing)

    soap: Dict[str, Any] = {
        "endpoint": _env("SOAP_ENDPOINT"),
        "su": _env("SOAP_SU"),
        "sp": _env("SOAP_SP"),
    }
    if _env("SOAP_TIMEOUT"):
        soap["timeout"] = float(_env("SOAP_TIMEOUT"))
    if _env("CHUNK_HOURS"):
        soap["chunk_hours"] = int(_env("CHUNK_HOURS"))

    ledger: Dict[str, Any] = {}
    for key, env_name, cast in (
        ("inventory_cutoff_date", "INVENTORY_CUTOFF_DATE", str),
        ("waybill_cutoff_date", "WAYBILL_CUTOFF_DATE", str),
        ("payment_cutoff_date", "PAYMENT_CUTOFF_DATE", str),
        ("detail_batch_size", "DETAIL_BATCH_SIZE", int),
        ("detail_batch_delay", "DETAIL_BATCH_DELAY", float),
    ):
        raw = _env(env_name)
        if raw is not None:
            ledger[key] = cast(raw)

    storage: Dict[str, Any] = {
        "backend": (_env("STORAGE_BACKEND", "memory") or "memory").lower(),
        "firebase_credentials": _env("FIREBASE_CREDENTIALS"),
        "firebase_project_id": _env("FIREBASE_PROJECT_ID"),
        "redis_url": _env("REDIS_URL"),
    }
    if _env("CACHE_TTL"):
        storage["cache_ttl"] = int(_env("CACHE_TTL"))

    keys = _env("API_KEYS", "") or ""
    return {
        "soap": soap,
        "ledger": ledger,
        "storage": storage,
        "port": int(_env("PORT", "3005")),
        "environment": _env("APP_ENV") or _env("NODE_ENV") or "development",
        "frontend_url": _env("FRONTEND_URL"),
        "api_keys": [k.strip() for k in keys.split(",") if k.strip()],
        "log_level": (_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    }


def _merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Load and validate application settings

    Args:
        config_path: Optional YAML overlay. Defaults to $RSGE_CONFIG when set.

    Returns:
        Validated Settings object

    Raises:
        ConfigError: If a required environment variable is missing
        FileNotFoundError: If an explicit config file doesn't exist
        ValidationError: If the merged config doesn't match the schema
    """
    load_dotenv()

    data = _settings_from_env()

    if config_path is None and _env("RSGE_CONFIG"):
        config_path = Path(_env("RSGE_CONFIG"))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path, "r", encoding="utf-8") as f:
            overlay = yaml.safe_load(f) or {}
        data = _merge(data, overlay)

    try:
        settings = Settings(**data)
    except ValidationError as e:
        logger.error(f"Config validation failed: {e}")
        raise

    logger.info("Settings loaded: environment=%s storage=%s", settings.environment, settings.storage.backend)
    return settings

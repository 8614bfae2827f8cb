"""Application configuration loader.

Loads centralized configuration from config/unimedia.yaml, falls back to
built-in defaults, and applies environment overrides (a local .env file is
honoured).

Usage:
    from unimedia.config.app_config import load_app_config

    config = load_app_config()
    port = config.server.port
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("config/unimedia.yaml")
ENV_FILE = Path(".env")

STORE_BACKENDS = ("sqlite", "supabase")


class ConfigError(Exception):
    """Raised when configuration is incomplete or inconsistent."""

    pass


@dataclass
class ServerConfig:
    """Configuration for the plan store HTTP service."""

    host: str = "127.0.0.1"
    port: int = 8787
    origins: list[str] = field(default_factory=list)


@dataclass
class StoreConfig:
    """Configuration for the plans table backend."""

    backend: str = "sqlite"
    db_path: str = "db/unimedia.db"
    supabase_url: str | None = None
    supabase_key: str | None = None
    table: str = "plans"

    def require_supabase(self) -> tuple[str, str]:
        """Return (url, key) or fail when the hosted backend is not configured."""
        if not self.supabase_url:
            raise ConfigError("Missing SUPABASE_URL in .env")
        if not self.supabase_key:
            raise ConfigError("Missing SUPABASE_SERVICE_ROLE_KEY in .env")
        return self.supabase_url, self.supabase_key


@dataclass
class ClientConfig:
    """Configuration for the exam tracker client."""

    api_base: str = "http://127.0.0.1:8787"
    data_dir: str = "data"


@dataclass
class AppConfig:
    """Application-wide configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    client: ClientConfig = field(default_factory=ClientConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "server": {
            "host": "127.0.0.1",
            "port": 8787,
            "origins": [],
        },
        "store": {
            "backend": "sqlite",
            "db_path": "db/unimedia.db",
            "table": "plans",
        },
        "client": {
            "api_base": "http://127.0.0.1:8787",
            "data_dir": "data",
        },
    }


def _split_origins(raw: str | list[str] | None) -> list[str]:
    """Parse a comma separated origin list, dropping blanks."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [str(s).strip() for s in items if str(s).strip()]


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables on top of file/default values."""
    server = data.setdefault("server", {})
    store = data.setdefault("store", {})
    client = data.setdefault("client", {})

    if os.environ.get("PORT"):
        server["port"] = os.environ["PORT"]
    if os.environ.get("HOST"):
        server["host"] = os.environ["HOST"]
    if "ORIGINS" in os.environ:
        server["origins"] = os.environ["ORIGINS"]

    if os.environ.get("UNIMEDIA_STORE"):
        store["backend"] = os.environ["UNIMEDIA_STORE"]
    if os.environ.get("UNIMEDIA_DB_PATH"):
        store["db_path"] = os.environ["UNIMEDIA_DB_PATH"]
    if os.environ.get("SUPABASE_URL"):
        store["supabase_url"] = os.environ["SUPABASE_URL"]
    if os.environ.get("SUPABASE_SERVICE_ROLE_KEY"):
        store["supabase_key"] = os.environ["SUPABASE_SERVICE_ROLE_KEY"]

    if os.environ.get("UNIMEDIA_API_BASE"):
        client["api_base"] = os.environ["UNIMEDIA_API_BASE"]
    if os.environ.get("UNIMEDIA_DATA_DIR"):
        client["data_dir"] = os.environ["UNIMEDIA_DATA_DIR"]

    return data


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    server_data = data.get("server") or {}
    try:
        port = int(server_data.get("port", 8787))
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {server_data.get('port')!r}")

    server = ServerConfig(
        host=str(server_data.get("host", "127.0.0.1")),
        port=port,
        origins=_split_origins(server_data.get("origins")),
    )

    store_data = data.get("store") or {}
    backend = str(store_data.get("backend", "sqlite")).strip().lower()
    if backend not in STORE_BACKENDS:
        raise ConfigError(
            f"Unknown store backend '{backend}' (expected one of {', '.join(STORE_BACKENDS)})"
        )
    store = StoreConfig(
        backend=backend,
        db_path=str(store_data.get("db_path", "db/unimedia.db")),
        supabase_url=store_data.get("supabase_url"),
        supabase_key=store_data.get("supabase_key"),
        table=str(store_data.get("table", "plans")),
    )

    client_data = data.get("client") or {}
    client = ClientConfig(
        api_base=str(client_data.get("api_base", "http://127.0.0.1:8787")).rstrip("/"),
        data_dir=str(client_data.get("data_dir", "data")),
    )

    return AppConfig(server=server, store=store, client=client)


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.

    Raises:
        ConfigError: If a value cannot be interpreted.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    load_dotenv(ENV_FILE)

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.debug("using_default_config")
        data = _get_defaults()

    _cached_config = _parse_config(_apply_env_overrides(data))
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None

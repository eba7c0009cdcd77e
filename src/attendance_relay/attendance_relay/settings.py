from __future__ import annotations

import importlib
import os
from dataclasses import dataclass, field
from types import ModuleType
from typing import List, Mapping, Optional, Tuple

from config import get_settings_module

from .common.validators import env_bool
from .core.constants import (
    DEFAULT_DRIVER_TIMEOUT_SECONDS,
    DEFAULT_EVENT_WORKERS,
    DEFAULT_RECONNECT_PAUSE_SECONDS,
    DEFAULT_WATCHDOG_INTERVAL_SECONDS,
)
from .core.enums import StoreType
from .devices.fleet import load_device_configs
from .devices.model import DeviceEndpoint
from .stores.model import StoreConfig

# env prefix, store type, default port, default database, default user
_STORE_ENV = (
    ("POSTGRES", StoreType.POSTGRESQL, "5432", "zkteco", "postgres"),
    ("MYSQL", StoreType.MYSQL, "3306", "zkteco", "root"),
    ("SQLSERVER", StoreType.SQLSERVER, "1433", "zkteco", "sa"),
    ("SQLITE", StoreType.SQLITE, "", "zkteco.db", ""),
    ("ORACLE", StoreType.ORACLE, "1521", "ORCL", "system"),
)


def load_store_configs(environ: Optional[Mapping[str, str]] = None) -> List[StoreConfig]:
    """One entry per engine from ``<ENGINE>_*`` variables.

    When no engine is enabled, the single legacy ``DB_TYPE`` entry is used.
    """

    env = os.environ if environ is None else environ
    configs: List[StoreConfig] = []
    for prefix, store_type, port, database, user in _STORE_ENV:
        configs.append(
            StoreConfig(
                type=store_type.value,
                enabled=env_bool(env, f"{prefix}_ENABLED", default=False),
                host=env.get(f"{prefix}_HOST", "localhost"),
                port=env.get(f"{prefix}_PORT", port),
                database=env.get(f"{prefix}_DATABASE", database),
                user=env.get(f"{prefix}_USER", user),
                password=env.get(f"{prefix}_PASSWORD", ""),
                connection_string=env.get(f"{prefix}_CONNECTION_STRING", ""),
            )
        )

    if not any(c.enabled for c in configs):
        db_type = (env.get("DB_TYPE") or "").strip().lower()
        if db_type and db_type != "none":
            configs.append(
                StoreConfig(
                    type=db_type,
                    enabled=env_bool(env, "DB_ENABLED", default=False),
                    host=env.get("DB_HOST", "localhost"),
                    port=env.get("DB_PORT", "5432"),
                    database=env.get("DB_NAME", "zkteco"),
                    user=env.get("DB_USER", ""),
                    password=env.get("DB_PASSWORD", ""),
                    connection_string=env.get("DB_CONNECTION_STRING", ""),
                )
            )
    return configs


@dataclass(frozen=True)
class RelaySettings:
    """Immutable runtime configuration assembled once at startup."""

    environment: str = "config.development"
    devices: Tuple[DeviceEndpoint, ...] = ()
    stores: Tuple[StoreConfig, ...] = ()

    driver_name: str = "zk"
    driver_password: int = 0
    driver_timeout: int = DEFAULT_DRIVER_TIMEOUT_SECONDS
    driver_force_udp: bool = False

    watchdog_interval: float = DEFAULT_WATCHDOG_INTERVAL_SECONDS
    reconnect_pause: float = DEFAULT_RECONNECT_PAUSE_SECONDS
    event_workers: int = DEFAULT_EVENT_WORKERS
    batch_sync_delay: float = 5.0

    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_append: bool = True

    admin_token: str = field(default="", repr=False)
    admin_require_token: bool = False
    admin_http_enabled: bool = False
    admin_http_host: str = "127.0.0.1"
    admin_http_port: int = 8080
    debug: bool = False

    @property
    def enabled_stores(self) -> Tuple[StoreConfig, ...]:
        return tuple(s for s in self.stores if s.enabled)


def load_settings(
    settings_module: str | ModuleType | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RelaySettings:
    """Build RelaySettings from a settings module plus device/store variables."""

    if settings_module is None:
        settings_module = get_settings_module()
    module = importlib.import_module(settings_module) if isinstance(settings_module, str) else settings_module

    def opt(name, default):
        return getattr(module, name, default)

    return RelaySettings(
        environment=module.__name__,
        devices=tuple(load_device_configs(environ)),
        stores=tuple(load_store_configs(environ)),
        driver_name=str(opt("DEVICE_DRIVER", "zk")),
        driver_password=int(opt("DEVICE_PASSWORD", 0)),
        driver_timeout=int(opt("DEVICE_TIMEOUT_SECONDS", DEFAULT_DRIVER_TIMEOUT_SECONDS)),
        driver_force_udp=bool(opt("DEVICE_FORCE_UDP", False)),
        watchdog_interval=float(opt("WATCHDOG_INTERVAL_SECONDS", DEFAULT_WATCHDOG_INTERVAL_SECONDS)),
        reconnect_pause=float(opt("RECONNECT_PAUSE_SECONDS", DEFAULT_RECONNECT_PAUSE_SECONDS)),
        event_workers=max(1, int(opt("EVENT_WORKERS", DEFAULT_EVENT_WORKERS))),
        batch_sync_delay=float(opt("BATCH_SYNC_DELAY_SECONDS", 5.0)),
        log_level=str(opt("LOG_LEVEL", "INFO")),
        log_file=opt("LOG_FILE_PATH", "") or None,
        log_append=bool(opt("LOG_APPEND", True)),
        admin_token=str(opt("ADMIN_TOKEN", "")),
        admin_require_token=bool(opt("ADMIN_REQUIRE_TOKEN", False)),
        admin_http_enabled=bool(opt("ADMIN_HTTP_ENABLED", False)),
        admin_http_host=str(opt("ADMIN_HTTP_HOST", "127.0.0.1")),
        admin_http_port=int(opt("ADMIN_HTTP_PORT", 8080)),
        debug=bool(opt("DEBUG", False)),
    )

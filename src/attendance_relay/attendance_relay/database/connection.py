from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import mysql.connector

from ..stores.model import StoreConfig

_KEY_ALIASES = {
    "server": "host",
    "host": "host",
    "data source": "host",
    "port": "port",
    "database": "database",
    "initial catalog": "database",
    "user": "user",
    "user id": "user",
    "uid": "user",
    "username": "user",
    "password": "password",
    "pwd": "password",
}


def parse_connection_string(value: str) -> Dict[str, str]:
    """Parse ``Key=Value;Key=Value`` connection strings into DBConfig fields.

    Unknown keys are ignored.
    """

    parts: Dict[str, str] = {}
    for chunk in (value or "").split(";"):
        if "=" not in chunk:
            continue
        key, _, raw = chunk.partition("=")
        field = _KEY_ALIASES.get(key.strip().lower())
        if field:
            parts[field] = raw.strip()
    return parts


@dataclass(frozen=True)
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str
    connection_timeout: int = 5

    @classmethod
    def from_store_config(cls, config: StoreConfig, *, default_port: int = 3306) -> "DBConfig":
        values = {
            "host": config.host or "localhost",
            "port": config.port,
            "user": config.user,
            "password": config.password,
            "database": config.database,
        }
        values.update(parse_connection_string(config.connection_string))
        try:
            port = int(values.get("port") or default_port)
        except ValueError:
            port = default_port
        return cls(
            host=str(values["host"]),
            port=port,
            user=str(values.get("user") or ""),
            password=str(values.get("password") or ""),
            database=str(values.get("database") or ""),
        )


class DatabaseConnection:
    """MySQL connection factory.

    Note: A short-lived connection is opened per operation, so one factory is
    safe to share between fan-out worker threads.
    """

    def __init__(self, config: DBConfig):
        self._config = config

    @property
    def config(self) -> DBConfig:
        return self._config

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            connection_timeout=self._config.connection_timeout,
        )

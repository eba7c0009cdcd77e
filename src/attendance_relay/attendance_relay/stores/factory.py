from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from ..core.enums import StoreType
from ..core.exceptions import ConfigurationError
from .model import StoreConfig
from .mysql_store import MySQLAttendanceStore
from .repository import AttendanceStore
from .sqlalchemy_store import SQLAlchemyAttendanceStore
from .sqlite_store import SQLiteAttendanceStore

StoreBuilder = Callable[[StoreConfig], AttendanceStore]

_ALIASES: Dict[str, StoreType] = {
    "postgresql": StoreType.POSTGRESQL,
    "postgres": StoreType.POSTGRESQL,
    "pgsql": StoreType.POSTGRESQL,
    "mysql": StoreType.MYSQL,
    "mariadb": StoreType.MYSQL,
    "sqlserver": StoreType.SQLSERVER,
    "mssql": StoreType.SQLSERVER,
    "sqlite": StoreType.SQLITE,
    "sqlite3": StoreType.SQLITE,
    "oracle": StoreType.ORACLE,
}


def resolve_store_type(name: str) -> StoreType:
    """Canonical store type for a configured name or alias (case-insensitive)."""

    store_type = _ALIASES.get((name or "").strip().lower())
    if store_type is None:
        raise ConfigurationError(f"Unsupported database type: {name}")
    return store_type


def _default_builders() -> Dict[StoreType, StoreBuilder]:
    return {
        StoreType.MYSQL: MySQLAttendanceStore.from_config,
        StoreType.SQLITE: SQLiteAttendanceStore.from_config,
        StoreType.POSTGRESQL: lambda c: SQLAlchemyAttendanceStore.from_config(StoreType.POSTGRESQL, c),
        StoreType.SQLSERVER: lambda c: SQLAlchemyAttendanceStore.from_config(StoreType.SQLSERVER, c),
        StoreType.ORACLE: lambda c: SQLAlchemyAttendanceStore.from_config(StoreType.ORACLE, c),
    }


@dataclass
class AttendanceStoreFactory:
    """Factory Pattern: build the store implementation for a config's type."""

    builders: Dict[StoreType, StoreBuilder] = field(default_factory=_default_builders)

    def create(self, config: StoreConfig) -> AttendanceStore:
        store_type = resolve_store_type(config.type)
        builder = self.builders.get(store_type)
        if builder is None:
            raise ConfigurationError(f"No store implementation for database type: {config.type}")
        return builder(config)

    def register(self, store_type: StoreType, builder: StoreBuilder) -> None:
        self.builders[store_type] = builder

    @staticmethod
    def aliases() -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {t.value: [] for t in StoreType}
        for alias, store_type in _ALIASES.items():
            if alias != store_type.value:
                grouped[store_type.value].append(alias)
        return grouped

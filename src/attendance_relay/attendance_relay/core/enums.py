from __future__ import annotations

from enum import Enum


class ConnectionStatus(str, Enum):
    """Runtime status of one terminal connection."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"


class TransitionKind(str, Enum):
    """Connection transitions reported by the watchdog."""

    LOST = "LOST"
    RECONNECTED = "RECONNECTED"
    FAILED = "FAILED"


class StoreType(str, Enum):
    """Canonical store engines; aliases are resolved by the store factory."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"
    SQLITE = "sqlite"
    ORACLE = "oracle"


_ATT_STATE_LABELS = {
    0: "Check-In",
    1: "Check-Out",
    2: "Break-Out",
    3: "Break-In",
    4: "OT-In",
    5: "OT-Out",
}

_VERIFY_METHOD_LABELS = {
    0: "Password",
    1: "Fingerprint",
    2: "Card",
    3: "Password+FP",
    4: "Password+Card",
    5: "FP+Card",
    6: "FP+Pwd+Card",
    7: "Face",
}


def describe_att_state(code: int) -> str:
    return _ATT_STATE_LABELS.get(int(code), f"State{code}")


def describe_verify_method(code: int) -> str:
    return _VERIFY_METHOD_LABELS.get(int(code), f"Unknown({code})")

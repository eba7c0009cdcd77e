from __future__ import annotations

from typing import Mapping


def env_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    try:
        return int(raw) if raw is not None and raw.strip() else default
    except ValueError:
        return default

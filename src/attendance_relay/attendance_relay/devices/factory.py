from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..core.constants import DEFAULT_DRIVER_TIMEOUT_SECONDS
from .driver import DriverFactory, TerminalDriver
from .zk_driver import ZKTerminalDriver

logger = logging.getLogger(__name__)


class TerminalDriverFactory:
    """Selects the terminal driver implementation by configuration name."""

    def __init__(self) -> None:
        self._builders: Dict[str, Callable[..., TerminalDriver]] = {
            "zk": ZKTerminalDriver,
            "pyzk": ZKTerminalDriver,
            "zkteco": ZKTerminalDriver,
        }

    def register(self, name: str, builder: Callable[..., TerminalDriver]) -> None:
        self._builders[name.strip().lower()] = builder

    def supported(self) -> list[str]:
        return sorted(self._builders)

    def for_name(
        self,
        name: str,
        *,
        password: int = 0,
        timeout: int = DEFAULT_DRIVER_TIMEOUT_SECONDS,
        force_udp: bool = False,
    ) -> DriverFactory:
        builder = self._builders.get((name or "").strip().lower())
        if builder is None:
            logger.error("Unknown terminal driver %r (supported: %s)", name, ", ".join(self.supported()))

        def create() -> Optional[TerminalDriver]:
            if builder is None:
                return None
            return builder(password=password, timeout=timeout, force_udp=force_udp)

        return create

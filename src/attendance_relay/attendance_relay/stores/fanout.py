from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Collection, Dict, Iterable, List, Optional, Tuple

from ..core.exceptions import ConfigurationError, StoreConnectivityError, StoreWriteError
from ..devices.model import AttendanceEvent
from .factory import AttendanceStoreFactory
from .model import FanoutResult, StoreConfig, StoreHandle
from .repository import AttendanceStore

logger = logging.getLogger(__name__)

StoreOperation = Callable[[AttendanceStore], object]


class FanoutBatch:
    """In-flight fan-out operation, one future per active store."""

    def __init__(self, label: str, futures: List[Tuple[str, Future]]):
        self._label = label
        self._futures = futures

    @property
    def label(self) -> str:
        return self._label

    def wait(self) -> FanoutResult:
        outcomes: Dict[str, bool] = {}
        for name, future in self._futures:
            outcomes[name] = bool(future.result())
        return FanoutResult(label=self._label, outcomes=outcomes)


class StoreFanout:
    """Replicates every operation to all active stores in parallel.

    A failing store never affects the others and never raises to the caller;
    the failure is logged as a StoreWriteError and reported in the result.
    """

    def __init__(self, factory: Optional[AttendanceStoreFactory] = None, *, max_workers: Optional[int] = None):
        self._factory = factory or AttendanceStoreFactory()
        self._max_workers = max_workers
        self._handles: List[StoreHandle] = []
        self._lock = threading.Lock()
        self._pool: Optional[ThreadPoolExecutor] = None

    @property
    def handles(self) -> List[StoreHandle]:
        with self._lock:
            return list(self._handles)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._handles)

    def initialize(self, configs: Iterable[StoreConfig]) -> int:
        """Connect every enabled config and keep the stores that answer."""

        for config in configs:
            if not config.enabled:
                continue
            self._add_from_config(config)

        count = self.active_count
        if count == 0:
            logger.warning("No database store is active; events will only be logged")
        else:
            logger.info("Active databases: %d (%s)", count, ", ".join(h.name for h in self.handles))
        return count

    def _add_from_config(self, config: StoreConfig) -> Optional[StoreHandle]:
        try:
            store = self._factory.create(config)
        except ConfigurationError as e:
            logger.error("%s", e)
            return None
        except Exception as e:
            err = StoreConnectivityError(f"{config.type}: could not create store: {e}")
            logger.error("%s", err)
            return None
        return self.add_store(store, connection_info=config.connection_info())

    def add_store(self, store: AttendanceStore, *, connection_info: str = "") -> Optional[StoreHandle]:
        """Probe ``store``, prepare its schema and register it as active."""

        try:
            ready = store.test_connection()
            if ready:
                store.ensure_schema()
        except Exception as e:
            logger.debug("Store %s probe raised", store.name, exc_info=True)
            ready = False
            reason = str(e)
        else:
            reason = "connection test failed"

        if not ready:
            self._dispose_quietly(store)
            logger.error("%s", StoreConnectivityError(f"{store.name}: {reason}; excluded for this run"))
            return None

        handle = StoreHandle(name=store.name, store=store, connection_info=connection_info)
        with self._lock:
            self._handles.append(handle)
            self._ensure_pool()
        logger.info("%s connected (%s)", store.name, connection_info or "-")
        return handle

    def _ensure_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="store-fanout")
        return self._pool

    def submit(
        self, label: str, operation: StoreOperation, *, names: Optional[Collection[str]] = None
    ) -> FanoutBatch:
        """Start ``operation`` against every active store without waiting.

        ``names`` restricts the batch to the stores with those names.
        """

        with self._lock:
            handles = [h for h in self._handles if names is None or h.name in names]
            pool = self._ensure_pool() if handles else None

        futures: List[Tuple[str, Future]] = []
        for handle in handles:
            futures.append((handle.name, pool.submit(self._guarded, label, handle, operation)))
        return FanoutBatch(label, futures)

    def apply(
        self, label: str, operation: StoreOperation, *, names: Optional[Collection[str]] = None
    ) -> FanoutResult:
        return self.submit(label, operation, names=names).wait()

    def insert(self, event: AttendanceEvent) -> FanoutResult:
        return self.apply("insert", lambda store: store.insert_raw_event(event))

    def clear_all(self) -> FanoutResult:
        result = self.apply("clear", lambda store: store.clear_all())
        logger.info("Cleared %d/%d databases", result.succeeded, len(result.outcomes))
        return result

    @staticmethod
    def _guarded(label: str, handle: StoreHandle, operation: StoreOperation) -> bool:
        try:
            operation(handle.store)
        except Exception as e:
            err = StoreWriteError(f"[{handle.name}] {label} failed: {e}")
            logger.error("%s", err)
            logger.debug("Store operation traceback", exc_info=True)
            return False
        return True

    @staticmethod
    def _dispose_quietly(store: AttendanceStore) -> None:
        try:
            store.dispose()
        except Exception:
            logger.warning("Error disposing store %s", store.name, exc_info=True)

    def dispose(self) -> None:
        with self._lock:
            handles, self._handles = self._handles, []
            pool, self._pool = self._pool, None
        # In-flight writes finish before their stores are released.
        if pool is not None:
            pool.shutdown(wait=True)
        for handle in handles:
            self._dispose_quietly(handle.store)

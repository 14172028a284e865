"""
Explicit read-result cache for baseline and scenario series.

Readers receive a ForecastCache instance as an argument; nothing is cached
implicitly. Every write path calls invalidate_contract() after it commits,
so a contract's baseline and all of its scenario series are dropped together.

Keys:
    ("baseline", contract_id)
    ("scenario", contract_id, scenario_id)
"""

import logging
import threading
from typing import Any, Callable, Hashable

from fastapi import Request

logger = logging.getLogger("cvr.cache")


class ForecastCache:
    """Thread-safe dict cache keyed by contract-scoped tuples."""

    def __init__(self):
        self._entries: dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    @staticmethod
    def baseline_key(contract_id: int) -> tuple:
        return ("baseline", contract_id)

    @staticmethod
    def scenario_key(contract_id: int, scenario_id: int) -> tuple:
        return ("scenario", contract_id, scenario_id)

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value or compute, store and return it."""
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        value = loader()
        self.set(key, value)
        return value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def invalidate_contract(self, contract_id: int) -> int:
        """Drop every entry belonging to a contract. Returns entries dropped."""
        with self._lock:
            stale = [k for k in self._entries if isinstance(k, tuple) and len(k) > 1 and k[1] == contract_id]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached series for contract {contract_id}")
        return len(stale)

    def invalidate_scenario(self, contract_id: int, scenario_id: int) -> None:
        with self._lock:
            self._entries.pop(self.scenario_key(contract_id, scenario_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def invalidate(cache: "ForecastCache | None", contract_id: int) -> None:
    """Invalidate a contract if a cache was supplied."""
    if cache is not None:
        cache.invalidate_contract(contract_id)


def get_cache(request: Request) -> ForecastCache:
    """FastAPI dependency: the application's shared ForecastCache."""
    cache = getattr(request.app.state, "forecast_cache", None)
    if cache is None:
        cache = ForecastCache()
        request.app.state.forecast_cache = cache
    return cache

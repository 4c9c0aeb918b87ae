"""
Write-through trust score cache keyed by device id.

put() persists through the repository first, then caches; get() serves a
fresh entry or reloads from storage. Entries expire after ttl_seconds. The
calculator never reads from here; only the handler does, to report deltas.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Protocol

from backend_deviceid.analysis_engine.models import TrustScoreResult
from backend_deviceid.config.settings import DEFAULT_TRUST_CACHE_TTL_SEC
from backend_deviceid.deviceid_logging import get_logger

logger = get_logger(__name__)


class TrustScoreStore(Protocol):
    def get_trust_score(self, device_id: int) -> TrustScoreResult | None:
        ...

    def persist_trust_score(self, device_id: int, result: TrustScoreResult) -> None:
        ...


class TrustScoreCache:
    def __init__(
        self,
        store: TrustScoreStore,
        ttl_seconds: float = DEFAULT_TRUST_CACHE_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[int, tuple[TrustScoreResult, float]] = {}
        self._lock = threading.Lock()

    def _fresh(self, device_id: int) -> TrustScoreResult | None:
        with self._lock:
            entry = self._entries.get(device_id)
            if entry is None:
                return None
            result, expires = entry
            if self._clock() > expires:
                del self._entries[device_id]
                return None
            return result

    def _remember(self, device_id: int, result: TrustScoreResult) -> None:
        with self._lock:
            self._entries[device_id] = (result, self._clock() + self._ttl)

    def get(self, device_id: int) -> TrustScoreResult | None:
        """Cached score, else the stored one (cached on the way out), else None."""
        cached = self._fresh(device_id)
        if cached is not None:
            return cached
        stored = self._store.get_trust_score(device_id)
        if stored is not None:
            self._remember(device_id, stored)
        logger.debug("trust_cache_miss", device_id=device_id, found=stored is not None)
        return stored

    def put(self, device_id: int, result: TrustScoreResult) -> None:
        """Persist, then cache. A storage failure leaves the cache untouched."""
        self._store.persist_trust_score(device_id, result)
        self._remember(device_id, result)

    def invalidate(self, device_id: int) -> None:
        with self._lock:
            self._entries.pop(device_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

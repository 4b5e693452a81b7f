"""
TTL-aware feature cache over a single-blob storage item.
"""

import json
from typing import Dict, Optional, TYPE_CHECKING

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.errors import StorageError
from shared.logging import get_logger

from ..clock import Clock, system_clock
from ..models import CacheEntry, CacheResult, FeatureMap
from ..storage import StorageItem

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


_CACHE_DATA = TypeAdapter(Dict[str, CacheEntry])


class FeatureCache:
    """Stale/expire aware cache of resolved feature maps keyed by context fingerprint.

    The whole map lives in one storage blob and every ``set`` is a
    read-modify-write of that blob. Two writers sharing the same storage
    item can lose each other's updates; this cache assumes a single writer.
    """

    def __init__(
        self,
        storage: StorageItem,
        stale_time_ms: float,
        expire_time_ms: float,
        *,
        clock: Clock = system_clock,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.storage = storage
        self.stale_time_ms = stale_time_ms
        self.expire_time_ms = expire_time_ms
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("features_sdk.cache")

    def _load(self) -> Dict[str, CacheEntry]:
        """Read and validate the persisted map; corrupt data raises StorageError."""
        raw = self.storage.get()
        if not raw:
            return {}

        try:
            return _CACHE_DATA.validate_python(json.loads(raw))
        except (ValueError, TypeError, PydanticValidationError) as exc:
            raise StorageError(
                "Corrupt feature cache blob",
                details={"error": str(exc)}
            ) from exc

    def _safe_load(self) -> Dict[str, CacheEntry]:
        try:
            return self._load()
        except StorageError as exc:
            self.logger.warning("Ignoring unreadable feature cache", error=exc.message, details=exc.details)
            return {}

    def get(self, key: str) -> Optional[CacheResult]:
        """Return the unexpired entry for ``key``, or None."""
        entry = self._safe_load().get(key)
        now = self.clock()

        if entry is None or entry.expire_at <= now:
            self._record_lookup("miss")
            return None

        stale = entry.stale_at < now
        self._record_lookup("stale" if stale else "hit")

        return CacheResult(
            value=entry.features,
            success=entry.success,
            stale=stale,
            attempt_count=entry.attempt_count,
            updated_at=entry.updated_at,
        )

    def set(
        self,
        key: str,
        *,
        success: bool,
        value: Optional[FeatureMap] = None,
        attempt_count: int = 0,
    ) -> Dict[str, CacheEntry]:
        """Write ``key``, sweep expired entries and persist the whole map."""
        cache_data = self._safe_load()
        now = self.clock()

        cache_data[key] = CacheEntry(
            success=success,
            attempt_count=attempt_count,
            stale_at=now + self.stale_time_ms,
            expire_at=now + self.expire_time_ms,
            updated_at=now,
            features=value,
        )

        cache_data = {
            entry_key: entry
            for entry_key, entry in cache_data.items()
            if entry.expire_at > now
        }

        payload = {entry_key: entry.to_wire() for entry_key, entry in cache_data.items()}
        try:
            self.storage.set(json.dumps(payload, separators=(",", ":")))
        except StorageError as exc:
            self.logger.warning("Failed to persist feature cache", error=exc.message, details=exc.details)

        self.logger.debug(
            "Cached features",
            key=key,
            success=success,
            attempt_count=attempt_count,
            entries=len(cache_data)
        )
        return cache_data

    def _record_lookup(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", result=result)

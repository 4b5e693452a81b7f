"""
Resolution orchestrator: decides fetch vs serve vs revalidate per context.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, Set, Tuple, TYPE_CHECKING

from shared.config import FallbackConfig, FallbackEntry
from shared.errors import FeaturesClientException, NetworkError
from shared.logging import get_logger, set_context_key

from ..caching import FeatureCache
from ..models import CacheResult, FeatureConfig, FeatureMap, ResolvedFeature
from ..notify import UpdateNotifier
from ..overrides import OverrideStore
from ..ratelimit import SlidingWindowRateLimiter
from .context import Params, context_fingerprint, fetch_params

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class FeatureFetcher(Protocol):
    """Source of evaluated features; raises on any failure."""

    async def fetch_features(self, context: Mapping[str, Any], params: Params) -> FeatureMap:
        ...


class Decision(str, Enum):
    """What ``resolve`` does with a cache lookup."""
    FETCH = "fetch"                                # cold, or failed within retry budget
    SERVE = "serve"                                # warm and fresh
    SERVE_AND_REVALIDATE = "serve_and_revalidate"  # warm, stale, stale-while-revalidate
    BLOCKING_REFETCH = "blocking_refetch"          # warm, stale


class FeatureResolver:
    """Serves, refreshes or fetches the feature map for an evaluation context.

    Fetch failures of any kind (transport, status, schema, timeout) never
    reach the caller: they become failure cache entries and the caller gets
    the previous value or the fallback table.

    Every fetch takes a generation number. Ordering is tracked per context
    key: a completion, success or failure, that is older than one already
    completed for the same key is dropped. A completion for a context that
    is no longer current may still update the cache for its own key but is
    never exposed or notified.
    """

    def __init__(
        self,
        fetcher: FeatureFetcher,
        cache: FeatureCache,
        overrides: OverrideStore,
        notifier: UpdateNotifier,
        *,
        publishable_key: str,
        fallback_features: Optional[Mapping[str, FallbackEntry]] = None,
        stale_while_revalidate: bool = False,
        failure_retry_attempts: Optional[int] = None,
        timeout_ms: Optional[float] = None,
        offline: bool = False,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.overrides = overrides
        self.notifier = notifier
        self.publishable_key = publishable_key
        self.fallback_table: Dict[str, FallbackEntry] = dict(fallback_features or {})
        self.stale_while_revalidate = stale_while_revalidate
        self.failure_retry_attempts = failure_retry_attempts
        self.timeout_ms = timeout_ms
        self.offline = offline
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.logger = get_logger("features_sdk.resolver")

        self._fetched: FeatureMap = {}
        self._current_key: Optional[str] = None
        self._generation = 0
        self._committed_by_key: Dict[str, int] = {}
        self._completed_by_key: Dict[str, int] = {}
        self._revalidating: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()
        self._closed = False

    def cache_key(self, context: Mapping[str, Any]) -> str:
        return context_fingerprint(context, self.publishable_key)

    def get_features(self) -> FeatureMap:
        """Last committed snapshot with overrides applied."""
        return self.overrides.apply(self._fetched)

    @property
    def fetched_features(self) -> FeatureMap:
        return dict(self._fetched)

    @property
    def background_tasks(self) -> Set[asyncio.Task]:
        return set(self._background)

    def fallback_features(self) -> FeatureMap:
        """Degraded result set synthesized from the static fallback table."""
        result: FeatureMap = {}
        for key, entry in self.fallback_table.items():
            config = None
            if isinstance(entry, FallbackConfig):
                config = FeatureConfig(key=entry.key, payload=entry.payload)
            result[key] = ResolvedFeature(
                key=key,
                is_enabled=entry if isinstance(entry, bool) else True,
                config=config,
            )
        return result

    def plan(self, cached: Optional[CacheResult]) -> Decision:
        if cached is None:
            return Decision.FETCH
        if not cached.success and self._within_retry_budget(cached):
            return Decision.FETCH
        if cached.stale:
            if self.stale_while_revalidate and cached.success:
                return Decision.SERVE_AND_REVALIDATE
            return Decision.BLOCKING_REFETCH
        return Decision.SERVE

    def _within_retry_budget(self, cached: CacheResult) -> bool:
        if self.failure_retry_attempts is None:
            return True
        return cached.attempt_count < self.failure_retry_attempts

    async def resolve(self, context: Mapping[str, Any]) -> FeatureMap:
        """Resolve ``context`` and return its feature map with overrides applied."""
        key = self.cache_key(context)
        self._current_key = key
        set_context_key(key)

        if self.offline:
            features = self.fallback_features()
            self._commit(key, features)
            return self.overrides.apply(features)

        cached = self.cache.get(key)
        decision = self.plan(cached)
        self.logger.debug("Resolution decision", decision=decision.value)

        if decision is Decision.SERVE:
            features = self._value_or_fallback(cached)
            self._commit(key, features)
            return self.overrides.apply(features)

        if decision is Decision.SERVE_AND_REVALIDATE:
            self._revalidate_in_background(context, key)
            features = self._value_or_fallback(cached)
            self._commit(key, features)
            return self.overrides.apply(features)

        return self.overrides.apply(await self._fetch_blocking(context, key, cached))

    def _value_or_fallback(self, cached: Optional[CacheResult]) -> FeatureMap:
        if cached is not None and cached.value is not None:
            return cached.value
        return self.fallback_features()

    async def _fetch(self, context: Mapping[str, Any], mode: str) -> Tuple[int, Optional[FeatureMap]]:
        """Run one fetch; returns its generation and the features, or None on failure."""
        self._generation += 1
        generation = self._generation
        params = fetch_params(context, self.publishable_key)
        timeout = self.timeout_ms / 1000 if self.timeout_ms else None

        start = time.perf_counter()
        try:
            features = await asyncio.wait_for(self.fetcher.fetch_features(context, params), timeout)
        except asyncio.TimeoutError:
            error = NetworkError("Feature fetch timed out", details={"timeout_ms": self.timeout_ms})
            self.logger.error("Error fetching features", mode=mode, **error.to_dict())
            self._record_fetch(mode, "failure", start)
            return generation, None
        except FeaturesClientException as e:
            self.logger.error("Error fetching features", mode=mode, **e.to_dict())
            self._record_fetch(mode, "failure", start)
            return generation, None
        except Exception as e:
            self.logger.error("Unexpected error fetching features", mode=mode, error=str(e))
            self._record_fetch(mode, "failure", start)
            return generation, None

        self._record_fetch(mode, "success", start)
        return generation, features

    async def _fetch_blocking(self, context: Mapping[str, Any], key: str,
                              cached: Optional[CacheResult]) -> FeatureMap:
        generation, features = await self._fetch(context, "blocking")

        if features is not None:
            if self._claim_cache_write(key, generation):
                self.cache.set(key, success=True, value=features, attempt_count=0)
            if self._commit(key, features, generation):
                self.notifier.notify()
            self._warn_missing_context_fields(key, features)
            return features

        previous = cached.value if cached is not None else None
        claimed = self._claim_cache_write(key, generation)
        if claimed:
            self.cache.set(
                key,
                success=False,
                value=previous,
                attempt_count=(cached.attempt_count if cached is not None else 0) + 1,
            )

        result = previous if previous is not None else self.fallback_features()
        if claimed:
            self._commit(key, result, generation)
        return result

    def _revalidate_in_background(self, context: Mapping[str, Any], key: str) -> None:
        if self._closed:
            return
        in_flight = self._revalidating.get(key)
        if in_flight is not None and not in_flight.done():
            self.logger.debug("Revalidation already in flight")
            return

        task = asyncio.ensure_future(self._revalidate(dict(context), key))
        self._revalidating[key] = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(lambda _t, k=key: self._revalidating.pop(k, None))

    async def _revalidate(self, context: Mapping[str, Any], key: str) -> None:
        generation, features = await self._fetch(context, "background")
        if features is None:
            return

        if self._claim_cache_write(key, generation):
            self.cache.set(key, success=True, value=features, attempt_count=0)
        if self._commit(key, features, generation):
            self.notifier.notify()

    def _claim_cache_write(self, key: str, generation: int) -> bool:
        """True when no newer fetch for ``key`` has already completed."""
        if generation < self._completed_by_key.get(key, 0):
            self.logger.debug("Discarding out-of-order fetch result", generation=generation)
            return False
        self._completed_by_key[key] = generation
        return True

    def _commit(self, key: str, features: FeatureMap, generation: Optional[int] = None) -> bool:
        """Swap the exposed snapshot. Fetch results carry a generation and are guarded."""
        if key != self._current_key:
            return False
        if generation is not None:
            if generation < self._committed_by_key.get(key, 0):
                return False
            self._committed_by_key[key] = generation
        self._fetched = dict(features)
        return True

    def _warn_missing_context_fields(self, key: str, features: FeatureMap) -> None:
        report: Dict[str, Any] = {}
        for feature in features.values():
            if feature.missing_context_fields:
                report[feature.key] = feature.missing_context_fields
            if feature.config is not None and feature.config.missing_context_fields:
                report[f"{feature.key}.config"] = feature.config.missing_context_fields

        if not report:
            return

        def warn() -> None:
            self.logger.warning(
                "Feature targeting rules might not be correctly evaluated due to missing context fields",
                report=report
            )

        if self.rate_limiter is None:
            warn()
        else:
            self.rate_limiter.rate_limited(f"missing-context-fields:{key}", warn)

    def _record_fetch(self, mode: str, outcome: str, start: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("fetch_total", mode=mode, outcome=outcome)
        self.metrics.observe_histogram("fetch_duration_seconds", time.perf_counter() - start, mode=mode)

    async def close(self) -> None:
        """Cancel in-flight background revalidations. Idempotent."""
        if self._closed:
            return
        self._closed = True
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
        self._revalidating.clear()

"""
Feature Access SDK client.

Wires configuration, persistence, resolution, overrides, rate limiting and
batched event delivery into a single object owned by the application.
"""

import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional

from shared.config import FeaturesConfig, get_config
from shared.errors import FeaturesClientException
from shared.logging import get_logger, set_client_id
from shared.metrics import MetricsCollector, get_metrics_collector

from .adapters import EvaluationClient, EventsClient, LocalEvaluationFetcher
from .adapters.local_evaluator import Evaluator
from .caching import FeatureCache
from .clock import Clock, system_clock
from .delivery import BatchBuffer
from .models import (
    BufferedEvent,
    CheckEvent,
    CompanyUpdate,
    FeatureEvent,
    FeatureMap,
    ResolvedFeature,
    TrackEvent,
    UserUpdate,
)
from .notify import UpdateNotifier
from .overrides import OverrideStore
from .ratelimit import SlidingWindowRateLimiter
from .resolution import FeatureFetcher, FeatureResolver
from .storage import FEATURE_CACHE_ITEM, OVERRIDES_ITEM, StorageItem, create_storage


class FeaturesClient:
    """Application-facing feature flag client.

    Usage::

        async with FeaturesClient(get_config(publishable_key="pk"), context=ctx) as client:
            if await client.is_enabled("huddle"):
                ...
    """

    def __init__(
        self,
        config: Optional[FeaturesConfig] = None,
        *,
        context: Optional[Mapping[str, Any]] = None,
        evaluator: Optional[Evaluator] = None,
        fetcher: Optional[FeatureFetcher] = None,
        events_client: Optional[EventsClient] = None,
        cache_storage: Optional[StorageItem] = None,
        overrides_storage: Optional[StorageItem] = None,
        clock: Clock = system_clock,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or get_config()
        self.client_id = str(uuid.uuid4())
        self.logger = get_logger("features_sdk.client")
        self.metrics = metrics or get_metrics_collector()
        self.clock = clock

        self._context: Dict[str, Any] = dict(context or {})
        self._initialized = False
        self._stopped = False

        if cache_storage is None:
            cache_storage = self._create_storage(FEATURE_CACHE_ITEM)
        if overrides_storage is None:
            overrides_storage = self._create_storage(OVERRIDES_ITEM)

        self.notifier = UpdateNotifier()
        self.rate_limiter = SlidingWindowRateLimiter(self.config.events_per_minute, clock=clock)
        self.cache = FeatureCache(
            cache_storage,
            stale_time_ms=self.config.stale_time_ms,
            expire_time_ms=self.config.expire_time_ms,
            clock=clock,
            metrics=self.metrics,
        )
        self.overrides = OverrideStore(overrides_storage, self.notifier)

        self.events_client = events_client or EventsClient(
            self.config.api_base_url,
            self.config.publishable_key,
        )
        self.buffer: BatchBuffer[BufferedEvent] = BatchBuffer(
            self.events_client.post_bulk,
            max_size=self.config.batch_max_size,
            interval_ms=self.config.batch_interval_ms,
            retry_interval_ms=self.config.batch_retry_interval_ms,
            max_retries=self.config.batch_max_retries,
            failure_policy=self.config.batch_failure_policy,
            metrics=self.metrics,
        )

        if fetcher is None:
            if evaluator is not None:
                fetcher = LocalEvaluationFetcher(evaluator, on_evaluated=self._record_evaluations)
            else:
                fetcher = EvaluationClient(
                    self.config.api_base_url,
                    self.config.publishable_key,
                    timeout_ms=self.config.timeout_ms,
                )

        self.resolver = FeatureResolver(
            fetcher,
            self.cache,
            self.overrides,
            self.notifier,
            publishable_key=self.config.publishable_key,
            fallback_features=self.config.fallback_features,
            stale_while_revalidate=self.config.stale_while_revalidate,
            failure_retry_attempts=self.config.failure_retry_attempts,
            timeout_ms=self.config.timeout_ms,
            offline=self.config.offline,
            rate_limiter=self.rate_limiter,
            metrics=self.metrics,
        )

    def _create_storage(self, name: str) -> StorageItem:
        return create_storage(
            self.config.storage_backend,
            name,
            storage_path=self.config.storage_path,
            redis_url=self.config.redis_url,
        )

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    @property
    def offline(self) -> bool:
        return self.config.offline

    def _context_id(self, section: str) -> Optional[str]:
        entity = self._context.get(section)
        if isinstance(entity, Mapping) and entity.get("id") is not None:
            return str(entity["id"])
        return None

    async def initialize(self) -> FeatureMap:
        """Resolve the initial context and announce its user and company."""
        if self._initialized:
            return self.get_features()

        set_client_id(self.client_id)
        self.logger.info(
            "Initializing features client",
            offline=self.offline,
            stale_while_revalidate=self.config.stale_while_revalidate,
        )

        features = await self.resolver.resolve(self._context)
        self._initialized = True

        user_id = self._context_id("user")
        if user_id is not None:
            await self._enqueue(UserUpdate(user_id=user_id, attributes=self._attributes("user")))

        company_id = self._context_id("company")
        if company_id is not None:
            await self._enqueue(CompanyUpdate(
                company_id=company_id,
                user_id=user_id,
                attributes=self._attributes("company"),
            ))

        return features

    def _attributes(self, section: str) -> Dict[str, Any]:
        entity = self._context.get(section) or {}
        return {key: value for key, value in entity.items() if key != "id"}

    async def set_context(self, context: Mapping[str, Any]) -> FeatureMap:
        """Replace the evaluation context and resolve it."""
        self._context = dict(context)
        return await self.resolver.resolve(self._context)

    def get_features(self) -> FeatureMap:
        """Effective feature map. Reading it sends no check events."""
        return self.resolver.get_features()

    def get_feature(self, key: str) -> Optional[ResolvedFeature]:
        return self.get_features().get(key)

    async def is_enabled(self, key: str) -> bool:
        """Effective enabled state of ``key``; records a check event."""
        feature = self.get_feature(key)
        value = feature.is_enabled if feature is not None else False
        await self.send_check_event(self._check_event(key, feature, value))
        return value

    async def get_config(self, key: str) -> Any:
        """Config payload of ``key``, or None; records a check event."""
        feature = self.get_feature(key)
        value = feature.is_enabled if feature is not None else False
        await self.send_check_event(self._check_event(key, feature, value))
        if feature is None or feature.config is None:
            return None
        return feature.config.payload

    @staticmethod
    def _check_event(key: str, feature: Optional[ResolvedFeature], value: bool) -> CheckEvent:
        if feature is None:
            return CheckEvent(key=key, value=value)
        return CheckEvent(
            key=key,
            value=value,
            version=feature.targeting_version,
            rule_evaluation_results=feature.rule_evaluation_results,
            missing_context_fields=feature.missing_context_fields,
        )

    async def send_check_event(self, event: CheckEvent) -> bool:
        """Record that application code read ``event.key``.

        Returns False when the event was declined by the rate limiter or
        the client is offline.
        """
        if self.offline:
            return False

        fingerprint = self.resolver.cache_key(self._context)
        limit_key = f"check-event:{fingerprint}:{event.key}:{event.version}:{event.value}"
        if not self.rate_limiter.is_allowed(limit_key):
            self.metrics.increment_counter("events_rate_limited_total", action="check")
            return False

        feature_event = FeatureEvent(
            action="check",
            key=event.key,
            targeting_version=event.version,
            eval_context=dict(self._context),
            eval_result=event.value,
            eval_rule_results=event.rule_evaluation_results,
            eval_missing_fields=event.missing_context_fields,
        )

        if self.config.direct_feature_events:
            try:
                await self.events_client.post_event(feature_event)
            except FeaturesClientException as e:
                self.logger.warning("Failed to send feature check event", **e.to_dict())
                return False
        else:
            await self._enqueue(feature_event)

        self.logger.debug("Sent feature event", action="check", key=event.key)
        return True

    async def _record_evaluations(self, context: Mapping[str, Any], features: FeatureMap) -> None:
        """Buffer one ``evaluate`` event per feature of a local evaluation."""
        fingerprint = self.resolver.cache_key(context)
        for feature in features.values():
            limit_key = (
                f"evaluate-event:{fingerprint}:{feature.key}:"
                f"{feature.targeting_version}:{feature.is_enabled}"
            )
            if not self.rate_limiter.is_allowed(limit_key):
                self.metrics.increment_counter("events_rate_limited_total", action="evaluate")
                continue

            await self._enqueue(FeatureEvent(
                action="evaluate",
                key=feature.key,
                targeting_version=feature.targeting_version,
                eval_context=dict(context),
                eval_result=feature.is_enabled,
                eval_rule_results=feature.rule_evaluation_results,
                eval_missing_fields=feature.missing_context_fields,
            ))

    async def _enqueue(self, event: BufferedEvent) -> None:
        if self.offline:
            self.logger.debug("Offline, not buffering event", type=event.type)
            return
        await self.buffer.add(event)

    def set_override(self, key: str, value: Optional[bool]) -> None:
        self.overrides.set_override(key, value)

    def get_override(self, key: str) -> Optional[bool]:
        return self.overrides.get_override(key)

    def clear_overrides(self) -> None:
        self.overrides.clear_overrides()

    def on_updated(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to feature updates; returns an unsubscribe function."""
        return self.notifier.on_updated(callback)

    async def update_user(self, attributes: Mapping[str, Any]) -> FeatureMap:
        """Shallow-merge ``attributes`` into the user context and re-resolve.

        Changing the user id is refused; build a new client instead.
        """
        return await self._update_entity("user", attributes)

    async def update_company(self, attributes: Mapping[str, Any]) -> FeatureMap:
        """Shallow-merge ``attributes`` into the company context and re-resolve."""
        return await self._update_entity("company", attributes)

    async def _update_entity(self, section: str, attributes: Mapping[str, Any]) -> FeatureMap:
        current = dict(self._context.get(section) or {})
        new_id = attributes.get("id")
        if new_id is not None and current.get("id") is not None and str(new_id) != str(current["id"]):
            self.logger.warning("Ignoring attempt to change the context id", section=section)
            return self.get_features()

        current.update(attributes)
        context = dict(self._context)
        context[section] = current
        self._context = context

        entity_id = self._context_id(section)
        if entity_id is not None:
            if section == "user":
                await self._enqueue(UserUpdate(user_id=entity_id, attributes=self._attributes("user")))
            else:
                await self._enqueue(CompanyUpdate(
                    company_id=entity_id,
                    user_id=self._context_id("user"),
                    attributes=self._attributes("company"),
                ))

        return await self.resolver.resolve(self._context)

    async def track(self, event: str, attributes: Optional[Mapping[str, Any]] = None) -> bool:
        """Buffer a custom event for the current user. Returns False when ignored."""
        user_id = self._context_id("user")
        if user_id is None:
            self.logger.warning("Track call ignored, no user context provided", event_name=event)
            return False

        await self._enqueue(TrackEvent(
            event=event,
            user_id=user_id,
            company_id=self._context_id("company"),
            attributes=dict(attributes or {}),
        ))
        return True

    async def flush(self) -> None:
        await self.buffer.flush()

    async def stop(self) -> None:
        """Stop notifications, cancel background work and flush events. Idempotent."""
        if self._stopped:
            return
        self._stopped = True

        self.notifier.stop()
        await self.resolver.close()
        await self.buffer.close()
        self.logger.info("Features client stopped")

    @property
    def pending_events(self) -> List[BufferedEvent]:
        return self.buffer.pending

    async def __aenter__(self) -> "FeaturesClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

"""
Unit tests for the features client facade.
"""

import pytest
import asyncio
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from features_sdk import FeaturesClient
from features_sdk.adapters import LocalEvaluationFetcher
from features_sdk.models import CheckEvent, CompanyUpdate, FeatureEvent, TrackEvent, UserUpdate
from shared.config import get_config
from shared.errors import InvalidArgument, NetworkError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock, FeatureFactory, RecordingStorage, StubFetcher


class TestFeaturesClient:
    """Test cases for FeaturesClient."""

    @pytest.fixture
    def clock(self):
        return FakeClock(0)

    @pytest.fixture
    def events_client(self):
        events_client = MagicMock()
        events_client.post_bulk = AsyncMock()
        events_client.post_event = AsyncMock()
        return events_client

    @pytest.fixture
    def fetcher(self):
        features = {
            "huddle": FeatureFactory.feature("huddle", True, version=2),
            "themes": FeatureFactory.feature("themes", False, version=5, payload={"primary": "#000"}),
        }
        return StubFetcher(features)

    @pytest.fixture
    def context(self):
        return FeatureFactory.context()

    def make_client(self, fetcher, events_client, clock, context, **overrides):
        settings = {"publishable_key": "pk-test", "stale_time_ms": 60_000, "batch_interval_ms": 60_000}
        settings.update(overrides)
        return FeaturesClient(
            get_config(**settings),
            context=context,
            fetcher=fetcher,
            events_client=events_client,
            cache_storage=RecordingStorage(),
            overrides_storage=RecordingStorage(),
            clock=clock,
            metrics=MetricsCollector(),
        )

    @pytest.fixture
    def client(self, fetcher, events_client, clock, context):
        return self.make_client(fetcher, events_client, clock, context)

    @pytest.mark.asyncio
    async def test_initialize_resolves_and_announces(self, client, fetcher):
        """Test initialize fetches features and buffers user and company updates."""
        features = await client.initialize()

        assert features["huddle"].is_enabled is True
        assert fetcher.call_count == 1
        pending = client.pending_events
        assert isinstance(pending[0], UserUpdate)
        assert pending[0].user_id == "user-123"
        assert pending[0].attributes == {"name": "John Doe"}
        assert isinstance(pending[1], CompanyUpdate)
        assert pending[1].company_id == "company-1"
        await client.stop()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, client, fetcher):
        """Test a second initialize does not refetch or re-announce."""
        await client.initialize()
        await client.initialize()

        assert fetcher.call_count == 1
        assert len(client.pending_events) == 2
        await client.stop()

    @pytest.mark.asyncio
    async def test_get_features_sends_no_check_event(self, client):
        """Test reading the map has no analytics side effect."""
        await client.initialize()
        before = len(client.pending_events)

        client.get_features()

        assert len(client.pending_events) == before
        await client.stop()

    @pytest.mark.asyncio
    async def test_is_enabled_records_check_event(self, client, context):
        """Test is_enabled returns the value and buffers one check event."""
        await client.initialize()

        assert await client.is_enabled("huddle") is True

        event = client.pending_events[-1]
        assert isinstance(event, FeatureEvent)
        assert event.action == "check"
        assert event.key == "huddle"
        assert event.targeting_version == 2
        assert event.eval_result is True
        assert event.eval_context == context
        await client.stop()

    @pytest.mark.asyncio
    async def test_check_events_rate_limited(self, client, clock):
        """Test identical check events are delivered once per minute."""
        await client.initialize()
        before = len(client.pending_events)

        await client.is_enabled("huddle")
        clock.advance(1000)
        await client.is_enabled("huddle")
        assert len(client.pending_events) == before + 1

        clock.advance(61_000)
        await client.is_enabled("huddle")
        assert len(client.pending_events) == before + 2
        assert client.metrics.get_sample_value("features_events_rate_limited_total", action="check") == 1.0
        await client.stop()

    @pytest.mark.asyncio
    async def test_get_config(self, client):
        """Test get_config returns the payload and records a check event."""
        await client.initialize()

        assert await client.get_config("themes") == {"primary": "#000"}
        assert await client.get_config("unknown") is None

        keys = [event.key for event in client.pending_events if isinstance(event, FeatureEvent)]
        assert keys == ["themes", "unknown"]
        await client.stop()

    @pytest.mark.asyncio
    async def test_send_check_event_direct(self, fetcher, events_client, clock, context):
        """Test check events can be posted immediately instead of buffered."""
        client = self.make_client(fetcher, events_client, clock, context, direct_feature_events=True)
        await client.initialize()

        sent = await client.send_check_event(CheckEvent(key="huddle", value=True, version=2))

        assert sent is True
        events_client.post_event.assert_awaited_once()
        posted = events_client.post_event.await_args.args[0]
        assert posted.action == "check"
        assert not any(isinstance(event, FeatureEvent) for event in client.pending_events)
        await client.stop()

    @pytest.mark.asyncio
    async def test_send_check_event_direct_failure(self, fetcher, events_client, clock, context):
        """Test a failing direct post is logged, not raised."""
        events_client.post_event.side_effect = NetworkError("offline")
        client = self.make_client(fetcher, events_client, clock, context, direct_feature_events=True)
        await client.initialize()

        assert await client.send_check_event(CheckEvent(key="huddle", value=True)) is False
        await client.stop()

    @pytest.mark.asyncio
    async def test_overrides(self, client):
        """Test overrides change the effective map and notify subscribers."""
        await client.initialize()
        callback = MagicMock()
        client.on_updated(callback)

        client.set_override("themes", True)

        assert client.get_override("themes") is True
        assert await client.is_enabled("themes") is True
        callback.assert_called_once()

        client.clear_overrides()
        assert await client.is_enabled("themes") is False
        await client.stop()

    @pytest.mark.asyncio
    async def test_invalid_override_raises(self, client):
        """Test InvalidArgument escapes to the caller."""
        with pytest.raises(InvalidArgument):
            client.set_override("themes", "yes")
        await client.stop()

    @pytest.mark.asyncio
    async def test_set_context_refetches(self, client, fetcher):
        """Test a new context is resolved under its own cache key."""
        await client.initialize()

        await client.set_context(FeatureFactory.context(user_id="user-456"))

        assert fetcher.call_count == 2
        assert fetcher.calls[1]["context"]["user"]["id"] == "user-456"
        await client.stop()

    @pytest.mark.asyncio
    async def test_update_user(self, client, fetcher):
        """Test user attributes merge into the context and are announced."""
        await client.initialize()

        await client.update_user({"plan": "pro"})

        assert client.context["user"] == {"id": "user-123", "name": "John Doe", "plan": "pro"}
        assert isinstance(client.pending_events[-1], UserUpdate)
        assert client.pending_events[-1].attributes == {"name": "John Doe", "plan": "pro"}
        assert fetcher.call_count == 2
        await client.stop()

    @pytest.mark.asyncio
    async def test_update_user_id_change_ignored(self, client):
        """Test changing the user id is refused."""
        await client.initialize()
        before = len(client.pending_events)

        await client.update_user({"id": "someone-else"})

        assert client.context["user"]["id"] == "user-123"
        assert len(client.pending_events) == before
        await client.stop()

    @pytest.mark.asyncio
    async def test_update_company(self, client):
        """Test company attributes merge into the context and are announced."""
        await client.initialize()

        await client.update_company({"seats": 10})

        assert client.context["company"]["seats"] == 10
        event = client.pending_events[-1]
        assert isinstance(event, CompanyUpdate)
        assert event.user_id == "user-123"
        await client.stop()

    @pytest.mark.asyncio
    async def test_track(self, client):
        """Test custom events are buffered with user and company ids."""
        await client.initialize()

        assert await client.track("huddle-started", {"participants": 3}) is True

        event = client.pending_events[-1]
        assert isinstance(event, TrackEvent)
        assert event.event == "huddle-started"
        assert event.user_id == "user-123"
        assert event.company_id == "company-1"
        assert event.attributes == {"participants": 3}
        await client.stop()

    @pytest.mark.asyncio
    async def test_track_without_user(self, fetcher, events_client, clock):
        """Test track is ignored without a user in the context."""
        client = self.make_client(fetcher, events_client, clock, {"company": {"id": "c1"}})

        assert await client.track("huddle-started") is False
        await client.stop()

    @pytest.mark.asyncio
    async def test_flush_delivers_bulk(self, client, events_client):
        """Test flush hands every buffered event to the bulk endpoint."""
        await client.initialize()
        await client.track("huddle-started")

        await client.flush()

        events_client.post_bulk.assert_awaited_once()
        delivered = events_client.post_bulk.await_args.args[0]
        assert [event.type for event in delivered] == ["user-update", "company-update", "track-event"]
        await client.stop()

    @pytest.mark.asyncio
    async def test_offline(self, fetcher, events_client, clock, context):
        """Test offline mode uses the fallback table and sends nothing."""
        client = self.make_client(
            fetcher, events_client, clock, context,
            offline=True, fallback_features=["huddle"],
        )

        features = await client.initialize()

        assert {key: f.is_enabled for key, f in features.items()} == {"huddle": True}
        assert await client.is_enabled("huddle") is True
        assert fetcher.call_count == 0
        assert client.pending_events == []
        await client.stop()
        events_client.post_bulk.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_failure_uses_fallback(self, events_client, clock, context):
        """Test a failing fetch exposes the fallback features."""
        client = self.make_client(
            StubFetcher(NetworkError("offline")), events_client, clock, context,
            fallback_features=["huddle"],
        )

        await client.initialize()

        assert await client.is_enabled("huddle") is True
        await client.stop()

    @pytest.mark.asyncio
    async def test_local_evaluation_records_evaluate_events(self, events_client, clock, context):
        """Test an evaluator-backed client buffers evaluate events."""
        def evaluator(ctx):
            return {"huddle": {"key": "huddle", "isEnabled": True, "targetingVersion": 1}}

        client = FeaturesClient(
            get_config(publishable_key="pk-test", batch_interval_ms=60_000),
            context=context,
            evaluator=evaluator,
            events_client=events_client,
            cache_storage=RecordingStorage(),
            overrides_storage=RecordingStorage(),
            clock=clock,
            metrics=MetricsCollector(),
        )
        assert isinstance(client.resolver.fetcher, LocalEvaluationFetcher)

        await client.initialize()

        evaluations = [
            event for event in client.pending_events
            if isinstance(event, FeatureEvent) and event.action == "evaluate"
        ]
        assert len(evaluations) == 1
        assert evaluations[0].key == "huddle"
        assert evaluations[0].eval_result is True
        await client.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, client, events_client):
        """Test stop flushes once, silences subscribers and can be repeated."""
        await client.initialize()
        callback = MagicMock()
        client.on_updated(callback)

        await client.stop()
        await client.stop()
        client.set_override("huddle", False)

        events_client.post_bulk.assert_awaited_once()
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, fetcher, events_client, clock, context):
        """Test async with initializes and stops the client."""
        async with self.make_client(fetcher, events_client, clock, context) as client:
            assert await client.is_enabled("huddle") is True

        events_client.post_bulk.assert_awaited_once()
        await asyncio.sleep(0)

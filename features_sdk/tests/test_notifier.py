"""
Unit tests for the update notifier.
"""

import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from features_sdk.notify import UpdateNotifier


class TestUpdateNotifier:
    """Test cases for UpdateNotifier."""

    @pytest.fixture
    def notifier(self):
        return UpdateNotifier()

    def test_notify_calls_subscribers(self, notifier):
        """Test every subscriber is called once per notify."""
        first, second = MagicMock(), MagicMock()
        notifier.on_updated(first)
        notifier.on_updated(second)

        notifier.notify()

        first.assert_called_once_with()
        second.assert_called_once_with()

    def test_unsubscribe_leaves_others(self, notifier):
        """Test unsubscribing one callback keeps the rest."""
        first, second = MagicMock(), MagicMock()
        unsubscribe = notifier.on_updated(first)
        notifier.on_updated(second)

        unsubscribe()
        notifier.notify()

        first.assert_not_called()
        second.assert_called_once()
        assert len(notifier) == 1

    def test_same_callback_subscribed_twice(self, notifier):
        """Test each subscription is independent even for the same callback."""
        callback = MagicMock()
        unsubscribe = notifier.on_updated(callback)
        notifier.on_updated(callback)

        unsubscribe()
        notifier.notify()

        callback.assert_called_once()

    def test_failing_callback_does_not_stop_delivery(self, notifier):
        """Test a raising subscriber does not starve later ones."""
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        notifier.on_updated(failing)
        notifier.on_updated(healthy)

        notifier.notify()

        healthy.assert_called_once()

    def test_stop_is_idempotent_and_blocks_delivery(self, notifier):
        """Test no delivery after stop, and stop can be called twice."""
        callback = MagicMock()
        notifier.on_updated(callback)

        notifier.stop()
        notifier.stop()
        notifier.notify()

        callback.assert_not_called()
        assert notifier.stopped is True
        assert len(notifier) == 0

    def test_subscribe_after_stop(self, notifier):
        """Test subscribing to a stopped notifier never delivers."""
        notifier.stop()
        callback = MagicMock()
        unsubscribe = notifier.on_updated(callback)

        notifier.notify()
        unsubscribe()

        callback.assert_not_called()

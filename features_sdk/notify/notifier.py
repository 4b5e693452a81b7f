"""
Pub/sub for "the exposed feature set changed".
"""

import uuid
from typing import Callable, Dict

from shared.logging import get_logger

UpdateCallback = Callable[[], None]


class UpdateNotifier:
    """Fan-out of no-payload update callbacks."""

    def __init__(self):
        self.logger = get_logger("features_sdk.notifier")
        self._subscribers: Dict[str, UpdateCallback] = {}
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def on_updated(self, callback: UpdateCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that removes only this subscription."""
        subscription_id = str(uuid.uuid4())
        if self._stopped:
            self.logger.debug("Subscription ignored, notifier stopped")
            return lambda: None

        self._subscribers[subscription_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(subscription_id, None)

        return unsubscribe

    def notify(self) -> None:
        """Invoke every subscriber; a failing callback does not starve the others."""
        if self._stopped:
            return

        for subscription_id, callback in list(self._subscribers.items()):
            try:
                callback()
            except Exception as exc:
                self.logger.error(
                    "Update subscriber raised",
                    subscription_id=subscription_id,
                    error=str(exc)
                )

    def stop(self) -> None:
        """Drop all subscriptions and block further delivery. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._subscribers.clear()
        self.logger.debug("Update notifier stopped")

    def __len__(self) -> int:
        return len(self._subscribers)

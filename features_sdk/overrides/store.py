"""
Local override layer for feature flags.
"""

import json
from typing import Dict, Optional

from shared.errors import InvalidArgument, StorageError
from shared.logging import get_logger

from ..models import FeatureMap, ResolvedFeature
from ..notify import UpdateNotifier
from ..storage import StorageItem


class OverrideStore:
    """Client-local forced ``is_enabled`` values.

    Persisted in its own storage item, independent of the feature cache.
    Overrides are only created or removed through this API.
    """

    def __init__(self, storage: StorageItem, notifier: Optional[UpdateNotifier] = None):
        self.storage = storage
        self.notifier = notifier
        self.logger = get_logger("features_sdk.overrides")
        self._overrides: Dict[str, bool] = self._load()

    def _load(self) -> Dict[str, bool]:
        try:
            raw = self.storage.get()
            stored = json.loads(raw) if raw else {}
        except (StorageError, ValueError) as exc:
            self.logger.warning("Error reading feature overrides", error=str(exc))
            return {}

        if not isinstance(stored, dict):
            self.logger.warning("Ignoring malformed feature overrides", kind=type(stored).__name__)
            return {}

        return {
            str(key): value
            for key, value in stored.items()
            if isinstance(value, bool)
        }

    def _persist(self) -> None:
        try:
            self.storage.set(json.dumps(self._overrides))
        except StorageError as exc:
            self.logger.warning("Failed to persist feature overrides", error=exc.message)

    def set_override(self, key: str, value: Optional[bool]) -> None:
        """Force ``key`` to ``value``; ``None`` removes the override."""
        if not isinstance(key, str) or not key:
            raise InvalidArgument("set_override: key must be a non-empty string")
        if not (value is None or isinstance(value, bool)):
            raise InvalidArgument(
                "set_override: value must be boolean or None",
                details={"key": key, "type": type(value).__name__}
            )

        if value is None:
            self._overrides.pop(key, None)
        else:
            self._overrides[key] = value
        self._persist()

        self.logger.info("Feature override updated", key=key, value=value)
        if self.notifier:
            self.notifier.notify()

    def get_override(self, key: str) -> Optional[bool]:
        return self._overrides.get(key)

    def clear_overrides(self) -> None:
        """Remove every override in one persisted write."""
        if not self._overrides:
            return
        self._overrides = {}
        self._persist()
        self.logger.info("Feature overrides cleared")
        if self.notifier:
            self.notifier.notify()

    @property
    def overrides(self) -> Dict[str, bool]:
        return dict(self._overrides)

    def apply(self, fetched: FeatureMap) -> FeatureMap:
        """Merge overrides onto a fetched map without mutating it."""
        merged: FeatureMap = {}
        for key, feature in fetched.items():
            override = self._overrides.get(key)
            if override is None or override == feature.is_enabled:
                merged[key] = feature
            else:
                merged[key] = feature.model_copy(update={"is_enabled": override})

        for key, override in self._overrides.items():
            if key not in merged:
                merged[key] = ResolvedFeature(key=key, is_enabled=override)

        return merged

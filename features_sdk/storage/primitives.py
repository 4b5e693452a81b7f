"""
Storage primitives backing the feature cache and the override map.

Every primitive holds exactly one opaque string blob. The cache and the
override layer each get their own primitive, so clearing one never touches
the other.
"""

from pathlib import Path
from typing import Optional, Protocol, Union

import redis

from shared.errors import StorageError
from shared.logging import get_logger


class StorageItem(Protocol):
    """Single-blob storage contract."""

    def get(self) -> Optional[str]:
        ...

    def set(self, value: str) -> None:
        ...


class MemoryStorage:
    """Process-local storage item."""

    def __init__(self, initial: Optional[str] = None):
        self._value = initial

    def get(self) -> Optional[str]:
        return self._value

    def set(self, value: str) -> None:
        self._value = value


class FileStorage:
    """Storage item persisted as a single file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = get_logger("features_sdk.storage.file")

    def get(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(
                "Failed to read storage file",
                details={"path": str(self.path), "error": str(exc)}
            ) from exc

    def set(self, value: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # atomic replace
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StorageError(
                "Failed to write storage file",
                details={"path": str(self.path), "error": str(exc)}
            ) from exc


class RedisStorage:
    """Storage item held in a single Redis string key."""

    def __init__(self, redis_url: str, key: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key = key
        self.logger = get_logger("features_sdk.storage.redis")
        self._redis: Optional[redis.Redis] = client

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.Redis.from_url(self.redis_url)
        return self._redis

    def get(self) -> Optional[str]:
        try:
            value = self._get_redis().get(self.key)
        except redis.RedisError as exc:
            raise StorageError(
                "Redis read failed",
                details={"key": self.key, "error": str(exc)}
            ) from exc

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, value: str) -> None:
        try:
            self._get_redis().set(self.key, value)
        except redis.RedisError as exc:
            raise StorageError(
                "Redis write failed",
                details={"key": self.key, "error": str(exc)}
            ) from exc


FEATURE_CACHE_ITEM = "__features_fetched"
OVERRIDES_ITEM = "__features_overrides"


def create_storage(backend: str, name: str, *, storage_path: str = ".features-cache",
                   redis_url: str = "redis://localhost:6379/0") -> StorageItem:
    """Build the storage item called ``name`` for the configured backend."""
    if backend == "memory":
        return MemoryStorage()
    if backend == "file":
        return FileStorage(Path(storage_path) / f"{name}.json")
    if backend == "redis":
        return RedisStorage(redis_url, name)
    raise ValueError(f"Unknown storage backend: {backend}")

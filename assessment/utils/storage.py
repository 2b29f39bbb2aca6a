"""
Key-value storage adapters used by the assessment service

Adapters raise StorageError on any failure; callers decide how to degrade.
"""
import json
import logging
from typing import Any, Dict, Optional, Protocol

import redis

from assessment.exceptions import StorageError

logger = logging.getLogger(__name__)

# Versioned keys; a version bump leaves old data in place
ATTEMPTS_KEY = "assessment.attempts.v1"
PENDING_KEY = "assessment.pending.v1"
PROGRESS_KEY = "assessment.progress.v1"
FLAGS_KEY = "assessment.flags.v1"
DRAFT_KEY = "assessment.draft.v1"


class StorageAdapter(Protocol):
    """Synchronous storage contract the service depends on"""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """Process-local storage; values are JSON round-tripped on write"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError("set", key, e) from e

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStorage:
    """Redis-backed storage; every key is stored under ``{namespace}:{key}``"""

    def __init__(self, redis_url: str, namespace: str = "assessment", client=None):
        self.namespace = namespace
        self.redis_client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5
        )
        logger.info(f"Redis storage ready (namespace: {namespace})")

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            value = self.redis_client.get(self._key(key))
            if value is None:
                return None
            return json.loads(value)
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Storage get error: {str(e)}")
            raise StorageError("get", key, e) from e

    def set(self, key: str, value: Any) -> None:
        try:
            self.redis_client.set(self._key(key), json.dumps(value))
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"Storage set error: {str(e)}")
            raise StorageError("set", key, e) from e

    def remove(self, key: str) -> None:
        try:
            self.redis_client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Storage delete error: {str(e)}")
            raise StorageError("remove", key, e) from e

"""
Revoked-token storage.

The in-memory store is only correct for a single process; set REDIS_URL to
share revocations across instances.
"""
import logging
from abc import ABC, abstractmethod
import time
from typing import Dict, Optional

from marketplace.core import config

logger = logging.getLogger(__name__)


class RevocationStore(ABC):
    """Interface for revoked bearer tokens."""

    @abstractmethod
    def is_revoked(self, token: str) -> bool:
        pass

    @abstractmethod
    def revoke(self, token: str, ttl_seconds: int = config.REVOCATION_TTL_SECONDS) -> None:
        pass


class InMemoryRevocationStore(RevocationStore):
    """Process-local revocations, each with its own expiry."""

    CLEANUP_EVERY = 10

    def __init__(self, clock=time.time):
        self._revoked: Dict[str, float] = {}
        self._clock = clock

    def revoke(self, token: str, ttl_seconds: int = config.REVOCATION_TTL_SECONDS) -> None:
        self._revoked[token] = self._clock() + ttl_seconds
        logger.info(f"Token revoked: total_revoked={len(self._revoked)}")

        if len(self._revoked) % self.CLEANUP_EVERY == 0:
            self.cleanup()

    def is_revoked(self, token: str) -> bool:
        expires_at = self._revoked.get(token)
        if expires_at is None:
            return False

        if expires_at < self._clock():
            del self._revoked[token]
            return False

        return True

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [token for token, expires_at in self._revoked.items() if expires_at < now]
        for token in expired:
            del self._revoked[token]

        logger.info(f"Revoked token cleanup: removed={len(expired)}, remaining={len(self._revoked)}")
        return len(expired)

    def __len__(self) -> int:
        return len(self._revoked)


class RedisRevocationStore(RevocationStore):
    """Revocations shared through Redis keys that expire on their own."""

    KEY_PREFIX = "revoked_token:"

    def __init__(self, client):
        self._client = client

    def revoke(self, token: str, ttl_seconds: int = config.REVOCATION_TTL_SECONDS) -> None:
        self._client.set(f"{self.KEY_PREFIX}{token}", "1", ex=ttl_seconds)
        logger.info("Token revoked in shared store")

    def is_revoked(self, token: str) -> bool:
        return bool(self._client.exists(f"{self.KEY_PREFIX}{token}"))


_store: Optional[RevocationStore] = None


def get_revocation_store() -> RevocationStore:
    """Return the process-wide store, creating it on first use."""
    global _store
    if _store is None:
        if config.REDIS_URL:
            import redis

            _store = RedisRevocationStore(redis.Redis.from_url(config.REDIS_URL))
            logger.info("Using Redis revocation store")
        else:
            _store = InMemoryRevocationStore()
            logger.info("Using in-memory revocation store (single instance only)")
    return _store

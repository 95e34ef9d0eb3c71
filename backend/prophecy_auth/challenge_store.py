"""Short-lived, single-use WebAuthn challenges keyed by subject.

A subject key is a user id (named login), ``anon_<challenge>`` (discoverable
login), ``temp_<username>_<nonce>`` (new account) or ``passkey_<userId>``
(adding a passkey). Storing under an existing key replaces the old entry.
Expired and missing entries both read as ``None``.
"""
import abc
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from redis import Redis, RedisError

from .config import settings
from .errors import InternalError

logger = logging.getLogger(__name__)


class ChallengeStore(abc.ABC):
    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds

    @abc.abstractmethod
    def store(self, key: str, value: str) -> None:
        ...

    @abc.abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    def clear(self, key: str) -> bool:
        """Remove the entry. True only for the call that removed a live challenge."""

    @abc.abstractmethod
    def sweep(self) -> int:
        """Evict expired entries, returning how many were removed."""


class MemoryChallengeStore(ChallengeStore):
    """Process-local store. Each operation holds the lock only for itself."""

    def __init__(self, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def store(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() > expires_at:
                del self._entries[key]
                return None
            return value

    def clear(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.pop(key, None)
            return entry is not None and self._clock() <= entry[1]

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now > expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired challenges", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisChallengeStore(ChallengeStore):
    """Redis-backed store; expiry is delegated to the key TTL."""

    prefix = "challenge"

    def __init__(self, client: Redis, ttl_seconds: int = 300):
        super().__init__(ttl_seconds)
        self.r = client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def store(self, key: str, value: str) -> None:
        try:
            self.r.setex(self._key(key), self.ttl_seconds, value)
        except RedisError:
            logger.exception("Failed to store challenge %s", key)
            raise InternalError("challenge storage unavailable")

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.r.get(self._key(key))
        except RedisError:
            logger.exception("Failed to read challenge %s", key)
            raise InternalError("challenge storage unavailable")
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else value

    def clear(self, key: str) -> bool:
        try:
            # DEL reports how many keys it removed; expired keys are already gone
            return self.r.delete(self._key(key)) == 1
        except RedisError:
            logger.exception("Failed to clear challenge %s", key)
            raise InternalError("challenge storage unavailable")

    def sweep(self) -> int:
        return 0


_store: Optional[ChallengeStore] = None

def build_challenge_store() -> ChallengeStore:
    if settings.CHALLENGE_BACKEND == "redis":
        logger.info("Using Redis challenge store at %s", settings.REDIS_URL)
        return RedisChallengeStore(Redis.from_url(settings.REDIS_URL), settings.CHALLENGE_TTL_SECONDS)
    return MemoryChallengeStore(settings.CHALLENGE_TTL_SECONDS)

def get_challenge_store() -> ChallengeStore:
    """FastAPI dependency returning the process-wide store."""
    global _store
    if _store is None:
        _store = build_challenge_store()
    return _store

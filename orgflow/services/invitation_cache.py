"""
TTL-capable storage for invitation state.

Records live under ``invitation:<token>`` as a hash with the fields
``email``, ``organizationId``, ``status`` and ``expiry``. Expiry is enforced
by the backend itself: once the TTL elapses the key is unreachable.

A lookup that fails on the backend, or finds a hash it cannot decode, is
reported as absent, never as a hit.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

import redis

from ..core.exceptions import CacheBackendError
from ..models.invitations import InvitationRecord
from ..models.types import InvitationStatus

logger = logging.getLogger(__name__)

INVITATION_CACHE_PREFIX = "invitation:"
DEFAULT_INVITATION_TTL = timedelta(days=7)

# HSET on an existing key keeps its TTL; never recreate an expired record
SET_STATUS_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    redis.call('HSET', KEYS[1], 'status', ARGV[1])
    return 1
end
return 0
"""

# Delete the hash only while its status matches, returning its fields
TAKE_SCRIPT = """
if redis.call('HGET', KEYS[1], 'status') == ARGV[1] then
    local fields = redis.call('HGETALL', KEYS[1])
    redis.call('DEL', KEYS[1])
    return fields
end
return false
"""


def cache_key(token: str) -> str:
    return f"{INVITATION_CACHE_PREFIX}{token}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def decode_record(token: str, data: Dict[str, str]) -> Optional[InvitationRecord]:
    try:
        return InvitationRecord.from_hash(token, data)
    except (KeyError, ValueError) as e:
        logger.error(f"Discarding malformed invitation {cache_key(token)}: {e}")
        return None


class InvitationCache:
    """Interface shared by the cache backends."""

    def put(self, token: str, record: InvitationRecord, ttl: timedelta = DEFAULT_INVITATION_TTL) -> None:
        raise NotImplementedError

    def get(self, token: str) -> Optional[InvitationRecord]:
        raise NotImplementedError

    def remove(self, token: str) -> None:
        raise NotImplementedError

    def set_status(self, token: str, status: InvitationStatus) -> bool:
        """Update the status of a live record, keeping its remaining TTL."""
        raise NotImplementedError

    def take(self, token: str, status: InvitationStatus = InvitationStatus.PENDING) -> Optional[InvitationRecord]:
        """
        Remove and return the record in one step, only if it is live and in
        ``status``. Of several concurrent callers at most one gets the record.
        """
        raise NotImplementedError


class RedisInvitationCache(InvitationCache):

    def __init__(self, client: redis.Redis):
        self.redis = client

    def put(self, token: str, record: InvitationRecord, ttl: timedelta = DEFAULT_INVITATION_TTL) -> None:
        key = cache_key(token)
        try:
            # MULTI/EXEC so readers never see the hash without its expiry
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=record.to_hash())
            pipe.expire(key, int(ttl.total_seconds()))
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Failed to cache invitation data for {record.email}: {e}")
            raise CacheBackendError(str(e)) from e
        logger.debug(f"Invitation data cached with key: {key}")

    def get(self, token: str) -> Optional[InvitationRecord]:
        try:
            data = self.redis.hgetall(cache_key(token))
        except redis.RedisError as e:
            logger.error(f"Failed to read invitation {cache_key(token)}: {e}")
            return None
        if not data:
            return None
        return decode_record(token, data)

    def remove(self, token: str) -> None:
        try:
            self.redis.delete(cache_key(token))
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def set_status(self, token: str, status: InvitationStatus) -> bool:
        try:
            updated = self.redis.eval(SET_STATUS_SCRIPT, 1, cache_key(token), status.value)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e
        return bool(updated)

    def take(self, token: str, status: InvitationStatus = InvitationStatus.PENDING) -> Optional[InvitationRecord]:
        try:
            fields = self.redis.eval(TAKE_SCRIPT, 1, cache_key(token), status.value)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e
        if not fields:
            return None
        return decode_record(token, dict(zip(fields[::2], fields[1::2])))


class MemoryInvitationCache(InvitationCache):
    """In-process backend with clock-driven expiry, for development and tests."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._data: Dict[str, Tuple[Dict[str, str], datetime]] = {}
        self._lock = threading.Lock()

    def _live(self, token: str) -> Optional[Dict[str, str]]:
        entry = self._data.get(token)
        if entry is None:
            return None
        fields, expires_at = entry
        if self.clock() >= expires_at:
            del self._data[token]
            return None
        return fields

    def put(self, token: str, record: InvitationRecord, ttl: timedelta = DEFAULT_INVITATION_TTL) -> None:
        with self._lock:
            self._data[token] = (record.to_hash(), self.clock() + ttl)

    def get(self, token: str) -> Optional[InvitationRecord]:
        with self._lock:
            fields = self._live(token)
            if fields is None:
                return None
            return decode_record(token, dict(fields))

    def remove(self, token: str) -> None:
        with self._lock:
            self._data.pop(token, None)

    def set_status(self, token: str, status: InvitationStatus) -> bool:
        with self._lock:
            fields = self._live(token)
            if fields is None:
                return False
            fields["status"] = status.value
            return True

    def take(self, token: str, status: InvitationStatus = InvitationStatus.PENDING) -> Optional[InvitationRecord]:
        with self._lock:
            fields = self._live(token)
            if fields is None or fields.get("status") != status.value:
                return None
            del self._data[token]
            return decode_record(token, dict(fields))

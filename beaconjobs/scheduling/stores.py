"""Keyed scheduling stores: TTL values plus set membership."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from redis.exceptions import RedisError

from beaconjobs.errors import SchedulingStoreUnavailable


class KeyedStore(ABC):
    """Minimal store contract used by :class:`DelayedTaskStore`."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key, expiring after ttl_seconds."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the live value for key, or None when missing or expired."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    async def set_add(self, set_key: str, member: str) -> None:
        """Add member to the set stored at set_key."""

    @abstractmethod
    async def set_members(self, set_key: str) -> set[str]:
        """Return all members of the set stored at set_key."""

    @abstractmethod
    async def set_remove(self, set_key: str, member: str) -> None:
        """Remove member from the set stored at set_key."""


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisKeyedStore(KeyedStore):
    """Redis-backed store using native key expiry (``SET ... EX``)."""

    def __init__(self, client: Any, *, key_prefix: str = "") -> None:
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "") -> RedisKeyedStore:
        from redis import asyncio as redis_asyncio

        return cls(redis_asyncio.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def _call(self, op: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except RedisError as exc:
            raise SchedulingStoreUnavailable(f"redis {op} failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._call("set", self._client.set(self._key(key), value, ex=max(1, int(ttl_seconds))))

    async def get(self, key: str) -> str | None:
        value = await self._call("get", self._client.get(self._key(key)))
        return None if value is None else _decode(value)

    async def delete(self, key: str) -> None:
        await self._call("delete", self._client.delete(self._key(key)))

    async def set_add(self, set_key: str, member: str) -> None:
        await self._call("sadd", self._client.sadd(self._key(set_key), member))

    async def set_members(self, set_key: str) -> set[str]:
        members = await self._call("smembers", self._client.smembers(self._key(set_key)))
        return {_decode(member) for member in members or ()}

    async def set_remove(self, set_key: str, member: str) -> None:
        await self._call("srem", self._client.srem(self._key(set_key), member))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryKeyedStore(KeyedStore):
    """In-memory store for tests and local runs.

    There is no native TTL here, so each value carries an explicit expiry
    timestamp that is checked on read.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._values: dict[str, tuple[str, datetime]] = {}
        self._sets: dict[str, set[str]] = {}

    def _purge_expired(self, key: str) -> None:
        item = self._values.get(key)
        if item is None:
            return
        _, expires_at = item
        if self._clock() >= expires_at:
            self._values.pop(key, None)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = self._clock() + timedelta(seconds=max(1, int(ttl_seconds)))
        self._values[key] = (value, expires_at)

    async def get(self, key: str) -> str | None:
        self._purge_expired(key)
        item = self._values.get(key)
        if item is None:
            return None
        return item[0]

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    async def set_add(self, set_key: str, member: str) -> None:
        self._sets.setdefault(set_key, set()).add(member)

    async def set_members(self, set_key: str) -> set[str]:
        return set(self._sets.get(set_key, ()))

    async def set_remove(self, set_key: str, member: str) -> None:
        members = self._sets.get(set_key)
        if members is None:
            return
        members.discard(member)
        if not members:
            del self._sets[set_key]

"""One-shot delayed tasks over a keyed store with expiry.

Tasks are pulled, not pushed: a periodic sweep calls :meth:`list_due` and
then :meth:`complete` for each task it handled. Delivery is at-least-once;
a sweep that dies between the two calls sees the task again next time.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from beaconjobs.scheduling.stores import KeyedStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_BUFFER = timedelta(days=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DelayedTask:
    """A scheduled task as read back from the store."""

    task_key: str
    task_type: str
    target_date: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "target_date": self.target_date.isoformat(),
                "payload": self.payload,
            }
        )

    @classmethod
    def from_json(cls, task_key: str, raw: str) -> DelayedTask:
        data = json.loads(raw)
        target_date = datetime.fromisoformat(str(data["target_date"]))
        if target_date.tzinfo is None:
            target_date = target_date.replace(tzinfo=timezone.utc)
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("payload must be a mapping")
        return cls(
            task_key=task_key,
            task_type=str(data.get("task_type", "")),
            target_date=target_date,
            payload=payload,
        )


class DelayedTaskStore:
    """Schedule, poll and complete delayed tasks.

    Args:
        store: Keyed store providing TTL values and set membership.
        key_prefix: Namespace for task records (``<prefix><task_key>``).
        set_key: Discovery set listing pending task keys.
        task_type: Default type tag written on schedule.
        ttl_buffer: Extra lifetime past the target date before the record
            expires on its own.
        clock: Source of "now".
    """

    def __init__(
        self,
        store: KeyedStore,
        *,
        key_prefix: str = "delayed:",
        set_key: str | None = None,
        task_type: str = "delayed",
        ttl_buffer: timedelta = DEFAULT_TTL_BUFFER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not key_prefix:
            raise ValueError("key_prefix must be non-empty")
        if ttl_buffer <= timedelta(0):
            raise ValueError("ttl_buffer must be positive")
        self._store = store
        self._key_prefix = key_prefix
        self._set_key = set_key or f"{key_prefix}pending"
        self._task_type = task_type
        self._ttl_buffer = ttl_buffer
        self._clock = clock

    @property
    def set_key(self) -> str:
        return self._set_key

    def record_key(self, task_key: str) -> str:
        return f"{self._key_prefix}{task_key}"

    def ttl_seconds(self, delay_days: float) -> int:
        return int((timedelta(days=delay_days) + self._ttl_buffer).total_seconds())

    async def schedule(
        self,
        task_key: str,
        delay_days: float,
        payload: dict[str, Any],
        *,
        task_type: str | None = None,
    ) -> DelayedTask | None:
        """Schedule a task ``delay_days`` from now.

        Rescheduling an existing key replaces it. Returns None, after logging,
        when the store is unreachable; callers must not treat that as fatal.
        """
        if not task_key or not task_key.strip():
            raise ValueError("task_key must be a non-empty string")
        if delay_days < 0:
            raise ValueError("delay_days must be >= 0")
        task = DelayedTask(
            task_key=task_key,
            task_type=task_type or self._task_type,
            target_date=self._clock() + timedelta(days=delay_days),
            payload=dict(payload),
        )
        try:
            # Index first: a member without a record is pruned by list_due.
            await self._store.set_add(self._set_key, task_key)
            await self._store.set(self.record_key(task_key), task.to_json(), self.ttl_seconds(delay_days))
        except Exception as exc:
            logger.exception("delayed_task_schedule_failed task_key=%s error=%s", task_key, exc)
            return None
        logger.info(
            "delayed_task_scheduled task_key=%s task_type=%s target_date=%s",
            task_key,
            task.task_type,
            task.target_date.isoformat(),
        )
        return task

    async def list_due(self) -> list[DelayedTask]:
        """Tasks whose target date has passed, oldest first.

        Keys whose record has expired are pruned from the discovery set. A
        store outage yields an empty list.
        """
        try:
            return await self._list_due()
        except Exception as exc:
            logger.exception("delayed_task_list_failed error=%s", exc)
            return []

    async def _list_due(self) -> list[DelayedTask]:
        now = self._clock()
        due: list[DelayedTask] = []
        for task_key in sorted(await self._store.set_members(self._set_key)):
            raw = await self._store.get(self.record_key(task_key))
            if raw is None:
                await self._store.set_remove(self._set_key, task_key)
                logger.info("delayed_task_pruned task_key=%s", task_key)
                continue
            try:
                task = DelayedTask.from_json(task_key, raw)
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("delayed_task_unreadable task_key=%s error=%s", task_key, exc)
                continue
            if task.target_date <= now:
                due.append(task)
        due.sort(key=lambda task: task.target_date)
        return due

    async def complete(self, task_key: str) -> None:
        """Remove a handled task. Safe to call for unknown keys."""
        try:
            await self._store.delete(self.record_key(task_key))
            await self._store.set_remove(self._set_key, task_key)
        except Exception as exc:
            logger.exception("delayed_task_complete_failed task_key=%s error=%s", task_key, exc)
            return
        logger.info("delayed_task_completed task_key=%s", task_key)

"""Delayed task scheduling over keyed stores."""

from beaconjobs.scheduling.delayed import DelayedTask, DelayedTaskStore
from beaconjobs.scheduling.stores import InMemoryKeyedStore, KeyedStore, RedisKeyedStore

__all__ = [
    "DelayedTask",
    "DelayedTaskStore",
    "InMemoryKeyedStore",
    "KeyedStore",
    "RedisKeyedStore",
]

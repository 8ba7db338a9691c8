"""Durable job queue (polling or Redis), processors and the worker loop."""

from replygate.config import Settings, get_settings
from replygate.jobs.base import QueueDriver
from replygate.jobs.polling import PollingQueueDriver
from replygate.jobs.processors import Processor, build_processors
from replygate.jobs.redis_queue import NATIVE_STATE_MAP, RedisQueueDriver
from replygate.jobs.worker import Worker
from replygate.store import get_store
from replygate.store.base import Store


def get_queue(settings: Settings | None = None, store: Store | None = None) -> QueueDriver:
    """Queue driver selected by REPLYGATE_QUEUE_BACKEND ('polling' | 'redis')."""
    settings = settings or get_settings()
    if settings.replygate_queue_backend.lower() == "redis":
        return RedisQueueDriver.from_url(settings.redis_url, prefix=settings.replygate_redis_prefix)
    return PollingQueueDriver(store or get_store(settings))


__all__ = [
    "NATIVE_STATE_MAP",
    "PollingQueueDriver",
    "Processor",
    "QueueDriver",
    "RedisQueueDriver",
    "Worker",
    "build_processors",
    "get_queue",
]

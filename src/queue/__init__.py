"""Job queue: Redis-backed and in-memory implementations"""
from .job_queue import (
    Job,
    JobQueue,
    JobQueueError,
    JobWorker,
    InMemoryJobQueue,
    RedisJobQueue,
)

__all__ = ['Job', 'JobQueue', 'JobQueueError', 'JobWorker', 'InMemoryJobQueue', 'RedisJobQueue']

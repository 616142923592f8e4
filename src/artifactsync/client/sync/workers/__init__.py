"""Workers for upload operations.

This package provides:
- BaseWorker: Abstract base class turning failures into results
- UploadWorker: Resolves conflicts and uploads one operation
- WorkerPool: Manages concurrent worker threads

Usage:
    from artifactsync.client.sync.workers import UploadWorker, WorkerPool

    pool = WorkerPool(lambda: UploadWorker(...), max_workers=4)
    pool.start()
    pool.submit(operation, on_complete=callback)
    pool.stop()
"""

from artifactsync.client.sync.workers.base import (
    BaseWorker,
    WorkerContext,
    WorkerResult,
    WorkerState,
)
from artifactsync.client.sync.workers.pool import PoolState, WorkerPool, WorkerTask
from artifactsync.client.sync.workers.upload_worker import UploadWorker

__all__ = [
    # Base
    "BaseWorker",
    "WorkerContext",
    "WorkerResult",
    "WorkerState",
    # Workers
    "UploadWorker",
    # Pool
    "PoolState",
    "WorkerPool",
    "WorkerTask",
]

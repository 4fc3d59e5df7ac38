"""
Run Dispatch
Hands a triggered Run to whoever executes it: an in-process asyncio task on
the job's actor (``inline``) or an RQ worker through Redis (``rq``).
"""

import logging
from datetime import datetime
from typing import Optional

from rq import Queue

from app.core.config import Settings
from app.core.redis import RedisManager
from app.workers.router import JobRouter

logger = logging.getLogger(__name__)


class QueueManager:
    """
    Dispatches Run requests for outfit jobs.

    Either way the job record's claim decides whether a pipeline actually
    starts, so dispatching the same job twice is harmless.
    """

    def __init__(self, settings: Settings, router: JobRouter, redis_manager: Optional[RedisManager] = None):
        self.mode = settings.JOB_DISPATCH_MODE
        self.queue_name = settings.JOB_QUEUE
        self.job_timeout = settings.JOB_TIMEOUT
        self.router = router
        self.redis_manager = redis_manager
        self._queue: Optional[Queue] = None

    def get_queue(self) -> Queue:
        """Lazily created RQ queue."""
        if self._queue is None:
            if self.redis_manager is None:
                raise RuntimeError("rq dispatch needs a Redis connection")
            self._queue = Queue(
                name=self.queue_name,
                connection=self.redis_manager.get_connection(),
                default_timeout=self.job_timeout,
            )
        return self._queue

    def enqueue_run(self, job_id: str) -> str:
        """
        Trigger a Run for a job without waiting for it.

        Returns:
            Dispatch mode used
        """
        if self.mode == "rq":
            from app.workers.tasks import run_outfit_job_task

            rq_job = self.get_queue().enqueue(
                run_outfit_job_task,
                job_id,
                job_timeout=self.job_timeout,
                meta={
                    "type": "outfit_generation",
                    "outfit_job": job_id,
                    "created_at": datetime.utcnow().isoformat(),
                },
            )
            logger.info(f"Enqueued outfit job {job_id} as RQ job {rq_job.id}")
        else:
            self.router.locate(job_id).trigger()
            logger.info(f"Scheduled outfit job {job_id} in-process")
        return self.mode

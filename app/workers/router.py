"""
Job Router
Maps a job id to its JobActor. Actors are created lazily and cached so
every request for the same id in this process reaches the same instance.
"""

import logging
import threading
from typing import Callable, Dict

from app.workers.actor import JobActor

logger = logging.getLogger(__name__)

ActorFactory = Callable[[str], JobActor]


class JobRouter:
    """Registry from job id to actor, safe under concurrent lookup."""

    def __init__(self, factory: ActorFactory, max_cached: int = 1024):
        self._factory = factory
        self._max_cached = max_cached
        self._actors: Dict[str, JobActor] = {}
        self._lock = threading.Lock()

    def locate(self, job_id: str) -> JobActor:
        """Get the actor for a job id, creating it on first use."""
        with self._lock:
            actor = self._actors.get(job_id)
            if actor is None:
                if len(self._actors) >= self._max_cached:
                    self._evict_idle()
                actor = self._factory(job_id)
                self._actors[job_id] = actor
            return actor

    def __len__(self) -> int:
        return len(self._actors)

    def _evict_idle(self):
        """Drop cached actors with no live run task. Caller holds the lock."""
        idle = [job_id for job_id, actor in self._actors.items() if not actor.busy]
        for job_id in idle:
            del self._actors[job_id]
        logger.debug(f"[Router] Evicted {len(idle)} idle actor(s), {len(self._actors)} busy")

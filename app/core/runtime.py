"""
Runtime Wiring
Builds the process-wide components from one Settings instance and passes
the settings explicitly into each of them.
"""

from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import Settings
from app.core.database import create_db_engine, create_session_factory, init_db
from app.core.redis import RedisManager
from app.services.gemini_vision import ArchetypeClassifier
from app.services.image_edit import ImageEditService
from app.services.storage import StorageService
from app.workers.actor import JobActor
from app.workers.queue import QueueManager
from app.workers.router import JobRouter
from app.workers.store import JobRecordStore


@dataclass
class Runtime:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    store: JobRecordStore
    storage: StorageService
    generator: ImageEditService
    router: JobRouter = field(init=False)
    queue: QueueManager = field(init=False)
    redis_manager: Optional[RedisManager] = None

    def __post_init__(self):
        self.router = JobRouter(self.make_actor, max_cached=self.settings.ACTOR_CACHE_SIZE)
        self.queue = QueueManager(self.settings, self.router, self.redis_manager)

    def make_actor(self, job_id: str) -> JobActor:
        return JobActor(
            job_id,
            store=self.store,
            storage=self.storage,
            generator=self.generator,
            stale_after=self.settings.JOB_TIMEOUT,
        )

    @cached_property
    def classifier(self) -> ArchetypeClassifier:
        # Created on first use: the Gemini client refuses to start without a key
        return ArchetypeClassifier(self.settings)

    def close(self):
        if self.redis_manager is not None:
            self.redis_manager.close()
        self.engine.dispose()


def build_runtime(settings: Settings, engine: Optional[Engine] = None) -> Runtime:
    """Create and initialize every component for one process."""
    engine = engine or create_db_engine(settings)
    init_db(engine)
    session_factory = create_session_factory(engine)

    return Runtime(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        store=JobRecordStore(session_factory),
        storage=StorageService(settings),
        generator=ImageEditService(settings),
        redis_manager=RedisManager(settings) if settings.JOB_DISPATCH_MODE == "rq" else None,
    )

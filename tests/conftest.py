import asyncio
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.database import create_session_factory, init_db
from app.schemas.job import JobSpec
from app.services.storage import StorageService, object_key
from app.workers.actor import JobActor
from app.workers.store import JobRecordStore

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JOB_ID = "0123456789abcdef01234567"


def make_png(tag: bytes = b"") -> bytes:
    return PNG_SIGNATURE + b"\x00\x00\x00\rIHDR" + tag.ljust(16, b"\x00")


class FakeGenerator:
    """Stand-in for ImageEditService with scripted outputs."""

    def __init__(self, outputs: Optional[List[bytes]] = None, error: Optional[Exception] = None):
        self.outputs = outputs if outputs is not None else [make_png(b"out-1"), make_png(b"out-2")]
        self.error = error
        self.calls = []
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def edit(self, prompt, images, size="1024x1024", count=1):
        self.calls.append({"prompt": prompt, "images": list(images), "size": size, "count": count})
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.outputs)


class RecordingQueue:
    """Dispatcher that only records Run requests."""

    def __init__(self):
        self.dispatched = []

    def enqueue_run(self, job_id: str) -> str:
        self.dispatched.append(job_id)
        return "recorded"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        LOCAL_STORAGE_PATH=str(tmp_path / "uploads"),
        PUBLIC_BASE_URL="http://testserver",
        OPENAI_API_KEY="sk-test",
        GEMINI_API_KEY="gm-test",
        STORAGE_BACKEND="local",
        JOB_DISPATCH_MODE="inline",
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return JobRecordStore(session_factory)


@pytest.fixture
def storage(settings):
    return StorageService(settings)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def archetype():
    return {
        "type": "Луна",
        "reason": "Мягкие черты и холодный контраст.",
        "bullets": ["мягкий овал", "светлая кожа", "плавные линии", "спокойный взгляд"],
    }


@pytest.fixture
def job_spec(storage, archetype):
    return JobSpec(
        requester="a@b.com",
        event_label="Свадьба",
        archetype=archetype,
        reference_image_ref=storage.public_url(object_key(JOB_ID, "input")),
        face_image_ref=storage.public_url(object_key(JOB_ID, "face")),
        target_size="1024x1024",
        requested_count=1,
    )


@pytest.fixture
async def stored_inputs(storage):
    await storage.put(JOB_ID, "input", make_png(b"body"))
    await storage.put(JOB_ID, "face", make_png(b"face"))


@pytest.fixture
def actor(store, storage, generator):
    return JobActor(JOB_ID, store=store, storage=storage, generator=generator)

"""Tests for the storage client on the local backend."""

import httpx
import pytest

from app.services.storage import object_key
from app.workers.base import StorageFailure
from tests.conftest import JOB_ID, make_png


class TestLocalStorage:
    async def test_put_returns_public_url(self, storage):
        url = await storage.put(JOB_ID, "out_1", make_png(b"x"))

        assert url == f"http://testserver/outfits/file/jobs/{JOB_ID}/out_1.png"
        assert storage.key_from_url(url) == object_key(JOB_ID, "out_1")
        assert await storage.fetch(url) == make_png(b"x")

    async def test_put_overwrites_slot(self, storage):
        await storage.put(JOB_ID, "out_1", b"first")
        url = await storage.put(JOB_ID, "out_1", b"second")

        assert await storage.fetch(url) == b"second"

    async def test_unknown_slot(self, storage):
        with pytest.raises(StorageFailure, match="Unknown slot"):
            await storage.put(JOB_ID, "out_3", b"x")

    async def test_fetch_missing_object(self, storage):
        with pytest.raises(StorageFailure, match="not found"):
            await storage.fetch(storage.public_url(object_key(JOB_ID, "face")))

    async def test_fetch_unsupported_locator(self, storage):
        with pytest.raises(StorageFailure, match="Unsupported"):
            await storage.fetch("ftp://example.com/a.png")

    async def test_get_missing_returns_none(self, storage):
        assert await storage.get_object("jobs/nothing/input.png") is None

    async def test_key_cannot_escape_base_path(self, storage):
        with pytest.raises(StorageFailure, match="Invalid storage key"):
            await storage.get_object("../../etc/passwd")


async def test_fetch_external_url_failure(storage, monkeypatch):
    def handler(request):
        return httpx.Response(404)

    original = httpx.AsyncClient

    def client_with_mock(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return original(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_with_mock)

    with pytest.raises(StorageFailure, match="Fetch of https://cdn.example.com/a.png failed"):
        await storage.fetch("https://cdn.example.com/a.png")

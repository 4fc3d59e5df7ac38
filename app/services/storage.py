"""
Storage Service
Stores job artifacts under (job, slot) keys - supports local filesystem,
S3 compatible buckets (AWS S3, Cloudflare R2) and Google Cloud Storage.
"""

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Optional

import httpx

from app.core.config import Settings
from app.workers.base import StorageFailure

logger = logging.getLogger(__name__)

FILE_ROUTE = "/outfits/file/"
SLOTS = ("input", "face", "out_1", "out_2")


def object_key(job_id: str, slot: str) -> str:
    """Storage key for a job slot, e.g. ``jobs/<job>/out_1.png``."""
    return f"jobs/{job_id}/{slot}.png"


class StorageService:
    """Service for storing and fetching job artifacts."""

    def __init__(self, settings: Settings):
        self.backend = settings.STORAGE_BACKEND
        self.public_base_url = settings.PUBLIC_BASE_URL.rstrip("/")
        self.timeout = settings.STORAGE_TIMEOUT
        self.fetch_timeout = settings.FETCH_TIMEOUT

        if self.backend == "gcs":
            from google.cloud import storage
            self.gcs_client = storage.Client(project=settings.GCP_PROJECT_ID or None)
            self.bucket = self.gcs_client.bucket(settings.GCS_BUCKET)
            logger.info(f"[Storage] Using Google Cloud Storage: {settings.GCS_BUCKET}")

        elif self.backend == "s3":
            import boto3
            from botocore.config import Config
            self.s3 = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=settings.S3_REGION,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                )
            )
            self.bucket_name = settings.S3_BUCKET
            logger.info(f"[Storage] Using S3: {self.bucket_name}")

        else:
            self.base_path = Path(settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

    async def _in_thread(self, fn, *args, **kwargs):
        """Run a blocking SDK call in the default executor, bounded by the storage timeout."""
        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(None, partial(fn, *args, **kwargs))
        return await asyncio.wait_for(call, timeout=self.timeout)

    def public_url(self, key: str) -> str:
        """URL served by the stored-file proxy route for a key."""
        return f"{self.public_base_url}{FILE_ROUTE}{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        """Storage key for a URL produced by ``public_url``, else None."""
        if url.startswith(self.public_base_url + FILE_ROUTE):
            return url[len(self.public_base_url + FILE_ROUTE):]
        if url.startswith(FILE_ROUTE):
            return url[len(FILE_ROUTE):]
        return None

    async def put(self, job_id: str, slot: str, data: bytes, content_type: str = "image/png") -> str:
        """Upload a job slot and return its durable URL."""
        if slot not in SLOTS:
            raise StorageFailure(f"Unknown slot: {slot}")
        key = object_key(job_id, slot)
        try:
            await self.put_object(key, data, content_type)
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"Upload of {key} failed: {e}") from e

        logger.debug(f"[Storage] Stored {len(data)} bytes at {key}")
        return self.public_url(key)

    async def put_object(self, key: str, data: bytes, content_type: str):
        if self.backend == "gcs":
            blob = self.bucket.blob(key)
            await self._in_thread(blob.upload_from_string, data, content_type=content_type)
        elif self.backend == "s3":
            await self._in_thread(
                self.s3.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        else:
            file_path = self._local_path(key)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)

    async def get_object(self, key: str) -> Optional[bytes]:
        """Get stored object contents, or None when the key does not exist."""
        if self.backend == "gcs":
            blob = self.bucket.blob(key)
            exists = await self._in_thread(blob.exists)
            if not exists:
                return None
            return await self._in_thread(blob.download_as_bytes)
        elif self.backend == "s3":
            from botocore.exceptions import ClientError
            try:
                response = await self._in_thread(self.s3.get_object, Bucket=self.bucket_name, Key=key)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                    return None
                raise
            return await self._in_thread(response["Body"].read)
        else:
            file_path = self._local_path(key)
            if not file_path.is_file():
                return None
            return file_path.read_bytes()

    async def fetch(self, url: str) -> bytes:
        """
        Download an artifact by locator.

        Locators produced by this service are read straight from the backend;
        any other http(s) URL is downloaded.

        Raises:
            StorageFailure: the object is missing or the download failed
        """
        key = self.key_from_url(url)
        try:
            if key is not None:
                data = await self.get_object(key)
            elif url.startswith(("http://", "https://")):
                async with httpx.AsyncClient(timeout=self.fetch_timeout) as client:
                    response = await client.get(url)
                    response.raise_for_status()
                    data = response.content
            else:
                raise StorageFailure(f"Unsupported locator: {url}")
        except StorageFailure:
            raise
        except Exception as e:
            raise StorageFailure(f"Fetch of {url} failed: {e}") from e

        if data is None:
            raise StorageFailure(f"Stored object not found: {url}")
        return data

    def health_check(self) -> str:
        if self.backend == "gcs":
            return "ok" if self.bucket.exists() else "bucket missing"
        elif self.backend == "s3":
            self.s3.head_bucket(Bucket=self.bucket_name)
            return "ok"
        return "ok" if self.base_path.exists() else "path missing"

    def _local_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise StorageFailure(f"Invalid storage key: {key}")
        return path

"""Local and remote (S3) storage for screenshot artifacts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import ScreenshotConfig
from .slugs import SCREENSHOT_EXTENSION

LOGGER = logging.getLogger(__name__)

WEBP_CONTENT_TYPE = "image/webp"
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_DOWNLOAD_CHUNK_SIZE = 64 * 1024


class RemoteStorageError(RuntimeError):
    """Raised when the remote cache fails for a reason other than a missing object."""


def _temporary_path(target: Path) -> Path:
    return target.with_name(target.name + ".tmp")


class ArtifactStore(Protocol):
    async def exists(self, slug: str) -> bool:
        ...

    async def is_fresh(self, slug: str) -> bool:
        ...


class LocalScreenshotStore:
    """Screenshots on the local filesystem at ``{directory}/{slug}.webp``.

    Writes go through a temporary sibling file and an atomic rename, so a
    present ``{slug}.webp`` is always a complete artifact.
    """

    def __init__(self, directory: Path, extension: str = SCREENSHOT_EXTENSION) -> None:
        self._directory = Path(directory)
        self._extension = extension

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, slug: str) -> Path:
        return self._directory / f"{slug}.{self._extension}"

    def has(self, slug: str) -> bool:
        return self.path_for(slug).is_file()

    async def exists(self, slug: str) -> bool:
        return self.has(slug)

    async def is_fresh(self, slug: str) -> bool:
        # Presence alone counts locally.
        return self.has(slug)

    async def read(self, slug: str) -> bytes:
        return self.path_for(slug).read_bytes()

    async def write(self, slug: str, data: bytes) -> Path:
        target = self.path_for(slug)
        target.parent.mkdir(parents=True, exist_ok=True)
        temporary = _temporary_path(target)
        temporary.unlink(missing_ok=True)
        try:
            temporary.write_bytes(data)
            temporary.replace(target)
        except OSError:
            temporary.unlink(missing_ok=True)
            raise
        return target


class RemoteScreenshotStore(ArtifactStore, Protocol):
    enabled: bool

    async def download(self, slug: str, target: Path) -> bool:
        ...

    async def upload(self, slug: str, source: Path) -> None:
        ...


class NullRemoteStore:
    """Stand-in used when remote storage is disabled; everything is absent."""

    enabled = False

    async def exists(self, slug: str) -> bool:
        return False

    async def is_fresh(self, slug: str) -> bool:
        return False

    async def download(self, slug: str, target: Path) -> bool:
        return False

    async def upload(self, slug: str, source: Path) -> None:
        return None


class S3ScreenshotStore:
    """Screenshots cached as ``{slug}.webp`` objects in an S3 bucket."""

    enabled = True

    def __init__(
        self,
        client: Any,
        bucket: str,
        *,
        cache_timeout_seconds: float,
        cache_control: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._cache_timeout_seconds = cache_timeout_seconds
        self._cache_control = cache_control
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def bucket(self) -> str:
        return self._bucket

    @staticmethod
    def key_for(slug: str) -> str:
        return f"{slug}.{SCREENSHOT_EXTENSION}"

    def _head(self, slug: str) -> dict | None:
        key = self.key_for(slug)
        try:
            return self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return None
            raise RemoteStorageError(f"HEAD s3://{self._bucket}/{key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise RemoteStorageError(f"HEAD s3://{self._bucket}/{key} failed: {exc}") from exc

    async def exists(self, slug: str) -> bool:
        return await asyncio.to_thread(self._head, slug) is not None

    async def is_fresh(self, slug: str) -> bool:
        metadata = await asyncio.to_thread(self._head, slug)
        if metadata is None:
            return False
        last_modified = metadata.get("LastModified")
        if not isinstance(last_modified, datetime):
            return False
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        age = (self._clock() - last_modified).total_seconds()
        return age < self._cache_timeout_seconds

    def _download(self, slug: str, target: Path) -> bool:
        key = self.key_for(slug)
        temporary = _temporary_path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        bytes_written = 0
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            body = response["Body"]
            try:
                with temporary.open("wb") as handle:
                    for chunk in body.iter_chunks(_DOWNLOAD_CHUNK_SIZE):
                        if not chunk:
                            continue
                        handle.write(chunk)
                        bytes_written += len(chunk)
            finally:
                body.close()
        except ClientError as exc:
            temporary.unlink(missing_ok=True)
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            raise RemoteStorageError(f"GET s3://{self._bucket}/{key} failed: {exc}") from exc
        except (BotoCoreError, OSError) as exc:
            temporary.unlink(missing_ok=True)
            raise RemoteStorageError(f"GET s3://{self._bucket}/{key} failed: {exc}") from exc

        if bytes_written == 0:
            temporary.unlink(missing_ok=True)
            raise RemoteStorageError(f"Empty object s3://{self._bucket}/{key}")
        temporary.replace(target)
        return True

    async def download(self, slug: str, target: Path) -> bool:
        return await asyncio.to_thread(self._download, slug, target)

    def _upload(self, slug: str, source: Path) -> None:
        key = self.key_for(slug)
        try:
            data = source.read_bytes()
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=WEBP_CONTENT_TYPE,
                CacheControl=self._cache_control,
            )
        except (ClientError, BotoCoreError, OSError) as exc:
            raise RemoteStorageError(f"PUT s3://{self._bucket}/{key} failed: {exc}") from exc

    async def upload(self, slug: str, source: Path) -> None:
        await asyncio.to_thread(self._upload, slug, source)


def build_remote_store(config: ScreenshotConfig) -> RemoteScreenshotStore:
    """Return an S3 store, or a :class:`NullRemoteStore` when disabled or unconfigured."""

    if config.skip_remote_storage:
        LOGGER.info("Remote screenshot storage disabled (SKIP_S3)")
        return NullRemoteStore()

    remote = config.remote
    if not remote.bucket_name:
        LOGGER.info("No screenshot bucket configured; using local storage only")
        return NullRemoteStore()

    try:
        session = boto3.session.Session(
            aws_access_key_id=remote.access_key_id if remote.has_explicit_credentials() else None,
            aws_secret_access_key=remote.secret_access_key if remote.has_explicit_credentials() else None,
            aws_session_token=remote.session_token if remote.has_explicit_credentials() else None,
            region_name=remote.region,
        )
        if session.get_credentials() is None:
            LOGGER.info("AWS credentials not configured; using local storage only")
            return NullRemoteStore()
        client = session.client("s3", endpoint_url=remote.endpoint_url)
    except BotoCoreError as exc:
        LOGGER.warning("Failed to initialise S3 client; using local storage only: %s", exc)
        return NullRemoteStore()

    return S3ScreenshotStore(
        client,
        remote.bucket_name,
        cache_timeout_seconds=config.cache_timeout_seconds,
        cache_control=remote.cache_control,
    )

"""Upload stage: persist exported HTML transcripts to object storage.

Works with any S3-compatible endpoint (DigitalOcean Spaces, MinIO). The minio
client is synchronous, so every call runs in a worker thread and is bounded
by the configured timeout.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from channel_archive.core.errors import TransportFailure
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import Artifact
from channel_archive.pipeline.naming import resolve_unique_key

if TYPE_CHECKING:
    from channel_archive.config.settings import StorageConfig

HTML_CONTENT_TYPE = "text/html"

_STORAGE_ERRORS = (MinioException, Urllib3HTTPError, OSError)


def create_storage_client(settings: StorageConfig) -> Minio:
    """Build a minio client from storage settings."""
    return Minio(
        endpoint=settings.endpoint,
        access_key=settings.access_key,
        secret_key=settings.secret_key,
        secure=settings.secure,
        region=settings.region,
    )


class ArtifactStore:
    """Uploads artifacts under collision-free keys.

    Usage:
        store = ArtifactStore(settings.storage)
        artifact = await store.upload(Path("archives/123.html"), "general")
        print(artifact.public_url)
    """

    def __init__(self, settings: StorageConfig, client: Minio | None = None) -> None:
        self.settings = settings
        self.bucket = settings.bucket
        self._client = client or create_storage_client(settings)

    def list_keys(self, prefix: str) -> list[str]:
        """List object keys in the bucket starting with prefix."""
        return [
            obj.object_name
            for obj in self._client.list_objects(self.bucket, prefix=prefix)
            if obj.object_name
        ]

    def _put(self, key: str, local_path: Path) -> None:
        self._client.fput_object(
            self.bucket,
            key,
            str(local_path),
            content_type=HTML_CONTENT_TYPE,
            metadata={"x-amz-acl": self.settings.acl},
        )

    async def upload(self, local_path: Path, channel_name: str) -> Artifact:
        """Upload an exported file under a key derived from the channel name.

        Args:
            local_path: Exported HTML file
            channel_name: Human-readable channel name used for the key

        Returns:
            The stored Artifact with its public URL

        Raises:
            TransportFailure: The upload failed or timed out
        """
        timeout = self.settings.timeout_seconds

        try:
            key = await asyncio.wait_for(
                asyncio.to_thread(resolve_unique_key, channel_name, self.list_keys),
                timeout=timeout,
            )
            logger.debug(f"Uploading {local_path.name} as {self.bucket}/{key}")
            await asyncio.wait_for(
                asyncio.to_thread(self._put, key, local_path), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise TransportFailure(
                f"Upload of {local_path.name} timed out after {timeout:.0f}s"
            ) from e
        except _STORAGE_ERRORS as e:
            raise TransportFailure(f"Upload of {local_path.name} failed: {e}") from e

        return Artifact(
            local_path=local_path,
            storage_key=key,
            public_url=self.settings.public_url(key),
        )

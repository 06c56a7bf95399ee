"""S3-compatible object storage for synthesized audio."""

import logging
from urllib.parse import urlparse
from uuid import UUID, uuid4

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, get_settings
from app.errors import DependencyError

logger = logging.getLogger(__name__)


class ObjectStorageClient:
    """Async S3 client that stores blobs and hands back their public URL."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.session = aioboto3.Session(
            aws_access_key_id=self.settings.aws_access_key_id or None,
            aws_secret_access_key=self.settings.aws_secret_access_key or None,
            region_name=self.settings.aws_region,
        )
        self.config = Config(
            retries={"max_attempts": 3, "mode": "adaptive"},
            connect_timeout=self.settings.storage_timeout_seconds,
            read_timeout=self.settings.storage_timeout_seconds,
        )

    def get_client(self):
        """Get S3 client context manager."""
        kwargs = {"config": self.config}
        if self.settings.s3_endpoint_url:
            kwargs["endpoint_url"] = self.settings.s3_endpoint_url
        return self.session.client("s3", **kwargs)

    @property
    def base_url(self) -> str:
        if self.settings.s3_public_base_url:
            return self.settings.s3_public_base_url.rstrip("/")
        if self.settings.s3_endpoint_url:
            return f"{self.settings.s3_endpoint_url.rstrip('/')}/{self.settings.s3_bucket}"
        return f"https://{self.settings.s3_bucket}.s3.{self.settings.aws_region}.amazonaws.com"

    def audio_key(self, article_id: UUID, extension: str = "wav") -> str:
        """Every synthesis gets a fresh key so a stale CDN copy is never served."""
        return f"{self.settings.audio_prefix}/article-{article_id}-{uuid4().hex[:8]}.{extension}"

    def key_from_url(self, url: str) -> str:
        """Invert ``base_url``; falls back to the URL path for foreign URLs."""
        prefix = f"{self.base_url}/"
        if url.startswith(prefix):
            return url[len(prefix):]
        path = urlparse(url).path.lstrip("/")
        bucket_prefix = f"{self.settings.s3_bucket}/"
        return path[len(bucket_prefix):] if path.startswith(bucket_prefix) else path

    async def store(self, key: str, data: bytes, content_type: str) -> str:
        """Upload a blob and return its public URL."""
        try:
            async with self.get_client() as client:
                await client.put_object(
                    Bucket=self.settings.s3_bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError) as e:
            raise DependencyError(f"Object storage upload failed for {key}") from e

        logger.info("Stored object %s (%d bytes)", key, len(data))
        return f"{self.base_url}/{key}"

    async def delete(self, url: str) -> None:
        """Delete the object behind a URL previously returned by ``store``."""
        key = self.key_from_url(url)
        try:
            async with self.get_client() as client:
                await client.delete_object(Bucket=self.settings.s3_bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise DependencyError(f"Object storage delete failed for {key}") from e

        logger.info("Deleted object %s", key)


# Singleton instance
object_storage = ObjectStorageClient()

"""S3 service for avatar image storage."""

import asyncio
import logging
import time
from functools import lru_cache
from uuid import UUID

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from askhub.config import Settings, get_settings
from askhub.services.errors import ActionFailedError, FormValidationError

logger = logging.getLogger(__name__)

AVATAR_PREFIX = "avatars"
AVATAR_CACHE_CONTROL = "max-age=3600"


class AvatarStorage:
    """Uploads avatar images to an S3-compatible bucket and resolves their public URLs."""

    def __init__(self, settings: Settings, client=None):
        """Initialize S3 client with credentials from settings."""
        if client is None:
            client_kwargs = {
                "aws_access_key_id": settings.aws_access_key_id or None,
                "aws_secret_access_key": settings.aws_secret_access_key or None,
                "region_name": settings.aws_s3_region,
            }
            # Support MinIO / LocalStack by pointing to a custom endpoint
            if settings.aws_s3_endpoint_url:
                client_kwargs["endpoint_url"] = settings.aws_s3_endpoint_url
            client = boto3.client("s3", **client_kwargs)

        self.s3_client = client
        self.bucket = settings.aws_s3_bucket
        self.region = settings.aws_s3_region
        self.endpoint_url = settings.aws_s3_endpoint_url
        self.public_base_url = settings.avatar_public_base_url
        self.max_size_bytes = settings.max_avatar_size_bytes

    def validate(self, content_type: str | None, size: int) -> None:
        """
        Reject anything that is not an image or is too large.

        Raises:
            FormValidationError: keyed on the ``file`` field
        """
        if not content_type or not content_type.startswith("image/"):
            raise FormValidationError({"file": "Please select an image file"})
        if size > self.max_size_bytes:
            limit_mb = self.max_size_bytes // (1024 * 1024)
            raise FormValidationError({"file": f"File size must be less than {limit_mb}MB"})

    @staticmethod
    def build_key(user_id: UUID, filename: str, now_ms: int | None = None) -> str:
        """Object key ``avatars/<user_id>-<epoch millis>.<ext>``."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
        return f"{AVATAR_PREFIX}/{user_id}-{now_ms}.{ext}"

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def upload_avatar(
        self,
        user_id: UUID,
        filename: str,
        content_type: str | None,
        data: bytes,
    ) -> str:
        """
        Validate and upload an avatar image.

        Args:
            user_id: Owner of the avatar
            filename: Original file name (only the extension is kept)
            content_type: MIME type reported by the client
            data: Raw image bytes

        Returns:
            Publicly resolvable URL of the stored object

        Raises:
            FormValidationError: If the file is not an acceptable image
            ActionFailedError: If the upload fails
        """
        self.validate(content_type, len(data))
        key = self.build_key(user_id, filename)
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=AVATAR_CACHE_CONTROL,
            )
        except (ClientError, BotoCoreError) as e:
            logger.exception("Avatar upload failed for user %s", user_id)
            raise ActionFailedError("Failed to upload avatar. Please try again.") from e
        return self.public_url(key)

    async def delete_avatar(self, key: str) -> None:
        """Delete an avatar object. Failures are logged only."""
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError):
            logger.warning("Failed to delete avatar object %s", key, exc_info=True)

    def key_from_url(self, url: str) -> str | None:
        """Recover the object key from a URL produced by public_url, if it is ours."""
        marker = f"{AVATAR_PREFIX}/"
        idx = url.find(marker)
        if idx == -1 or not url.startswith(self.public_url("")):
            return None
        return url[idx:]

    def owned_key(self, url: str, user_id: UUID) -> str | None:
        """Like key_from_url, but only for objects uploaded for user_id."""
        key = self.key_from_url(url)
        if key is None or not key.startswith(f"{AVATAR_PREFIX}/{user_id}-"):
            return None
        return key


@lru_cache
def get_avatar_storage() -> AvatarStorage:
    """FastAPI dependency returning the shared storage client."""
    return AvatarStorage(get_settings())

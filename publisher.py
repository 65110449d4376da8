"""
Publishes rendered passes to object storage (Cloudinary).

Keys are deterministic (see utils.pass_public_id) and uploads overwrite, so a
retried batch replaces earlier passes instead of duplicating them. When
storage credentials are absent the pass is returned inline as a data URI.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

import cloudinary
import cloudinary.uploader
from cloudinary import exceptions as cloudinary_errors

from config import DEFAULT_STORAGE_FOLDER, HTTP_MAX_ATTEMPTS, Settings
from errors import StorageError
from utils import backoff_seconds, safe_jpg_filename, to_data_uri

logger = logging.getLogger(__name__)

# Worth another attempt; auth and bad-request errors are not
TRANSIENT_ERRORS = (cloudinary_errors.GeneralError, cloudinary_errors.RateLimited, OSError)


@dataclass(frozen=True)
class CloudinaryConfig:
    cloud_name: str
    api_key: str
    api_secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["CloudinaryConfig"]:
        if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
            return None
        return cls(settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret)


class ArtifactPublisher:
    """Uploads pass images and returns a stable retrieval URL."""

    def __init__(
        self,
        config: Optional[CloudinaryConfig],
        folder: str = DEFAULT_STORAGE_FOLDER,
        local_dir: Optional[Path] = None,
        max_attempts: int = HTTP_MAX_ATTEMPTS,
    ):
        self.config = config
        self.folder = folder
        self.local_dir = Path(local_dir) if local_dir else None
        self.max_attempts = max(1, int(max_attempts))
        if config is not None:
            cloudinary.config(
                cloud_name=config.cloud_name,
                api_key=config.api_key,
                api_secret=config.api_secret,
                secure=True,
            )

    @property
    def configured(self) -> bool:
        return self.config is not None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ArtifactPublisher":
        config = CloudinaryConfig.from_settings(settings)
        if config is None:
            logger.warning("Cloudinary not configured; passes will be returned as inline data URIs")
        return cls(config, folder=settings.storage_folder, local_dir=settings.local_dir)

    def save_local(self, buffer: bytes, public_id: str) -> Path:
        self.local_dir.mkdir(parents=True, exist_ok=True)
        path = self.local_dir / safe_jpg_filename(public_id)
        path.write_bytes(buffer)
        logger.info("Saved pass locally: %s", path)
        return path

    def publish(self, buffer: bytes, public_id: str) -> str:
        """
        Persist a rendered pass under public_id.

        Returns:
            https URL from storage, or a data: URI when storage is not configured.
            Callers must not store a data: URI as a durable reference.

        Raises:
            StorageError: the upload failed after retries.
        """
        if not buffer:
            raise ValueError("Refusing to publish an empty pass buffer")
        if self.local_dir is not None:
            self.save_local(buffer, public_id)
        if self.config is None:
            return to_data_uri(buffer)
        return self._upload(buffer, public_id)

    def _upload(self, buffer: bytes, public_id: str) -> str:
        logger.info("Uploading pass to Cloudinary: %s/%s", self.folder, public_id)
        for attempt in range(self.max_attempts):
            try:
                result = cloudinary.uploader.upload(
                    BytesIO(buffer),
                    folder=self.folder,
                    public_id=public_id,
                    overwrite=True,
                    invalidate=True,
                    resource_type="image",
                    format="jpg",
                )
                break
            except TRANSIENT_ERRORS as e:
                if attempt + 1 >= self.max_attempts:
                    raise StorageError(f"Cloudinary upload failed for {public_id}: {e}") from e
                logger.warning("Cloudinary upload attempt %d failed for %s: %s", attempt + 1, public_id, e)
                time.sleep(backoff_seconds(attempt))
            except cloudinary_errors.Error as e:
                raise StorageError(f"Cloudinary rejected upload for {public_id}: {e}") from e

        url = result.get("secure_url") if isinstance(result, dict) else None
        if not url:
            raise StorageError(f"Cloudinary response missing secure_url for {public_id}")
        logger.info("Uploaded pass to Cloudinary: %s", url)
        return url

"""
Object storage for question images: S3 and an in-memory test double.
"""

from __future__ import annotations

import hashlib
import logging
import posixpath
import re
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from backend.config import Settings, get_settings
from shared.errors import ConfigError, FetchError, StoreWriteError
from upload_pipeline import fetch_utils

logger = logging.getLogger(__name__)

IMAGE_KEY_PREFIX = "questions"
IMAGE_CONTENT_TYPE = "image/jpeg"
DEFAULT_IMAGE_EXTENSION = "jpg"
_EXTENSION_PATTERN = re.compile(r"^[A-Za-z0-9]{1,5}$")


class ImageStorage(Protocol):
    """Defines the operations the upload pipeline needs from object storage."""

    def upload_image(self, source_url: str) -> str:
        ...

    def delete_image(self, key: str) -> None:
        ...

    def key_from_url(self, object_url: str) -> str:
        ...


def image_extension(url: str) -> str:
    """Returns the file extension of the URL path, or `jpg` if there is none."""
    filename = posixpath.basename(urlparse(url).path)
    extension = posixpath.splitext(filename)[1][1:]
    if _EXTENSION_PATTERN.match(extension):
        return extension.lower()
    return DEFAULT_IMAGE_EXTENSION


def generate_image_key(url: str) -> str:
    """
    Builds a fresh storage key for an image.

    The key hashes the source URL with the current time and a random token, so
    uploading the same URL twice never overwrites the earlier object.
    """
    timestamp = int(time.time() * 1000)
    token = uuid.uuid4().hex
    digest = hashlib.sha256(f"{url}-{timestamp}-{token}".encode("utf-8")).hexdigest()
    return f"{IMAGE_KEY_PREFIX}/{digest}.{image_extension(url)}"


def key_from_url(object_url: str) -> str:
    """Recovers the object key from an object URL (its path without the leading slash)."""
    return urlparse(object_url).path[1:]


@dataclass
class InMemoryImageStorage:
    """Test double for object storage."""

    base_url: str = "https://storage.example.test"
    fetcher: Callable[[str], bytes] = None
    stored_objects: dict = None
    deleted_keys: list = None

    def __post_init__(self):
        if self.fetcher is None:
            self.fetcher = fetch_utils.fetch_image_bytes
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.deleted_keys is None:
            self.deleted_keys = []

    def upload_image(self, source_url: str) -> str:
        if not source_url:
            raise FetchError("No image URL provided")
        body = self.fetcher(source_url)
        key = generate_image_key(source_url)
        self.stored_objects[key] = body
        return f"{self.base_url}/{key}"

    def delete_image(self, key: str) -> None:
        if not key:
            return
        self.stored_objects.pop(key, None)
        self.deleted_keys.append(key)

    def key_from_url(self, object_url: str) -> str:
        return key_from_url(object_url)


class S3ImageStorage:
    """
    S3 storage for question images.

    The boto3 client is built on first use, not at construction, because the
    settings may still be loading when this object is created.
    """

    def __init__(
        self,
        settings_provider: Callable[[], Settings] = get_settings,
        fetcher: Callable[[str], bytes] = fetch_utils.fetch_image_bytes,
    ):
        self._settings_provider = settings_provider
        self._fetcher = fetcher
        self._client = None
        self._bucket: Optional[str] = None
        self._region: Optional[str] = None
        self._lock = threading.Lock()

    def _get_client(self):
        with self._lock:
            if self._client is not None:
                return self._client

            settings = self._settings_provider()
            if not settings.s3_bucket_name:
                raise ConfigError(
                    "S3_BUCKET_NAME not configured. Make sure configuration is initialized."
                )
            if not settings.aws_region:
                raise ConfigError(
                    "AWS_REGION not configured. Make sure configuration is initialized."
                )
            self._client = boto3.client(
                "s3",
                region_name=settings.aws_region,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                config=Config(signature_version="s3v4"),
            )
            self._bucket = settings.s3_bucket_name
            self._region = settings.aws_region
            logger.info("S3 client initialized with bucket: %s", self._bucket)
            return self._client

    def object_url(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    def upload_image(self, source_url: str) -> str:
        if not source_url:
            raise FetchError("No image URL provided")
        client = self._get_client()
        body = self._fetcher(source_url)
        key = generate_image_key(source_url)

        logger.info("Uploading %s to S3 with key %s", source_url, key)
        try:
            client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentType=IMAGE_CONTENT_TYPE,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreWriteError(
                f"Failed to write {key} to bucket {self._bucket}: {exc}"
            ) from exc
        return self.object_url(key)

    def delete_image(self, key: str) -> None:
        if not key:
            return
        client = self._get_client()
        logger.info("Deleting image from S3: %s", key)
        try:
            client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StoreWriteError(
                f"Failed to delete {key} from bucket {self._bucket}: {exc}"
            ) from exc

    def key_from_url(self, object_url: str) -> str:
        return key_from_url(object_url)

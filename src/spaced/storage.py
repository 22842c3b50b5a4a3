"""Object storage gateway: upload files and mint presigned download URLs."""
from __future__ import annotations

import logging
import mimetypes
import posixpath
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the object store rejects an upload or a presign request."""


def object_key(prefix: str, name: str) -> str:
    """Join an optional key prefix with a file's base name."""

    if not prefix:
        return name
    return posixpath.normpath(posixpath.join(prefix, name))


class ObjectStore(ABC):
    """Abstract object store interface"""

    @abstractmethod
    def put(self, key: str, local_path: Path) -> int:
        """Store ``local_path`` under ``key``, replacing any existing object."""

    @abstractmethod
    def presigned_get(self, key: str, ttl: timedelta) -> str:
        """Return a URL that downloads ``key`` until ``ttl`` elapses."""


class S3ObjectStore(ObjectStore):
    """S3-compatible bucket (AWS, DigitalOcean Spaces, MinIO, R2)."""

    def __init__(
        self,
        bucket: str,
        endpoint: str,
        access_key: str,
        secret_key: str,
        *,
        region: str = "us-east-1",
        client: Optional[Any] = None,
    ):
        self.bucket = bucket
        self.endpoint_url = normalize_endpoint(endpoint)
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                config=Config(region_name=region, signature_version="s3v4"),
            )
        self._client = client

    def put(self, key: str, local_path: Path) -> int:
        content_type = mimetypes.guess_type(local_path.name)[0] or "application/octet-stream"
        try:
            with local_path.open("rb") as handle:
                size = local_path.stat().st_size
                self._client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=handle,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError, OSError) as exc:
            raise StorageError(f"upload of {local_path} to {self.bucket}/{key} failed: {exc}") from exc

        logger.debug("Uploaded %s to %s/%s (%s bytes)", local_path, self.bucket, key, size)
        return size

    def presigned_get(self, key: str, ttl: timedelta) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl.total_seconds()),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"presigning {self.bucket}/{key} failed: {exc}") from exc


def normalize_endpoint(endpoint: str) -> str:
    """Bare hostnames are reached over TLS."""

    if "://" in endpoint:
        return endpoint
    return f"https://{endpoint}"

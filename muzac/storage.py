"""
Storage abstraction for S3 and in-memory testing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from muzac.errors import UpstreamFailure

logger = logging.getLogger(__name__)


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def put_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        ...

    def list_keys(self, prefix: str) -> list[str]:
        ...

    def presign_get(
        self, path: str, expires_in: int = 3600, bucket: Optional[str] = None
    ) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket: str = "in-memory"
    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def put_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self.stored_objects[path] = (bytes(data), content_type)

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self.stored_objects if key.startswith(prefix))

    def presign_get(
        self, path: str, expires_in: int = 3600, bucket: Optional[str] = None
    ) -> str:
        return f"{self.base_url}/{bucket or self.bucket}/{path}?op=get&expires={expires_in}"

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored[0]

    def reset(self) -> None:
        self.stored_objects.clear()


@dataclass
class S3StorageClient:
    """
    S3 client bound to one bucket.

    Timeouts are bounded so a stuck upload fails inside the request instead
    of running into the platform's execution ceiling.
    """

    bucket: str
    region: Optional[str] = None
    timeout_seconds: float = 25.0

    def __post_init__(self):
        config = Config(
            signature_version="s3v4",
            connect_timeout=self.timeout_seconds,
            read_timeout=self.timeout_seconds,
            retries={"max_attempts": 1},
        )
        self._client = boto3.client("s3", region_name=self.region, config=config)

    def put_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("S3 put_object failed for %s", path)
            raise UpstreamFailure(str(exc)) from exc

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (BotoCoreError, ClientError) as exc:
            logger.exception("S3 list_objects_v2 failed for prefix %s", prefix)
            raise UpstreamFailure(str(exc)) from exc
        return keys

    def presign_get(
        self, path: str, expires_in: int = 3600, bucket: Optional[str] = None
    ) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": bucket or self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

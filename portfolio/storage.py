"""
Storage abstraction for hosted project images (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

import mimetypes
import posixpath
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config


@dataclass(frozen=True)
class StoredImage:
    """Where an uploaded image ended up."""

    url: str
    public_id: str


class ImageStorageClient(Protocol):
    """Defines the operations the API needs from the image store."""

    def upload_image(
        self, data: bytes, filename: str, content_type: str
    ) -> StoredImage:
        ...

    def delete_image(self, public_id: str) -> None:
        ...


def build_object_key(prefix: str, filename: str, content_type: str) -> str:
    ext = posixpath.splitext(filename or "")[1].lower()
    if not ext:
        ext = mimetypes.guess_extension(content_type) or ""
    key = f"{uuid.uuid4().hex}{ext}"
    prefix = (prefix or "").strip("/")
    return f"{prefix}/{key}" if prefix else key


@dataclass
class InMemoryImageStorage:
    """Test double for image storage interactions."""

    base_url: str = "https://example.test/images"
    prefix: str = "portfolio"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_image(
        self, data: bytes, filename: str, content_type: str
    ) -> StoredImage:
        key = build_object_key(self.prefix, filename, content_type)
        self.stored_objects[key] = (data, content_type)
        return StoredImage(url=f"{self.base_url}/{key}", public_id=key)

    def delete_image(self, public_id: str) -> None:
        if public_id not in self.stored_objects:
            raise FileNotFoundError(public_id)
        del self.stored_objects[public_id]

    def reset(self) -> None:
        self.stored_objects.clear()


@dataclass
class S3ImageStorage:
    """
    Image store backed by any S3-compatible bucket with public reads.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    prefix: str = "portfolio"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload_image(
        self, data: bytes, filename: str, content_type: str
    ) -> StoredImage:
        key = build_object_key(self.prefix, filename, content_type)
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        return StoredImage(url=self.public_url(key), public_id=key)

    def delete_image(self, public_id: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=public_id)

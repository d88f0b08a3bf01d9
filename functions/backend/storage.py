"""
Storage abstraction for attachments: Firebase Storage, S3-compatible storage
and an in-memory test double.

Uploads larger than the chunk size go through each backend's chunked path
(resumable uploads for Firebase Storage, multipart for S3) and report
progress through `progress_callback(bytes_transferred, total_bytes)`.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional, Protocol

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import ClientError
from firebase_admin import storage as firebase_storage

from shared.constants import UPLOAD_CHUNK_SIZE_BYTES

ProgressCallback = Callable[[int, int], None]


class StorageClient(Protocol):
    """Defines the operations the services need from object storage."""

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        """Stores `data` at `path` and returns its download URL."""
        ...

    def get_bytes(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def public_url(self, path: str) -> str:
        ...

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def presign_put(self, path: str, expires_in: int = 3600) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    chunk_size: int = UPLOAD_CHUNK_SIZE_BYTES
    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        total = len(data)
        buffer = bytearray()
        for start in range(0, total, self.chunk_size):
            buffer.extend(data[start : start + self.chunk_size])
            if progress_callback:
                progress_callback(len(buffer), total)
        self.stored_objects[path] = bytes(buffer)
        self.content_types[path] = content_type
        return self.public_url(path)

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored

    def delete(self, path: str) -> None:
        self.stored_objects.pop(path, None)
        self.content_types.pop(path, None)

    def exists(self, path: str) -> bool:
        return path in self.stored_objects

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def presign_put(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=put&expires={expires_in}"


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, Tencent COS, MinIO).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    chunk_size: int = UPLOAD_CHUNK_SIZE_BYTES

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )
        self._transfer_config = TransferConfig(
            multipart_threshold=self.chunk_size,
            multipart_chunksize=max(self.chunk_size, 5 * 1024 * 1024),
        )

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        total = len(data)
        transferred = 0

        def _on_progress(bytes_amount: int) -> None:
            nonlocal transferred
            transferred += bytes_amount
            if progress_callback:
                progress_callback(transferred, total)

        self._client.upload_fileobj(
            io.BytesIO(data),
            self.bucket,
            path,
            ExtraArgs={"ContentType": content_type},
            Callback=_on_progress,
            Config=self._transfer_config,
        )
        return self.public_url(path)

    def get_bytes(self, path: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=path)
        return response["Body"].read()

    def delete(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                return False
            raise
        return True

    def public_url(self, path: str) -> str:
        return self.presign_get(path, expires_in=7 * 24 * 3600)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    def presign_put(self, path: str, expires_in: int = 3600) -> str:
        # We include a dummy content type so uploads work in browsers by default.
        return self._client.generate_presigned_url(
            ClientMethod="put_object",
            Params={
                "Bucket": self.bucket,
                "Key": path,
                "ContentType": "application/octet-stream",
            },
            ExpiresIn=expires_in,
        )


# Resumable upload chunks must be a multiple of 256 KiB.
_GCS_CHUNK_MULTIPLE = 256 * 1024


@dataclass
class FirebaseStorageClient:
    """Firebase Storage (Cloud Storage bucket) via firebase_admin."""

    bucket_name: Optional[str] = None
    chunk_size: int = UPLOAD_CHUNK_SIZE_BYTES

    def __post_init__(self):
        self._bucket = firebase_storage.bucket(self.bucket_name)

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        total = len(data)
        blob = self._bucket.blob(path)
        if total > self.chunk_size:
            chunk = max(
                _GCS_CHUNK_MULTIPLE,
                (self.chunk_size // _GCS_CHUNK_MULTIPLE) * _GCS_CHUNK_MULTIPLE,
            )
            blob.chunk_size = chunk
        blob.upload_from_string(data, content_type=content_type)
        if progress_callback:
            progress_callback(total, total)
        return self.public_url(path)

    def get_bytes(self, path: str) -> bytes:
        blob = self._bucket.blob(path)
        if not blob.exists():
            raise FileNotFoundError(path)
        return blob.download_as_bytes()

    def delete(self, path: str) -> None:
        self._bucket.blob(path).delete()

    def exists(self, path: str) -> bool:
        return self._bucket.blob(path).exists()

    def public_url(self, path: str) -> str:
        return self.presign_get(path, expires_in=7 * 24 * 3600)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._bucket.blob(path).generate_signed_url(
            expiration=timedelta(seconds=expires_in), method="GET", version="v4"
        )

    def presign_put(self, path: str, expires_in: int = 3600) -> str:
        return self._bucket.blob(path).generate_signed_url(
            expiration=timedelta(seconds=expires_in),
            method="PUT",
            version="v4",
            content_type="application/octet-stream",
        )

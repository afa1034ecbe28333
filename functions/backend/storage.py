"""
Blob storage abstraction for uploaded sermon audio and event images.

Uploads are chunked: `upload_resumable` yields `(bytes_transferred,
total_bytes)` after each chunk lands so callers can report progress.
"""

from __future__ import annotations

import io
import uuid
from dataclasses import dataclass, field
from typing import Generator, Optional, Protocol
from urllib.parse import quote

import boto3
import firebase_admin
from botocore.config import Config
from firebase_admin import storage as firebase_storage
from google.auth.transport.requests import AuthorizedSession
from google.resumable_media.requests import ResumableUpload

from shared.firebase_constants import DOWNLOAD_TOKENS_METADATA_KEY

PRESIGN_MAX_EXPIRES = 7 * 24 * 3600

_GCS_RESUMABLE_URL = (
    "https://storage.googleapis.com/upload/storage/v1/b/{bucket}/o"
    "?uploadType=resumable"
)
_FIREBASE_DOWNLOAD_URL = (
    "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}"
    "?alt=media&token={token}"
)


class BlobStore(Protocol):
    """Defines the operations the upload workflow needs from blob storage."""

    def upload_resumable(
        self, path: str, data: bytes, content_type: str, chunk_size: int
    ) -> Generator[tuple[int, int], None, None]:
        ...

    def download_url(self, path: str) -> str:
        ...


@dataclass
class InMemoryBlobStore:
    """
    Test double for storage interactions.

    Set `fail_after_chunks` to simulate a transport failure once that many
    chunks have been transferred.
    """

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)
    fail_after_chunks: Optional[int] = None
    failure_reason: str = "storage/retry-limit-exceeded"

    def upload_resumable(
        self, path: str, data: bytes, content_type: str, chunk_size: int
    ) -> Generator[tuple[int, int], None, None]:
        total = len(data)
        buffer = bytearray()
        chunks = 0
        while True:
            if self.fail_after_chunks is not None and chunks >= self.fail_after_chunks:
                raise ConnectionError(self.failure_reason)
            chunk = data[len(buffer) : len(buffer) + chunk_size]
            buffer.extend(chunk)
            chunks += 1
            yield len(buffer), total
            if len(buffer) >= total:
                break
        self.stored_objects[path] = bytes(buffer)
        self.content_types[path] = content_type

    def download_url(self, path: str) -> str:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        return f"{self.base_url}/{quote(path)}"

    def reset(self) -> None:
        self.stored_objects.clear()
        self.content_types.clear()


@dataclass
class S3BlobStore:
    """
    S3-compatible blob store (AWS S3, Tencent COS, MinIO).

    Large files go through multipart upload, one part per chunk; S3 requires
    every part except the last to be at least 5 MiB.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

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

    def upload_resumable(
        self, path: str, data: bytes, content_type: str, chunk_size: int
    ) -> Generator[tuple[int, int], None, None]:
        total = len(data)
        if total <= chunk_size:
            self._client.put_object(
                Bucket=self.bucket, Key=path, Body=data, ContentType=content_type
            )
            yield total, total
            return

        upload = self._client.create_multipart_upload(
            Bucket=self.bucket, Key=path, ContentType=content_type
        )
        upload_id = upload["UploadId"]
        parts = []
        try:
            for part_number, offset in enumerate(range(0, total, chunk_size), start=1):
                chunk = data[offset : offset + chunk_size]
                response = self._client.upload_part(
                    Bucket=self.bucket,
                    Key=path,
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=chunk,
                )
                parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                yield offset + len(chunk), total
            self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=path,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            self._client.abort_multipart_upload(
                Bucket=self.bucket, Key=path, UploadId=upload_id
            )
            raise

    def download_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(path)}"
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=PRESIGN_MAX_EXPIRES,
        )


class FirebaseBlobStore:
    """
    Cloud Storage for Firebase, using the GCS resumable upload protocol.

    Each object gets a download token in its metadata so the returned URL is
    publicly retrievable, as the Firebase web SDK does.
    """

    def __init__(
        self,
        app: Optional[firebase_admin.App] = None,
        bucket_name: Optional[str] = None,
    ):
        app = app or firebase_admin.get_app()
        self._bucket = firebase_storage.bucket(bucket_name, app=app)
        self._transport = AuthorizedSession(app.credential.get_credential())

    def upload_resumable(
        self, path: str, data: bytes, content_type: str, chunk_size: int
    ) -> Generator[tuple[int, int], None, None]:
        upload = ResumableUpload(
            _GCS_RESUMABLE_URL.format(bucket=self._bucket.name), chunk_size
        )
        metadata = {
            "name": path,
            "metadata": {DOWNLOAD_TOKENS_METADATA_KEY: uuid.uuid4().hex},
        }
        upload.initiate(
            self._transport,
            io.BytesIO(data),
            metadata,
            content_type,
            total_bytes=len(data),
        )
        while not upload.finished:
            upload.transmit_next_chunk(self._transport)
            yield upload.bytes_uploaded, upload.total_bytes

    def download_url(self, path: str) -> str:
        blob = self._bucket.get_blob(path)
        if blob is None:
            raise FileNotFoundError(path)
        tokens = (blob.metadata or {}).get(DOWNLOAD_TOKENS_METADATA_KEY, "")
        token = tokens.split(",")[0]
        return _FIREBASE_DOWNLOAD_URL.format(
            bucket=self._bucket.name, path=quote(path, safe=""), token=token
        )

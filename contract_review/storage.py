"""Blob storage for uploaded contract files."""
import hashlib
import hmac
import logging
import os
import re
import time
import uuid
from typing import Optional
from urllib.parse import quote, urlencode

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from contract_review.config import Settings
from contract_review.errors import NotFound

logger = logging.getLogger(__name__)


def build_object_path(organization_id: str, filename: str) -> str:
    """Return a tenant-scoped, collision-free path for an upload."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    extension = re.sub(r"[^a-z0-9]", "", extension) or "bin"
    return f"{organization_id}/{uuid.uuid4()}.{extension}"


class BlobStore:
    """Interface shared by the storage backends."""

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        raise NotImplementedError

    def download(self, path: str) -> bytes:
        raise NotImplementedError

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Stores blobs on local disk and signs read URLs with HMAC."""

    def __init__(self, root_dir: str, secret: str, url_prefix: str = "/api/v1/files"):
        """Initialize local blob store.

        Args:
            root_dir: Directory to store uploaded files
            secret: Key used to sign download URLs
            url_prefix: Route that serves signed downloads
        """
        self.root_dir = os.path.abspath(root_dir)
        self.secret = secret.encode("utf-8")
        self.url_prefix = url_prefix.rstrip("/")
        os.makedirs(self.root_dir, exist_ok=True)

    def _resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root_dir, path))
        # Reject paths escaping the storage root
        if os.path.commonpath([self.root_dir, full_path]) != self.root_dir:
            raise NotFound(f"Invalid blob path: {path}")
        return full_path

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        full_path = self._resolve(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(data)

    def download(self, path: str) -> bytes:
        full_path = self._resolve(path)
        if not os.path.isfile(full_path):
            raise NotFound(f"Blob not found: {path}")
        with open(full_path, "rb") as f:
            return f.read()

    def delete(self, path: str) -> None:
        full_path = self._resolve(path)
        if os.path.isfile(full_path):
            os.remove(full_path)

    def _signature(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._signature(path, expires)})
        return f"{self.url_prefix}/{quote(path)}?{query}"

    def verify_signature(self, path: str, expires: int, signature: str) -> bool:
        """Check a signed URL's signature and expiry."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(path, expires), signature)


class S3BlobStore(BlobStore):
    """S3-compatible object storage (AWS S3, Cloudflare R2, MinIO)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "auto",
        client=None,
    ):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(
                signature_version="s3v4",
                connect_timeout=5,
                read_timeout=30,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
            region_name=region,
        )

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.client.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=content_type)

    def download(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404", "NotFound"):
                raise NotFound(f"Blob not found: {path}") from e
            raise
        return response["Body"].read()

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=ttl_seconds,
        )

    def delete(self, path: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=path)


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the blob store selected by STORAGE_BACKEND."""
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        logger.info(f"Using S3 blob store (bucket={settings.s3_bucket})")
        return S3BlobStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            region=settings.s3_region,
        )

    logger.info(f"Using local blob store at {settings.upload_dir}")
    return LocalBlobStore(settings.upload_dir, settings.signed_url_secret)

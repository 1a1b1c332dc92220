"""
File Storage
============

Buckets used by the application:

    sources              - notebook source files and legal case documents (under legal/)
    audio                - generated audio overviews
    generated-documents  - DOCX/PDF exports of generated legal documents

Two backends share one interface:

- `LocalStorage` keeps files under STORAGE_ROOT/<bucket>/<path>; signed URLs
  point at `GET /api/v1/files/{token}` with a short-lived JWT.
- `S3Storage` maps each bucket to `<S3_BUCKET_PREFIX><bucket>` and hands out
  presigned GET URLs.
"""

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import boto3
import jwt
from botocore.exceptions import ClientError

from .config import Settings, get_settings
from .errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

SOURCES_BUCKET = "sources"
AUDIO_BUCKET = "audio"
GENERATED_DOCUMENTS_BUCKET = "generated-documents"

BUCKETS = (SOURCES_BUCKET, AUDIO_BUCKET, GENERATED_DOCUMENTS_BUCKET)

FILE_TOKEN_TYPE = "file"
PUBLIC_URL_TTL = 365 * 24 * 3600


class Storage:
    """Bucket/path object storage"""

    def put(self, bucket: str, path: str, data: bytes,
            content_type: str = "application/octet-stream", upsert: bool = False) -> str:
        raise NotImplementedError

    def get(self, bucket: str, path: str) -> bytes:
        raise NotImplementedError

    def remove(self, bucket: str, paths: Iterable[str]) -> List[str]:
        """Remove paths; returns those actually removed"""
        raise NotImplementedError

    def exists(self, bucket: str, path: str) -> bool:
        raise NotImplementedError

    def public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError

    def signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> Tuple[str, datetime]:
        """Time-limited download URL and its expiry"""
        raise NotImplementedError


# =============================================================================
# LOCAL FILESYSTEM
# =============================================================================

def create_file_token(bucket: str, path: str, expires_in: int, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
    claims = {"bucket": bucket, "path": path, "type": FILE_TOKEN_TYPE, "exp": expires_at}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm="HS256")


def decode_file_token(token: str, settings: Optional[Settings] = None) -> Tuple[str, str]:
    """Return (bucket, path) named by a signed file token"""
    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid file token: {e}")
        raise NotFoundError("File not found")
    if claims.get("type") != FILE_TOKEN_TYPE:
        raise NotFoundError("File not found")
    return claims["bucket"], claims["path"]


class LocalStorage(Storage):

    def __init__(self, root: str, base_url: str, settings: Optional[Settings] = None):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.settings = settings

    def _resolve(self, bucket: str, path: str) -> Path:
        if bucket not in BUCKETS:
            raise StorageError(f"Unknown bucket: {bucket}")
        bucket_root = (self.root / bucket).resolve()
        target = (bucket_root / path.lstrip("/")).resolve()
        if bucket_root != target and bucket_root not in target.parents:
            raise StorageError("Invalid storage path", details=path)
        return target

    def put(self, bucket, path, data, content_type="application/octet-stream", upsert=False):
        target = self._resolve(bucket, path)
        if target.exists() and not upsert:
            raise StorageError("The resource already exists", details=f"{bucket}/{path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug(f"Stored {len(data)} bytes at {bucket}/{path}")
        return path

    def get(self, bucket, path):
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise NotFoundError("File not found")
        return target.read_bytes()

    def remove(self, bucket, paths):
        removed = []
        for path in paths:
            target = self._resolve(bucket, path)
            if target.is_file():
                os.remove(target)
                removed.append(path)
        return removed

    def exists(self, bucket, path):
        return self._resolve(bucket, path).is_file()

    def public_url(self, bucket, path):
        # No anonymous route locally; a long-lived token stands in
        url, _ = self.signed_url(bucket, path, expires_in=PUBLIC_URL_TTL)
        return url

    def signed_url(self, bucket, path, expires_in=3600):
        self._resolve(bucket, path)
        token = create_file_token(bucket, path, expires_in, self.settings)
        expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
        return f"{self.base_url}/api/v1/files/{token}", expires_at


# =============================================================================
# S3
# =============================================================================

class S3Storage(Storage):

    def __init__(self, bucket_prefix: str, region: str, endpoint_url: Optional[str] = None):
        self.bucket_prefix = bucket_prefix
        self.region = region
        self._s3_client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    def _bucket(self, bucket: str) -> str:
        return f"{self.bucket_prefix}{bucket}"

    def put(self, bucket, path, data, content_type="application/octet-stream", upsert=False):
        if not upsert and self.exists(bucket, path):
            raise StorageError("The resource already exists", details=f"{bucket}/{path}")
        try:
            self._s3_client.put_object(Bucket=self._bucket(bucket), Key=path, Body=data, ContentType=content_type)
        except ClientError as e:
            raise StorageError("Upload failed", details=str(e))
        return path

    def get(self, bucket, path):
        try:
            response = self._s3_client.get_object(Bucket=self._bucket(bucket), Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise NotFoundError("File not found")
            raise StorageError("Download failed", details=str(e))
        return response["Body"].read()

    def remove(self, bucket, paths):
        paths = list(paths)
        if not paths:
            return []
        try:
            response = self._s3_client.delete_objects(
                Bucket=self._bucket(bucket),
                Delete={"Objects": [{"Key": p} for p in paths], "Quiet": False},
            )
        except ClientError as e:
            raise StorageError("Remove failed", details=str(e))
        return [item["Key"] for item in response.get("Deleted", [])]

    def exists(self, bucket, path):
        try:
            self._s3_client.head_object(Bucket=self._bucket(bucket), Key=path)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "404":
                return False
            raise

    def public_url(self, bucket, path):
        return f"https://{self._bucket(bucket)}.s3.{self.region}.amazonaws.com/{path}"

    def signed_url(self, bucket, path, expires_in=3600):
        try:
            url = self._s3_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self._bucket(bucket), "Key": path},
                ExpiresIn=expires_in,
            )
        except ClientError as e:
            raise StorageError("Failed to sign URL", details=str(e))
        return url, datetime.utcnow() + timedelta(seconds=expires_in)


_storage: Optional[Storage] = None


def get_storage() -> Storage:
    global _storage
    if _storage is None:
        settings = get_settings()
        if settings.storage_backend == "s3":
            _storage = S3Storage(settings.s3_bucket_prefix, settings.s3_region, settings.s3_endpoint or None)
        else:
            _storage = LocalStorage(settings.storage_root, settings.public_api_url)
        logger.info(f"Storage backend: {settings.storage_backend}")
    return _storage


def reset_storage() -> None:
    global _storage
    _storage = None


def group_by_bucket(files: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for bucket, path in files:
        if path:
            grouped.setdefault(bucket, []).append(path)
    return grouped

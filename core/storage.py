# core/storage.py
import abc
import hashlib
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from boto3 import client
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings

logger = logging.getLogger(__name__)


# ========================================
# ❗ Storage errors
# ========================================
class ObjectStorageError(Exception):
    pass


class ObjectNotFound(ObjectStorageError):
    pass


class VersionConflict(ObjectStorageError):
    """The stored object changed since the caller read it."""


@dataclass
class ObjectInfo:
    key: str
    size: int
    last_modified: datetime
    version: str


def content_version(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class ObjectStorageClient(metaclass=abc.ABCMeta):
    """The handful of blob operations the workbook and log layers need."""

    @abc.abstractmethod
    def read_bytes(self, bucket: str, key: str) -> bytes:
        pass

    @abc.abstractmethod
    def write(
        self,
        bucket: str,
        key: str,
        content: Union[str, bytes],
        content_type: Optional[str] = None,
        expected_version: Optional[str] = None,
    ) -> str:
        """Upsert. Returns the new version; `expected_version` makes it a compare-and-swap."""
        pass

    @abc.abstractmethod
    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        pass

    @abc.abstractmethod
    def list_objects(self, bucket: str, prefix: str) -> list[str]:
        pass

    @abc.abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        pass

    @abc.abstractmethod
    def public_url(self, bucket: str, key: str) -> str:
        pass

    def update(
        self,
        bucket: str,
        key: str,
        content: Union[str, bytes],
        content_type: Optional[str] = None,
        expected_version: Optional[str] = None,
    ) -> str:
        """Overwrite an object that must already exist."""
        self.head_object(bucket, key)
        return self.write(bucket, key, content, content_type=content_type, expected_version=expected_version)

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self.head_object(bucket, key)
            return True
        except ObjectNotFound:
            return False


# ========================================
# 💾 Local filesystem backend
# ========================================
class LocalObjectStorage(ObjectStorageClient):
    """One directory per bucket under `root`. Used in development and tests."""

    def __init__(self, root: Union[str, Path], public_base_url: Optional[str] = None) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._lock = threading.Lock()

    def _path(self, bucket: str, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise ObjectStorageError(f"invalid object key: {key!r}")
        return self.root.joinpath(bucket, *parts)

    def read_bytes(self, bucket: str, key: str) -> bytes:
        path = self._path(bucket, key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFound(f"{bucket}/{key}")
        except OSError as e:
            logger.warning(f"⚠️ object_storage.read_failed bucket={bucket} key={key} error={e}")
            raise ObjectStorageError("read failed") from e

    def write(self, bucket, key, content, content_type=None, expected_version=None) -> str:
        data = content.encode("utf-8") if isinstance(content, str) else content
        path = self._path(bucket, key)
        with self._lock:
            if expected_version is not None:
                try:
                    current = content_version(path.read_bytes())
                except FileNotFoundError:
                    current = None
                if current != expected_version:
                    raise VersionConflict(f"{bucket}/{key}")
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp = path.with_name(f".{path.name}.{threading.get_ident()}.tmp")
                tmp.write_bytes(data)
                os.replace(tmp, path)
            except OSError as e:
                logger.warning(f"⚠️ object_storage.write_failed bucket={bucket} key={key} error={e}")
                raise ObjectStorageError("write failed") from e
        return content_version(data)

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        path = self._path(bucket, key)
        try:
            stat = path.stat()
            data = path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFound(f"{bucket}/{key}")
        return ObjectInfo(
            key=key,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            version=content_version(data),
        )

    def list_objects(self, bucket: str, prefix: str) -> list[str]:
        base = self.root / bucket
        if not base.exists():
            return []
        keys = []
        for path in base.rglob("*"):
            if path.is_file() and not path.name.endswith(".tmp"):
                key = path.relative_to(base).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def delete(self, bucket: str, key: str) -> None:
        try:
            self._path(bucket, key).unlink()
        except FileNotFoundError:
            raise ObjectNotFound(f"{bucket}/{key}")

    def public_url(self, bucket: str, key: str) -> str:
        if not self.public_base_url:
            raise ObjectStorageError("public URLs are not configured for local storage")
        self.head_object(bucket, key)
        return f"{self.public_base_url}/{bucket}/{key}"


# ========================================
# ☁️ S3-compatible backend (boto3)
# ========================================
class S3ObjectStorage(ObjectStorageClient):
    def __init__(self, aws_client, public_base_url: Optional[str] = None) -> None:
        self.aws_client = aws_client
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    @staticmethod
    def _is_missing(e: ClientError) -> bool:
        code = e.response.get("Error", {}).get("Code")
        return code in ("NoSuchKey", "404", "NotFound")

    def read_bytes(self, bucket: str, key: str) -> bytes:
        try:
            s3_response = self.aws_client.get_object(Bucket=bucket, Key=key)
            return s3_response["Body"].read()
        except ClientError as e:
            if self._is_missing(e):
                raise ObjectNotFound(f"{bucket}/{key}")
            logger.warning(f"⚠️ object_storage.read_failed bucket={bucket} key={key} error={e}")
            raise ObjectStorageError("read failed") from e
        except BotoCoreError as e:
            logger.warning(f"⚠️ object_storage.read_failed bucket={bucket} key={key} error={e}")
            raise ObjectStorageError("read failed") from e

    def write(self, bucket, key, content, content_type=None, expected_version=None) -> str:
        data = content.encode("utf-8") if isinstance(content, str) else content
        params = {"Bucket": bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        if expected_version is not None:
            params["IfMatch"] = f'"{expected_version}"'
        try:
            s3_response = self.aws_client.put_object(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("PreconditionFailed", "412", "NoSuchKey"):
                raise VersionConflict(f"{bucket}/{key}") from e
            logger.warning(f"⚠️ object_storage.write_failed bucket={bucket} key={key} error={e}")
            raise ObjectStorageError("write failed") from e
        except BotoCoreError as e:
            logger.warning(f"⚠️ object_storage.write_failed bucket={bucket} key={key} error={e}")
            raise ObjectStorageError("write failed") from e
        return str(s3_response.get("ETag", "")).strip('"')

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        try:
            s3_response = self.aws_client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise ObjectNotFound(f"{bucket}/{key}")
            raise ObjectStorageError("head failed") from e
        return ObjectInfo(
            key=key,
            size=int(s3_response.get("ContentLength", 0)),
            last_modified=s3_response.get("LastModified"),
            version=str(s3_response.get("ETag", "")).strip('"'),
        )

    def list_objects(self, bucket: str, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self.aws_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"⚠️ object_storage.list_objects_failed bucket={bucket} prefix={prefix} error={e}")
            raise ObjectStorageError("list failed") from e
        return keys

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.aws_client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"⚠️ object_storage.delete_failed bucket={bucket} key={key} error={e}")
            raise ObjectStorageError("delete failed") from e

    def public_url(self, bucket: str, key: str) -> str:
        self.head_object(bucket, key)
        if self.public_base_url:
            return f"{self.public_base_url}/{bucket}/{key}"
        return self.aws_client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=3600,
            HttpMethod="GET",
        )


# ========================================
# 🧩 Dependency
# ========================================
@lru_cache
def get_object_storage() -> ObjectStorageClient:
    if settings.STORAGE_BACKEND == "s3":
        logger.info(f"☁️ Using S3 object storage at {settings.OBJECT_STORAGE_ENDPOINT or 'AWS'}")
        return S3ObjectStorage(
            client(
                "s3",
                endpoint_url=settings.OBJECT_STORAGE_ENDPOINT,
                aws_access_key_id=settings.OBJECT_STORAGE_ACCESS_KEY_ID,
                aws_secret_access_key=settings.OBJECT_STORAGE_SECRET_ACCESS_KEY,
                config=Config(signature_version="s3v4"),
                region_name=settings.OBJECT_STORAGE_REGION,
            ),
            public_base_url=settings.OBJECT_STORAGE_PUBLIC_URL,
        )
    logger.info(f"💾 Using local object storage under {settings.STORAGE_ROOT}")
    return LocalObjectStorage(settings.STORAGE_ROOT, public_base_url=settings.OBJECT_STORAGE_PUBLIC_URL)

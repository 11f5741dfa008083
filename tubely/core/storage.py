from __future__ import annotations

import io
import shutil
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO, Iterable
from urllib.parse import quote, urlparse

import boto3
import jwt
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import Forbidden, StoreFailure

REFERENCE_SCHEME = "s3"
CHUNK_SIZE = 1024 * 1024


@dataclass(slots=True, frozen=True)
class StorageReference:
    """Location of a stored object, persisted on records as ``s3://bucket/key``."""

    bucket: str
    key: str

    def to_uri(self) -> str:
        return f"{REFERENCE_SCHEME}://{self.bucket}/{self.key}"

    @classmethod
    def parse(cls, value: str) -> "StorageReference":
        parsed = urlparse(value)
        if parsed.scheme != REFERENCE_SCHEME:
            raise ValueError(f"Unsupported storage reference: {value}")
        bucket = parsed.netloc
        key = parsed.path.lstrip("/")
        if not bucket or not key:
            raise ValueError(f"Storage reference must include bucket and key: {value}")
        return cls(bucket=bucket, key=key)


class ObjectStore(ABC):
    @abstractmethod
    def put(self, bucket: str, key: str, stream: BinaryIO, *, content_type: str | None) -> None: ...

    @abstractmethod
    def open(self, bucket: str, key: str) -> BinaryIO: ...

    @abstractmethod
    def exists(self, bucket: str, key: str) -> bool: ...

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None: ...

    @abstractmethod
    def list(self, bucket: str, prefix: str = "") -> Iterable[str]: ...

    @abstractmethod
    def presign(self, bucket: str, key: str, *, expires_s: int) -> str: ...


class SignedURLStore(ObjectStore):
    """Base for stores without native presigning.

    URLs point at ``/v1/objects/{bucket}/{key}`` and carry a short-lived JWT
    scoped to exactly one object.
    """

    def __init__(self, settings: Settings):
        self._secret = settings.secrets.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._base_url = settings.public_base_url.rstrip("/")

    def presign(self, bucket: str, key: str, *, expires_s: int) -> str:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_s)
        token = jwt.encode(
            {"typ": "object", "bucket": bucket, "key": key, "exp": expires_at},
            self._secret,
            algorithm=self._algorithm,
        )
        return f"{self._base_url}/v1/objects/{quote(bucket)}/{quote(key)}?token={token}"

    def verify(self, bucket: str, key: str, token: str) -> None:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise Forbidden("url_expired") from exc
        except jwt.PyJWTError as exc:
            raise Forbidden("invalid_signature", detail=str(exc)) from exc
        if claims.get("typ") != "object" or claims.get("bucket") != bucket or claims.get("key") != key:
            raise Forbidden("invalid_signature")


class LocalObjectStore(SignedURLStore):
    """Filesystem-backed object store suitable for development."""

    def __init__(self, settings: Settings, base_path: Path):
        super().__init__(settings)
        self.base_path = base_path.resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, bucket: str, key: str) -> Path:
        root = (self.base_path / bucket).resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise ValueError(f"Key escapes bucket: {bucket}/{key}")
        return path

    def put(self, bucket: str, key: str, stream: BinaryIO, *, content_type: str | None) -> None:
        path = self._resolve(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as handle:
                shutil.copyfileobj(stream, handle, CHUNK_SIZE)
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise StoreFailure(detail=str(exc)) from exc

    def open(self, bucket: str, key: str) -> BinaryIO:
        path = self._resolve(bucket, key)
        if not path.is_file():
            raise FileNotFoundError(f"{bucket}/{key}")
        return path.open("rb")

    def exists(self, bucket: str, key: str) -> bool:
        return self._resolve(bucket, key).is_file()

    def delete(self, bucket: str, key: str) -> None:
        self._resolve(bucket, key).unlink(missing_ok=True)

    def list(self, bucket: str, prefix: str = "") -> Iterable[str]:
        root = self.base_path / bucket
        if not root.exists():
            return []
        keys = (p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())
        return sorted(key for key in keys if key.startswith(prefix))


class MemoryObjectStore(SignedURLStore):
    """Process-local store; each instance owns its own objects."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self._objects: dict[tuple[str, str], tuple[bytes, str | None]] = {}
        self._lock = threading.Lock()

    def put(self, bucket: str, key: str, stream: BinaryIO, *, content_type: str | None) -> None:
        buffer = io.BytesIO()
        try:
            shutil.copyfileobj(stream, buffer, CHUNK_SIZE)
        except OSError as exc:
            raise StoreFailure(detail=str(exc)) from exc
        with self._lock:
            self._objects[(bucket, key)] = (buffer.getvalue(), content_type)

    def open(self, bucket: str, key: str) -> BinaryIO:
        with self._lock:
            entry = self._objects.get((bucket, key))
        if entry is None:
            raise FileNotFoundError(f"{bucket}/{key}")
        return io.BytesIO(entry[0])

    def content_type(self, bucket: str, key: str) -> str | None:
        with self._lock:
            entry = self._objects.get((bucket, key))
        return entry[1] if entry else None

    def exists(self, bucket: str, key: str) -> bool:
        with self._lock:
            return (bucket, key) in self._objects

    def delete(self, bucket: str, key: str) -> None:
        with self._lock:
            self._objects.pop((bucket, key), None)

    def list(self, bucket: str, prefix: str = "") -> Iterable[str]:
        with self._lock:
            return sorted(k for b, k in self._objects if b == bucket and k.startswith(prefix))


class S3Storage(ObjectStore):
    """S3 (or S3-compatible) object store backed by boto3."""

    def __init__(self, settings: Settings, client: object | None = None):
        self.client = client or boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            config=BotoConfig(signature_version="s3v4", retries={"max_attempts": 1, "mode": "standard"}),
        )

    def put(self, bucket: str, key: str, stream: BinaryIO, *, content_type: str | None) -> None:
        extra_args: dict[str, str] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        try:
            self.client.upload_fileobj(stream, bucket, key, ExtraArgs=extra_args)
        except (BotoCoreError, ClientError) as exc:
            raise StoreFailure(detail=str(exc)) from exc

    def open(self, bucket: str, key: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise FileNotFoundError(f"{bucket}/{key}") from exc
            raise StoreFailure(detail=str(exc)) from exc
        except BotoCoreError as exc:
            raise StoreFailure(detail=str(exc)) from exc
        return response["Body"]

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self.client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise StoreFailure(detail=str(exc)) from exc
        return True

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StoreFailure(detail=str(exc)) from exc

    def list(self, bucket: str, prefix: str = "") -> Iterable[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        keys: list[str] = []
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except (BotoCoreError, ClientError) as exc:
            raise StoreFailure(detail=str(exc)) from exc
        return keys

    def presign(self, bucket: str, key: str, *, expires_s: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_s,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreFailure(detail=str(exc)) from exc


def _is_missing(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code", ""))
    return code in {"404", "NoSuchKey", "NotFound"}


def get_storage(settings: Settings) -> ObjectStore:
    if settings.storage_backend == "local":
        return LocalObjectStore(settings, base_path=Path(settings.local_storage_base_path))
    if settings.storage_backend == "memory":
        return MemoryObjectStore(settings)
    if settings.storage_backend == "s3":
        return S3Storage(settings)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "ObjectStore",
    "SignedURLStore",
    "LocalObjectStore",
    "MemoryObjectStore",
    "S3Storage",
    "StorageReference",
    "get_storage",
]

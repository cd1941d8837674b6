"""In-memory storage of buckets and the objects they hold."""

from __future__ import annotations

import base64
import hashlib
import threading
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable


class S3Error(Exception):
    """Base class for storage errors."""

    default_message = "storage error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class BucketNotFoundError(S3Error):
    default_message = "bucket not found"


class BucketNotEmptyError(S3Error):
    default_message = "bucket not empty"


class BucketAlreadyExistsError(S3Error):
    default_message = "bucket already exists"


class ObjectNotFoundError(S3Error):
    default_message = "object not found"


class SourceBucketNotFoundError(S3Error):
    default_message = "source bucket not found"


class DestinationBucketNotFoundError(S3Error):
    default_message = "destination bucket not found"


class SourceObjectNotFoundError(S3Error):
    default_message = "source object not found"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StoredObject:
    """An object's content together with its metadata."""

    key: str
    last_modified: datetime
    etag: str
    size: int
    content_type: str
    data: bytes
    checksum_crc32: str


@dataclass
class Bucket:
    """A named container of objects."""

    name: str
    creation_date: datetime = field(default_factory=_now)
    objects: dict[str, StoredObject] = field(default_factory=dict)


@dataclass
class DeleteObjectResult:
    """Outcome of deleting one key in a batch delete."""

    key: str
    deleted: bool
    error: Exception | None = None


@dataclass
class ListObjectsV1Result:
    objects: list[StoredObject] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False
    next_marker: str = ""


@dataclass
class ListObjectsV2Result:
    objects: list[StoredObject] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False
    key_count: int = 0


@dataclass
class _Entry:
    key: str
    obj: StoredObject | None  # None marks a common prefix


def _listing(
    objects: dict[str, StoredObject], prefix: str, delimiter: str, marker: str
) -> list[_Entry]:
    """Sorted objects and common prefixes that match the listing parameters."""
    common: set[str] = set()
    entries: list[_Entry] = []
    for key in sorted(objects):
        if marker and key <= marker:
            continue
        if prefix and not key.startswith(prefix):
            continue
        if delimiter:
            rest = key[len(prefix):]
            idx = rest.find(delimiter)
            if idx != -1:
                common.add(prefix + rest[: idx + len(delimiter)])
                continue
        entries.append(_Entry(key, objects[key]))
    entries.extend(_Entry(cp, None) for cp in common)
    entries.sort(key=lambda entry: entry.key)
    return entries


def _split(entries: Iterable[_Entry]) -> tuple[list[StoredObject], list[str]]:
    objects: list[StoredObject] = []
    prefixes: list[str] = []
    for entry in entries:
        if entry.obj is None:
            prefixes.append(entry.key)
        else:
            objects.append(entry.obj)
    return objects, prefixes


class Backend:
    """Thread-safe in-memory store of buckets."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._buckets: dict[str, Bucket] = {}

    def create_bucket(self, name: str) -> Bucket:
        with self._lock:
            if name in self._buckets:
                raise BucketAlreadyExistsError()
            bucket = Bucket(name=name)
            self._buckets[name] = bucket
            return bucket

    def get_bucket(self, name: str) -> Bucket | None:
        with self._lock:
            return self._buckets.get(name)

    def delete_bucket(self, name: str) -> None:
        with self._lock:
            bucket = self._buckets.get(name)
            if bucket is None:
                raise BucketNotFoundError()
            if bucket.objects:
                raise BucketNotEmptyError()
            del self._buckets[name]

    def list_buckets(self) -> list[Bucket]:
        with self._lock:
            return sorted(self._buckets.values(), key=lambda b: b.name)

    def _bucket(self, name: str) -> Bucket:
        bucket = self._buckets.get(name)
        if bucket is None:
            raise BucketNotFoundError()
        return bucket

    def put_object(
        self, bucket_name: str, key: str, data: bytes, content_type: str
    ) -> StoredObject:
        with self._lock:
            bucket = self._bucket(bucket_name)
            payload = bytes(data)
            crc = zlib.crc32(payload).to_bytes(4, "big")
            obj = StoredObject(
                key=key,
                last_modified=_now(),
                etag='"' + hashlib.md5(payload).hexdigest() + '"',
                size=len(payload),
                content_type=content_type,
                data=payload,
                checksum_crc32=base64.b64encode(crc).decode("ascii"),
            )
            bucket.objects[key] = obj
            return obj

    def get_object(self, bucket_name: str, key: str) -> StoredObject:
        with self._lock:
            bucket = self._bucket(bucket_name)
            obj = bucket.objects.get(key)
            if obj is None:
                raise ObjectNotFoundError()
            return obj

    def delete_object(self, bucket_name: str, key: str) -> None:
        """Remove a key; removing a key that does not exist is not an error."""
        with self._lock:
            self._bucket(bucket_name).objects.pop(key, None)

    def copy_object(
        self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str
    ) -> StoredObject:
        with self._lock:
            source = self._buckets.get(src_bucket)
            if source is None:
                raise SourceBucketNotFoundError()
            src_obj = source.objects.get(src_key)
            if src_obj is None:
                raise SourceObjectNotFoundError()
            destination = self._buckets.get(dst_bucket)
            if destination is None:
                raise DestinationBucketNotFoundError()
            obj = StoredObject(
                key=dst_key,
                last_modified=_now(),
                etag=src_obj.etag,
                size=src_obj.size,
                content_type=src_obj.content_type,
                data=src_obj.data,
                checksum_crc32=src_obj.checksum_crc32,
            )
            destination.objects[dst_key] = obj
            return obj

    def delete_objects(
        self, bucket_name: str, keys: Iterable[str]
    ) -> list[DeleteObjectResult]:
        with self._lock:
            bucket = self._bucket(bucket_name)
            results = []
            for key in keys:
                bucket.objects.pop(key, None)
                results.append(DeleteObjectResult(key=key, deleted=True))
            return results

    def list_objects_v1(
        self,
        bucket_name: str,
        prefix: str,
        delimiter: str,
        marker: str,
        max_keys: int,
    ) -> ListObjectsV1Result:
        with self._lock:
            bucket = self._bucket(bucket_name)
            entries = _listing(bucket.objects, prefix, delimiter, marker)
        result = ListObjectsV1Result()
        if max_keys >= 0 and len(entries) > max_keys:
            result.is_truncated = True
            if delimiter and max_keys > 0:
                result.next_marker = entries[max_keys - 1].key
            entries = entries[:max_keys]
        result.objects, result.common_prefixes = _split(entries)
        return result

    def list_objects_v2(
        self, bucket_name: str, prefix: str, delimiter: str, max_keys: int
    ) -> ListObjectsV2Result:
        with self._lock:
            bucket = self._bucket(bucket_name)
            entries = _listing(bucket.objects, prefix, delimiter, "")
        result = ListObjectsV2Result()
        if max_keys >= 0 and len(entries) > max_keys:
            result.is_truncated = True
            entries = entries[:max_keys]
        result.objects, result.common_prefixes = _split(entries)
        result.key_count = len(result.objects) + len(result.common_prefixes)
        return result
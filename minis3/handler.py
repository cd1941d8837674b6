"""WSGI application serving the S3 REST API on top of a Backend."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from email.utils import format_datetime
from http import HTTPStatus
from typing import Any, Callable, Iterable
from urllib.parse import parse_qs, unquote

from . import xmldoc
from .backend import (
    Backend,
    BucketAlreadyExistsError,
    BucketNotEmptyError,
    BucketNotFoundError,
    DestinationBucketNotFoundError,
    S3Error,
    SourceBucketNotFoundError,
    SourceObjectNotFoundError,
    StoredObject,
)

_NO_SUCH_BUCKET = "The specified bucket does not exist."
_NO_SUCH_KEY = "The specified key does not exist."
_METHOD_NOT_ALLOWED = "The specified method is not allowed against this resource."
_BAD_MAX_KEYS = "max-keys must be a non-negative integer."
_DEFAULT_MAX_KEYS = 1000
_INT64_MAX = 2**63 - 1

_INTEGER = re.compile(r"[+-]?[0-9]+")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

StartResponse = Callable[..., Any]


def extract_bucket_and_key(path: str) -> tuple[str, str]:
    """Split a request path into its bucket name and object key."""
    if path.startswith("/"):
        path = path[1:]
    bucket, _, key = path.partition("/")
    return bucket, key


@dataclass
class _Response:
    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


def _error(status: int, code: str, message: str) -> _Response:
    return _Response(
        status,
        [("Content-Type", "application/xml")],
        xmldoc.error_document(code, message),
    )


def _no_such_bucket() -> _Response:
    return _error(404, "NoSuchBucket", _NO_SUCH_BUCKET)


def _no_such_key() -> _Response:
    return _error(404, "NoSuchKey", _NO_SUCH_KEY)


def _method_not_allowed() -> _Response:
    return _error(405, "MethodNotAllowed", _METHOD_NOT_ALLOWED)


def _xml(body: bytes) -> _Response:
    return _Response(200, [("Content-Type", "application/xml")], body)


def _object_headers(obj: StoredObject) -> list[tuple[str, str]]:
    return [
        ("ETag", obj.etag),
        ("Content-Type", obj.content_type),
        ("Content-Length", str(obj.size)),
        ("Last-Modified", format_datetime(obj.last_modified, usegmt=True)),
        ("x-amz-checksum-crc32", obj.checksum_crc32),
    ]


def _parse_max_keys(raw: str) -> int:
    """Parse a max-keys value; raises ValueError if it is not a non-negative integer."""
    if not raw:
        return _DEFAULT_MAX_KEYS
    if not _INTEGER.fullmatch(raw):
        raise ValueError(raw)
    value = int(raw)
    if value < 0 or value > _INT64_MAX:
        raise ValueError(raw)
    return value


def _path_unescape(value: str) -> str:
    if _BAD_ESCAPE.search(value):
        raise ValueError(f"invalid escape in {value!r}")
    return unquote(value)


def _decode_path(raw: str) -> str:
    try:
        return raw.encode("latin-1").decode("utf-8", "replace")
    except UnicodeEncodeError:
        return raw


@dataclass
class _Request:
    method: str
    path: str
    query: dict[str, list[str]]
    environ: dict[str, Any]

    @classmethod
    def from_environ(cls, environ: dict[str, Any]) -> "_Request":
        return cls(
            method=environ.get("REQUEST_METHOD", "GET").upper(),
            path=_decode_path(environ.get("PATH_INFO", "")) or "/",
            query=parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True),
            environ=environ,
        )

    def arg(self, name: str) -> str:
        values = self.query.get(name)
        return values[0] if values else ""

    def has(self, name: str) -> bool:
        return name in self.query

    def header(self, name: str) -> str:
        key = name.upper().replace("-", "_")
        if key not in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            key = "HTTP_" + key
        return self.environ.get(key, "")

    def read_body(self) -> bytes:
        try:
            length = int(self.environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        if length <= 0:
            return b""
        stream = self.environ.get("wsgi.input")
        if stream is None:
            return b""
        return stream.read(length)


class S3App:
    """WSGI application that answers S3 requests from a Backend."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def __call__(
        self, environ: dict[str, Any], start_response: StartResponse
    ) -> Iterable[bytes]:
        request = _Request.from_environ(environ)
        response = self._dispatch(request)
        phrase = HTTPStatus(response.status).phrase
        start_response(f"{response.status} {phrase}", response.headers)
        if request.method == "HEAD":
            return [b""]
        return [response.body]

    def _dispatch(self, request: _Request) -> _Response:
        if request.path == "/":
            return self._service(request)
        bucket, key = extract_bucket_and_key(request.path)
        if not key:
            return self._bucket(request, bucket)
        return self._object(request, bucket, key)

    # Service level

    def _service(self, request: _Request) -> _Response:
        if request.method != "GET":
            return _method_not_allowed()
        return _xml(xmldoc.list_all_my_buckets_document(self.backend.list_buckets()))

    # Bucket level

    def _bucket(self, request: _Request, bucket: str) -> _Response:
        method = request.method
        if method == "GET":
            if request.arg("list-type") == "2":
                return self._list_objects_v2(request, bucket)
            return self._list_objects_v1(request, bucket)
        if method == "POST":
            if request.has("delete"):
                return self._delete_objects(request, bucket)
            return _method_not_allowed()
        if method == "PUT":
            try:
                self.backend.create_bucket(bucket)
            except BucketAlreadyExistsError as exc:
                return _error(409, "BucketAlreadyExists", str(exc))
            return _Response(200, [("Location", "/" + bucket)])
        if method == "DELETE":
            try:
                self.backend.delete_bucket(bucket)
            except BucketNotEmptyError as exc:
                return _error(409, "BucketNotEmpty", str(exc))
            except BucketNotFoundError:
                return _no_such_bucket()
            return _Response(204)
        if method == "HEAD":
            if self.backend.get_bucket(bucket) is None:
                return _Response(404)
            return _Response(200)
        return _method_not_allowed()

    def _list_objects_v2(self, request: _Request, bucket: str) -> _Response:
        prefix = request.arg("prefix")
        delimiter = request.arg("delimiter")
        try:
            max_keys = _parse_max_keys(request.arg("max-keys"))
        except ValueError:
            return _error(400, "InvalidArgument", _BAD_MAX_KEYS)
        try:
            result = self.backend.list_objects_v2(bucket, prefix, delimiter, max_keys)
        except S3Error:
            return _no_such_bucket()
        return _xml(
            xmldoc.list_bucket_v2_document(bucket, prefix, delimiter, max_keys, result)
        )

    def _list_objects_v1(self, request: _Request, bucket: str) -> _Response:
        prefix = request.arg("prefix")
        delimiter = request.arg("delimiter")
        marker = request.arg("marker")
        encoding_type = request.arg("encoding-type")
        try:
            max_keys = _parse_max_keys(request.arg("max-keys"))
        except ValueError:
            return _error(400, "InvalidArgument", _BAD_MAX_KEYS)
        try:
            result = self.backend.list_objects_v1(
                bucket, prefix, delimiter, marker, max_keys
            )
        except S3Error:
            return _no_such_bucket()
        return _xml(
            xmldoc.list_bucket_v1_document(
                bucket, prefix, marker, delimiter, max_keys, result, encoding_type
            )
        )

    def _delete_objects(self, request: _Request, bucket: str) -> _Response:
        try:
            body = request.read_body()
        except (OSError, ValueError):
            return _error(400, "InvalidRequest", "Failed to read request body")
        try:
            delete_request = xmldoc.parse_delete_request(body)
        except xmldoc.MalformedXMLError as exc:
            return _error(400, "MalformedXML", str(exc))
        try:
            results = self.backend.delete_objects(bucket, delete_request.keys)
        except S3Error:
            return _no_such_bucket()
        deleted = [] if delete_request.quiet else [r.key for r in results]
        return _xml(xmldoc.delete_result_document(deleted))

    # Object level

    def _object(self, request: _Request, bucket: str, key: str) -> _Response:
        method = request.method
        if method == "PUT":
            copy_source = request.header("x-amz-copy-source")
            if copy_source:
                return self._copy_object(bucket, key, copy_source)
            try:
                data = request.read_body()
            except (OSError, ValueError) as exc:
                return _error(500, "InternalError", str(exc))
            content_type = request.header("Content-Type")
            try:
                obj = self.backend.put_object(bucket, key, data, content_type)
            except S3Error:
                return _no_such_bucket()
            return _Response(200, [("ETag", obj.etag)])
        if method == "GET":
            try:
                obj = self.backend.get_object(bucket, key)
            except BucketNotFoundError:
                return _no_such_bucket()
            except S3Error:
                return _no_such_key()
            return _Response(200, _object_headers(obj), obj.data)
        if method == "DELETE":
            try:
                self.backend.delete_object(bucket, key)
            except BucketNotFoundError:
                return _no_such_bucket()
            return _Response(204)
        if method == "HEAD":
            try:
                obj = self.backend.get_object(bucket, key)
            except S3Error:
                return _Response(404)
            return _Response(200, _object_headers(obj))
        return _method_not_allowed()

    def _copy_object(self, dst_bucket: str, dst_key: str, copy_source: str) -> _Response:
        try:
            decoded = _path_unescape(copy_source)
        except ValueError:
            return _error(
                400,
                "InvalidArgument",
                "Invalid x-amz-copy-source header: malformed URL encoding",
            )
        src_bucket, src_key = extract_bucket_and_key(decoded)
        if not src_bucket or not src_key:
            return _error(400, "InvalidArgument", "Invalid x-amz-copy-source header")
        try:
            obj = self.backend.copy_object(src_bucket, src_key, dst_bucket, dst_key)
        except (SourceBucketNotFoundError, DestinationBucketNotFoundError):
            return _no_such_bucket()
        except SourceObjectNotFoundError:
            return _no_such_key()
        except S3Error as exc:
            return _error(500, "InternalError", str(exc))
        return _xml(xmldoc.copy_object_result_document(obj))
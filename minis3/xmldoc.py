"""XML documents of the S3 wire protocol: parsing requests, rendering responses."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable
from urllib.parse import quote

from .backend import Bucket, ListObjectsV1Result, ListObjectsV2Result, StoredObject

XML_HEADER = b'<?xml version="1.0" encoding="UTF-8"?>\n'
S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"
MALFORMED_XML_MESSAGE = (
    "The XML you provided was not well-formed or did not validate "
    "against our published schema"
)

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False", ""}
_BOOL_TEXT = {True: "true", False: "false"}


class MalformedXMLError(ValueError):
    """The request body is not a valid document of the expected kind."""

    def __init__(self, message: str = MALFORMED_XML_MESSAGE) -> None:
        super().__init__(message)


@dataclass
class DeleteRequest:
    """A parsed multi-object delete request."""

    keys: list[str] = field(default_factory=list)
    quiet: bool = False


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _text(element: ET.Element) -> str:
    return "".join(element.itertext())


def _parse_bool(text: str) -> bool:
    value = text.strip()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise MalformedXMLError()


def parse_delete_request(body: bytes | str) -> DeleteRequest:
    """Parse a <Delete> document; a document naming no objects is malformed."""
    try:
        root = ET.fromstring(body)
    except (ET.ParseError, ValueError) as exc:
        raise MalformedXMLError() from exc
    if _local(root.tag) != "Delete":
        raise MalformedXMLError()
    request = DeleteRequest()
    for child in root:
        name = _local(child.tag)
        if name == "Object":
            key = ""
            for part in child:
                if _local(part.tag) == "Key":
                    key = _text(part)
            request.keys.append(key)
        elif name == "Quiet":
            request.quiet = _parse_bool(_text(child))
    if not request.keys:
        raise MalformedXMLError()
    return request


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _sub(parent: ET.Element, tag: str, text: str = "") -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = text
    return element


def _render(root: ET.Element) -> bytes:
    body = ET.tostring(root, encoding="unicode", short_empty_elements=False)
    return XML_HEADER + body.encode("utf-8")


def _object_info(parent: ET.Element, obj: StoredObject, key: str) -> None:
    contents = _sub(parent, "Contents")
    _sub(contents, "Key", key)
    _sub(contents, "LastModified", _rfc3339(obj.last_modified))
    _sub(contents, "ETag", obj.etag)
    _sub(contents, "Size", str(obj.size))
    _sub(contents, "StorageClass", "STANDARD")


def _common_prefix(parent: ET.Element, prefix: str) -> None:
    _sub(_sub(parent, "CommonPrefixes"), "Prefix", prefix)


def error_document(code: str, message: str) -> bytes:
    root = ET.Element("Error")
    _sub(root, "Code", code)
    _sub(root, "Message", message)
    for tag in ("Resource", "RequestId", "HostId"):
        _sub(root, tag)
    return _render(root)


def list_all_my_buckets_document(buckets: Iterable[Bucket]) -> bytes:
    root = ET.Element("ListAllMyBucketsResult")
    owner = _sub(root, "Owner")
    _sub(owner, "ID", "minis3")
    _sub(owner, "DisplayName", "minis3")
    container: ET.Element | None = None
    for bucket in buckets:
        if container is None:
            container = _sub(root, "Buckets")
        entry = _sub(container, "Bucket")
        _sub(entry, "Name", bucket.name)
        _sub(entry, "CreationDate", _rfc3339(bucket.creation_date))
    return _render(root)


def copy_object_result_document(obj: StoredObject) -> bytes:
    root = ET.Element("CopyObjectResult")
    _sub(root, "ETag", obj.etag)
    _sub(root, "LastModified", _rfc3339(obj.last_modified))
    return _render(root)


def delete_result_document(deleted_keys: Iterable[str]) -> bytes:
    root = ET.Element("DeleteResult", {"xmlns": S3_NAMESPACE})
    for key in deleted_keys:
        _sub(_sub(root, "Deleted"), "Key", key)
    return _render(root)


def _path_escape(value: str) -> str:
    return quote(value, safe="$&+:=@")


def list_bucket_v1_document(
    name: str,
    prefix: str,
    marker: str,
    delimiter: str,
    max_keys: int,
    result: ListObjectsV1Result,
    encoding_type: str,
) -> bytes:
    """Render a ListObjects (v1) response; keys are escaped when encoding_type is "url"."""
    url_encode = encoding_type == "url"
    root = ET.Element("ListBucketResult", {"xmlns": S3_NAMESPACE})
    _sub(root, "Name", name)
    _sub(root, "Prefix", prefix)
    _sub(root, "Marker", marker)
    if delimiter:
        _sub(root, "Delimiter", delimiter)
    _sub(root, "MaxKeys", str(max_keys))
    _sub(root, "IsTruncated", _BOOL_TEXT[bool(result.is_truncated)])
    if result.next_marker:
        _sub(root, "NextMarker", result.next_marker)
    for obj in result.objects:
        _object_info(root, obj, _path_escape(obj.key) if url_encode else obj.key)
    for cp in result.common_prefixes:
        _common_prefix(root, _path_escape(cp) if url_encode else cp)
    if url_encode:
        _sub(root, "EncodingType", "url")
    return _render(root)


def list_bucket_v2_document(
    name: str,
    prefix: str,
    delimiter: str,
    max_keys: int,
    result: ListObjectsV2Result,
) -> bytes:
    root = ET.Element("ListBucketResult", {"xmlns": S3_NAMESPACE})
    _sub(root, "Name", name)
    _sub(root, "Prefix", prefix)
    if delimiter:
        _sub(root, "Delimiter", delimiter)
    _sub(root, "MaxKeys", str(max_keys))
    _sub(root, "KeyCount", str(result.key_count))
    _sub(root, "IsTruncated", _BOOL_TEXT[bool(result.is_truncated)])
    for obj in result.objects:
        _object_info(root, obj, obj.key)
    for cp in result.common_prefixes:
        _common_prefix(root, cp)
    return _render(root)
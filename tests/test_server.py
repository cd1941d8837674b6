import urllib.error
import urllib.request
import xml.etree.ElementTree as ET

import pytest

from minis3.server import Minis3, run

NS = "{http://s3.amazonaws.com/doc/2006-03-01/}"

TEST_OBJECTS = {
    "file1.txt": "content1",
    "file2.txt": "content2",
    "photos/2024/jan/a.jpg": "photo-a",
    "photos/2024/jan/b.jpg": "photo-b",
    "photos/2024/feb/c.jpg": "photo-c",
    "docs/readme.md": "readme",
}


def call(base, method, path, data=None, headers=None):
    request = urllib.request.Request(
        base + path, data=data, method=method, headers=headers or {}
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            return response.status, response.headers, response.read()
    except urllib.error.HTTPError as err:
        body = err.read()
        return err.code, err.headers, body


@pytest.fixture
def server():
    with Minis3() as s:
        yield s


@pytest.fixture
def base(server):
    return "http://" + server.addr()


@pytest.fixture
def listing_bucket(base):
    status, _, _ = call(base, "PUT", "/list-test")
    assert status == 200
    for key, content in TEST_OBJECTS.items():
        status, _, _ = call(base, "PUT", "/list-test/" + key, data=content.encode())
        assert status == 200
    return base + "/list-test"


def list_xml(url, query):
    request = urllib.request.Request(url + query, method="GET")
    with urllib.request.urlopen(request, timeout=10) as response:
        assert response.status == 200
        return ET.fromstring(response.read())


def contents(root):
    return [e.findtext(NS + "Key") for e in root.findall(NS + "Contents")]


def prefixes(root):
    return [e.findtext(NS + "Prefix") for e in root.findall(NS + "CommonPrefixes")]


def test_addr_empty_before_start():
    s = Minis3()
    assert s.addr() == ""
    assert s.host() == ""


def test_run_starts_server():
    s = run()
    try:
        assert s.addr().startswith("127.0.0.1:")
        assert s.host() == s.addr()
        status, _, body = call("http://" + s.addr(), "GET", "/")
        assert status == 200
        assert b"ListAllMyBucketsResult" in body
    finally:
        s.close()


def test_start_twice_raises(server):
    with pytest.raises(RuntimeError):
        server.start()


def test_close_stops_serving():
    s = run()
    base = "http://" + s.addr()
    s.close()
    with pytest.raises(urllib.error.URLError):
        urllib.request.urlopen(base + "/", timeout=2)


def test_servers_are_independent():
    with Minis3() as first, Minis3() as second:
        assert first.addr() != second.addr()
        assert call("http://" + first.addr(), "PUT", "/shared")[0] == 200
        assert call("http://" + second.addr(), "PUT", "/shared")[0] == 200


def test_integration_round_trip(base):
    content = b"integration test content"
    assert call(base, "PUT", "/integration-test-bucket")[0] == 200
    status, headers, _ = call(base, "PUT", "/integration-test-bucket/test.txt", data=content)
    assert status == 200
    assert headers["ETag"].startswith('"')

    status, headers, body = call(base, "GET", "/integration-test-bucket/test.txt")
    assert status == 200
    assert int(headers["Content-Length"]) == len(content)
    assert body == content

    assert call(base, "DELETE", "/integration-test-bucket/test.txt")[0] == 204
    assert call(base, "DELETE", "/integration-test-bucket")[0] == 204
    assert call(base, "HEAD", "/integration-test-bucket")[0] == 404


def test_create_existing_bucket_conflicts(base):
    assert call(base, "PUT", "/dup")[0] == 200
    status, _, body = call(base, "PUT", "/dup")
    assert status == 409
    assert b"BucketAlreadyExists" in body


def test_copy_object(base):
    content = b"copy object test content"
    assert call(base, "PUT", "/src-bucket")[0] == 200
    assert call(base, "PUT", "/dst-bucket")[0] == 200
    assert call(base, "PUT", "/src-bucket/source.txt", data=content)[0] == 200

    status, _, body = call(
        base,
        "PUT",
        "/dst-bucket/destination.txt",
        headers={"x-amz-copy-source": "src-bucket/source.txt"},
    )
    assert status == 200
    assert b"CopyObjectResult" in body

    status, headers, data = call(base, "GET", "/dst-bucket/destination.txt")
    assert status == 200
    assert int(headers["Content-Length"]) == len(content)
    assert data == content

    status, _, _ = call(
        base,
        "PUT",
        "/src-bucket/same-bucket-copy.txt",
        headers={"x-amz-copy-source": "src-bucket/source.txt"},
    )
    assert status == 200
    status, headers, data = call(base, "GET", "/src-bucket/same-bucket-copy.txt")
    assert status == 200
    assert int(headers["Content-Length"]) == len(content)
    assert data == content


def test_copy_object_missing_source(base):
    assert call(base, "PUT", "/dst")[0] == 200
    status, _, body = call(
        base, "PUT", "/dst/x.txt", headers={"x-amz-copy-source": "nobucket/x.txt"}
    )
    assert status == 404
    assert b"NoSuchBucket" in body


def test_delete_objects(base):
    content = b"test content"
    assert call(base, "PUT", "/delete-objects-test")[0] == 200
    for key in ("file1.txt", "file2.txt", "file3.txt"):
        assert call(base, "PUT", "/delete-objects-test/" + key, data=content)[0] == 200

    document = (
        b"<Delete>"
        b"<Object><Key>file1.txt</Key></Object>"
        b"<Object><Key>file2.txt</Key></Object>"
        b"<Object><Key>nonexistent.txt</Key></Object>"
        b"</Delete>"
    )
    status, _, body = call(
        base,
        "POST",
        "/delete-objects-test?delete",
        data=document,
        headers={"Content-Type": "application/xml"},
    )
    assert status == 200
    root = ET.fromstring(body)
    deleted = [e.findtext(NS + "Key") for e in root.findall(NS + "Deleted")]
    assert deleted == ["file1.txt", "file2.txt", "nonexistent.txt"]

    assert call(base, "GET", "/delete-objects-test/file1.txt")[0] == 404
    assert call(base, "GET", "/delete-objects-test/file2.txt")[0] == 404
    status, headers, _ = call(base, "GET", "/delete-objects-test/file3.txt")
    assert status == 200
    assert int(headers["Content-Length"]) == len(content)


def test_delete_objects_quiet_mode(base):
    assert call(base, "PUT", "/delete-objects-quiet-test")[0] == 200
    assert call(base, "PUT", "/delete-objects-quiet-test/file.txt", data=b"content")[0] == 200
    document = (
        b"<Delete><Quiet>true</Quiet>"
        b"<Object><Key>file.txt</Key></Object></Delete>"
    )
    status, _, body = call(
        base,
        "POST",
        "/delete-objects-quiet-test?delete",
        data=document,
        headers={"Content-Type": "application/xml"},
    )
    assert status == 200
    assert ET.fromstring(body).findall(NS + "Deleted") == []
    assert call(base, "GET", "/delete-objects-quiet-test/file.txt")[0] == 404


def test_list_v2_all(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2")
    assert root.findtext(NS + "KeyCount") == "6"
    assert root.findtext(NS + "IsTruncated") == "false"


def test_list_v2_prefix(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2&prefix=photos/")
    assert root.findtext(NS + "KeyCount") == "3"


def test_list_v2_delimiter(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2&delimiter=/")
    assert contents(root) == ["file1.txt", "file2.txt"]
    assert prefixes(root) == ["docs/", "photos/"]


def test_list_v2_prefix_and_delimiter(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2&prefix=photos/2024/&delimiter=/")
    assert contents(root) == []
    assert prefixes(root) == ["photos/2024/feb/", "photos/2024/jan/"]


def test_list_v2_max_keys(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2&max-keys=2")
    assert root.findtext(NS + "KeyCount") == "2"
    assert root.findtext(NS + "IsTruncated") == "true"


def test_list_v2_nonexistent_prefix(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2&prefix=nonexistent/")
    assert root.findtext(NS + "KeyCount") == "0"


def test_list_v2_max_keys_zero(listing_bucket):
    root = list_xml(listing_bucket, "?list-type=2&max-keys=0")
    assert root.findtext(NS + "KeyCount") == "0"
    assert root.findtext(NS + "IsTruncated") == "true"


def test_list_v1_all(listing_bucket):
    root = list_xml(listing_bucket, "")
    assert len(contents(root)) == 6
    assert root.findtext(NS + "IsTruncated") == "false"


def test_list_v1_prefix(listing_bucket):
    root = list_xml(listing_bucket, "?prefix=photos/")
    assert len(contents(root)) == 3


def test_list_v1_delimiter(listing_bucket):
    root = list_xml(listing_bucket, "?delimiter=/")
    assert len(contents(root)) == 2
    assert len(prefixes(root)) == 2


def test_list_v1_prefix_and_delimiter(listing_bucket):
    root = list_xml(listing_bucket, "?prefix=photos/2024/&delimiter=/")
    assert contents(root) == []
    assert len(prefixes(root)) == 2


def test_list_v1_max_keys(listing_bucket):
    root = list_xml(listing_bucket, "?max-keys=2")
    assert len(contents(root)) == 2
    assert root.findtext(NS + "IsTruncated") == "true"


def test_list_v1_marker(listing_bucket):
    first = contents(list_xml(listing_bucket, "?max-keys=2"))
    assert first == ["docs/readme.md", "file1.txt"]
    second = contents(list_xml(listing_bucket, "?max-keys=2&marker=" + first[1]))
    assert len(second) == 2
    assert second[0] > first[1]
    assert second == ["file2.txt", "photos/2024/feb/c.jpg"]


def test_list_v1_nonexistent_prefix(listing_bucket):
    root = list_xml(listing_bucket, "?prefix=nonexistent/")
    assert contents(root) == []


def test_list_missing_bucket(base):
    status, _, body = call(base, "GET", "/missing?list-type=2")
    assert status == 404
    assert b"NoSuchBucket" in body
# minis3

`minis3` is a small, in-memory server that speaks enough of the S3 HTTP API
to stand in for real object storage in tests. Everything lives in memory;
nothing is written to disk and all state disappears when the server stops.

It has no dependencies outside the standard library.

## Supported operations

Path-style requests only (`/<bucket>/<key>`):

| Operation          | Request                                    |
|--------------------|--------------------------------------------|
| ListBuckets        | `GET /`                                    |
| CreateBucket       | `PUT /<bucket>`                            |
| HeadBucket         | `HEAD /<bucket>`                           |
| DeleteBucket       | `DELETE /<bucket>` (bucket must be empty)  |
| ListObjects (v1)   | `GET /<bucket>` with `prefix`, `delimiter`, `marker`, `max-keys`, `encoding-type=url` |
| ListObjectsV2      | `GET /<bucket>?list-type=2` with `prefix`, `delimiter`, `max-keys` |
| DeleteObjects      | `POST /<bucket>?delete` with a `<Delete>` XML body, `Quiet` honoured |
| PutObject          | `PUT /<bucket>/<key>`                      |
| CopyObject         | `PUT /<bucket>/<key>` with `x-amz-copy-source: <bucket>/<key>` |
| GetObject          | `GET /<bucket>/<key>`                      |
| HeadObject         | `HEAD /<bucket>/<key>`                     |
| DeleteObject       | `DELETE /<bucket>/<key>`                   |

`max-keys` defaults to 1000; a value that is not a non-negative integer is
answered with `400 InvalidArgument`. Deleting a key that does not exist
succeeds, and a batch delete reports every requested key as deleted.

Errors are returned as S3-style XML documents (`NoSuchBucket`, `NoSuchKey`,
`BucketAlreadyExists`, `BucketNotEmpty`, `MalformedXML`, `InvalidArgument`,
`InvalidRequest`, `MethodNotAllowed`, `InternalError`). `HEAD` requests for a
missing bucket or object get a bare `404`.

Objects carry an `ETag` (the quoted MD5 of the body), the `Content-Type` they
were stored with, a `Last-Modified` date and an `x-amz-checksum-crc32` header
(base64 CRC-32).

## Starting a server

`minis3.server.Minis3` listens on a random free port on `127.0.0.1` and serves
requests on a background thread. Use it as a context manager so it is always
shut down:

```python
import urllib.request

from minis3.server import Minis3

with Minis3() as server:
    base = "http://" + server.addr()

    request = urllib.request.Request(base + "/my-bucket", method="PUT")
    urllib.request.urlopen(request).close()

    request = urllib.request.Request(
        base + "/my-bucket/hello.txt",
        data=b"Hello S3",
        method="PUT",
        headers={"Content-Type": "text/plain"},
    )
    urllib.request.urlopen(request).close()

    with urllib.request.urlopen(base + "/my-bucket/hello.txt") as response:
        assert response.read() == b"Hello S3"
```

`addr()` and `host()` both return the `host:port` string, or `""` before the
server has been started. Calling `start()` twice raises `RuntimeError`;
`close()` on a server that is not running does nothing.

If you prefer to manage the lifetime yourself, `run()` creates and starts a
server in one step; call `close()` when you are done:

```python
from minis3.server import run

server = run()
try:
    endpoint = "http://" + server.host()
    ...
finally:
    server.close()
```

Point any S3 client at `endpoint`, with path-style addressing enabled and any
placeholder credentials. The server's store is available as `server.backend`.

## Using the pieces directly

The HTTP layer, `minis3.handler.S3App`, is a plain WSGI application, so it can
be mounted in any WSGI server or driven directly from tests without opening a
socket:

```python
from minis3.backend import Backend
from minis3.handler import S3App

app = S3App(Backend())
```

The storage engine, `minis3.backend.Backend`, can also be used on its own. It
raises subclasses of `S3Error` such as `BucketNotFoundError`,
`ObjectNotFoundError` and `BucketNotEmptyError`:

```python
from minis3.backend import Backend, BucketNotFoundError

store = Backend()
store.create_bucket("photos")
store.put_object("photos", "2024/jan/a.jpg", b"...", "image/jpeg")

listing = store.list_objects_v2("photos", "", "/", 1000)
print(listing.common_prefixes)  # ['2024/']

try:
    store.get_object("missing", "key")
except BucketNotFoundError:
    pass
```

`minis3.xmldoc` holds the request parser (`parse_delete_request`) and the
functions that render the XML response documents.

## What it does not do

- There is no command-line program; the server is started from Python code.
- Requests are not authenticated or signed; any credentials are accepted.
- Only path-style addressing is understood, not virtual-hosted buckets.
- No multipart uploads, object versioning, ACLs, bucket policies, range
  requests or conditional requests.
- Nothing is persisted; all data is lost when the process ends.

## Running the tests

Install the `test` extra and run `pytest` from the project root.
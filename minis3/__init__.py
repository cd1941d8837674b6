"""An in-memory S3-compatible server for tests: storage, XML documents, a WSGI app and a threaded server."""

__version__ = "0.1.0"

__all__ = ["backend", "handler", "server", "xmldoc"]
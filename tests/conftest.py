"""Shared fakes for the export engine tests."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from srht_client.context import OperationContext
from srht_export.fetcher import ResumableFetcher
from srht_export.markers import MarkerStore


class FakeResponse:
    """Minimal stand-in for requests.Response with a streamed body."""

    def __init__(self, status_code: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None,
                 reason: str = "", chunk_size: Optional[int] = None):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.reason = reason
        self.forced_chunk_size = chunk_size
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        size = self.forced_chunk_size or chunk_size
        for i in range(0, len(self.body), size):
            yield self.body[i:i + size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeSession:
    """
    Routes GET requests to canned responses.

    Routes map a URL to a FakeResponse or to a callable taking the request
    headers and returning one.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, headers=None, stream=False, timeout=None):
        self.calls.append({"url": url, "headers": dict(headers or {}), "timeout": timeout})
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, b"not found")
        if callable(route):
            return route(headers or {})
        return route


class RangeServer:
    """
    Serves a growing log with 206 responses.

    `available` bytes of `content` exist so far; a request for bytes=N-
    returns content[N:available] with an inclusive Content-Range.
    """

    def __init__(self, content: bytes, available: Optional[int] = None):
        self.content = content
        self.available = len(content) if available is None else available
        self.requests: List[str] = []

    def __call__(self, headers: Dict[str, str]) -> FakeResponse:
        header = headers.get("Range", "bytes=0-")
        self.requests.append(header)
        start = int(re.match(r"bytes=(\d+)-", header).group(1))
        end = self.available - 1
        return FakeResponse(
            206,
            self.content[start:self.available],
            headers={"Content-Range": f"bytes {start}-{end}/*"},
            chunk_size=3,
        )


class FakeClient:
    """
    Scripted stand-in for SrhtClient.

    `handler(query, variables, uploads)` returns the `data` object; every
    call is recorded.
    """

    def __init__(self, handler: Callable[..., Dict[str, Any]], base_url: str = "https://example.sr.ht",
                 session: Optional[FakeSession] = None):
        self.handler = handler
        self.base_url = base_url
        self.session = session or FakeSession()
        self.calls: List[Dict[str, Any]] = []

    def execute(self, query, variables=None, uploads=None, ctx=None, retry=True):
        variables = dict(variables or {})
        upload_contents = None
        if uploads:
            upload_contents = {
                key: (upload.filename, upload.body.read(), upload.mime_type)
                for key, upload in uploads.items()
            }
        self.calls.append({
            "query": query,
            "variables": variables,
            "uploads": upload_contents,
            "retry": retry,
        })
        return self.handler(query, variables, upload_contents)

    def operations(self) -> List[str]:
        """Names of executed operations ("exportJobs", "createPaste", ...)."""
        names = []
        for call in self.calls:
            match = re.search(r"(?:query|mutation)\s+(\w+)", call["query"])
            names.append(match.group(1) if match else "")
        return names


@pytest.fixture
def ctx():
    return OperationContext()


@pytest.fixture
def markers():
    return MarkerStore()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def fetcher(session):
    return ResumableFetcher(session, timeout=5, chunk_size=4)


@pytest.fixture
def out_dir(tmp_path) -> Path:
    path = tmp_path / "export"
    path.mkdir()
    return path

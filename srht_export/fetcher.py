"""
HTTP downloads of export artifacts and live build logs.

Two modes share one session:

- download(): one-shot GET of a finished artifact into a file.
- fetch_range(): range request continuing from a recorded offset, used to
  tail logs that are still being written.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import requests
from requests.exceptions import RequestException

from srht_client.context import OperationContext

from .types import (
    ContentRangeError,
    ExportError,
    FetchError,
    PartialExportError,
    RangeNotSatisfiedError,
)

logger = logging.getLogger(__name__)

CONTENT_RANGE_RE = re.compile(r"^bytes (\d+)-(\d+)/(\S+)$")


@dataclass
class DownloadOffset:
    """
    Progress of one followed log.

    `offset` is the end of the last range received; `done` is set by the
    caller once the upstream job or task reached a terminal state.
    """
    offset: int = 0
    done: bool = False


def parse_content_range(header: str | None) -> tuple[int, int, str]:
    """
    Parse a Content-Range header of the form "bytes <start>-<end>/<size>".

    Raises:
        ContentRangeError: If the header is missing or malformed
    """
    match = CONTENT_RANGE_RE.match((header or "").strip())
    if not match:
        raise ContentRangeError(f"failed to parse Content-Range header: {header!r}")
    start, end, size = int(match.group(1)), int(match.group(2)), match.group(3)
    if end < start:
        raise ContentRangeError(f"failed to parse Content-Range header: {header!r}")
    return start, end, size


class ResumableFetcher:
    """
    Streams HTTP resources to files or writable sinks.

    Nothing is retried here; transport errors surface as FetchError and the
    caller decides whether to try again.
    """

    DEFAULT_TIMEOUT = 600
    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
    ):
        """
        Initialize the fetcher.

        Args:
            session: Session carrying authentication headers
            timeout: Per-request timeout in seconds
            chunk_size: Streaming chunk size in bytes
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.logger = logging.getLogger(f"{__name__}.ResumableFetcher")

    def _get(self, url: str, ctx: OperationContext | None, headers: dict[str, str] | None = None):
        if ctx is not None:
            ctx.check()
        try:
            return self.session.get(url, headers=headers, stream=True, timeout=self.timeout)
        except RequestException as e:
            raise FetchError(f"HTTP request failed: {e}") from e

    def _copy(self, response, sink: BinaryIO, ctx: OperationContext | None, skip: int = 0) -> int:
        """Copy the response body to sink, dropping the first `skip` bytes."""
        written = 0
        try:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if ctx is not None:
                    ctx.check()
                if not chunk:
                    continue
                if skip:
                    dropped = min(skip, len(chunk))
                    chunk = chunk[dropped:]
                    skip -= dropped
                    if not chunk:
                        continue
                sink.write(chunk)
                written += len(chunk)
        except RequestException as e:
            raise FetchError(f"failed to copy response body: {e}") from e
        return written

    def fetch_range(
        self,
        url: str,
        state: DownloadOffset,
        sink: BinaryIO,
        ctx: OperationContext | None = None,
    ) -> int:
        """
        Fetch the part of `url` after `state.offset` into `sink`.

        Content-Range ends are inclusive and the next request starts at the
        previous end, so a resumed range repeats one byte, which is dropped.

        Args:
            url: Log URL
            state: Offset record, updated on success
            sink: Binary writable destination
            ctx: Cancellation context

        Returns:
            Number of bytes written to sink

        Raises:
            RangeNotSatisfiedError: Status other than 206
            ContentRangeError: Malformed Content-Range header
            FetchError: Transport failure
        """
        if state.done:
            return 0

        response = self._get(url, ctx, headers={"Range": f"bytes={state.offset}-"})
        with response:
            if response.status_code != 206:
                raise RangeNotSatisfiedError(response.status_code, response.reason or "")

            start, end, _size = parse_content_range(response.headers.get("Content-Range"))
            written = self._copy(response, sink, ctx, skip=1 if start > 0 else 0)

        if hasattr(sink, "flush"):
            sink.flush()

        state.offset = end
        return written

    def download(
        self,
        url: str,
        dest: Path,
        ctx: OperationContext | None = None,
        label: str | None = None,
    ) -> int:
        """
        Download a finished artifact into `dest`.

        The body is streamed into "<dest>.part" and renamed once complete;
        the temporary file is removed on every failure path.

        Args:
            url: Artifact URL
            dest: Destination file
            ctx: Cancellation context
            label: Name used in error messages

        Returns:
            Number of bytes written

        Raises:
            PartialExportError: Server answered with a status other than 200
            FetchError: Transport failure
        """
        label = label or dest.name
        response = self._get(url, ctx)
        with response:
            if response.status_code != 200:
                raise PartialExportError([
                    ExportError(f"{label}: server returned non-200 status {response.status_code}")
                ])

            dest.parent.mkdir(parents=True, exist_ok=True)
            part = dest.with_name(dest.name + ".part")
            try:
                with open(part, "wb") as f:
                    written = self._copy(response, f, ctx)
                part.replace(dest)
            except BaseException:
                part.unlink(missing_ok=True)
                raise

        self.logger.debug(f"Downloaded {label} ({written} bytes)")
        return written

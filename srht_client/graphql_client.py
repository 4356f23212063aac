"""
sr.ht GraphQL API client with retry and backoff support.

One client talks to one service origin (e.g. https://git.sr.ht). Queries are
POSTed to <origin>/query; file uploads use the GraphQL multipart request
convention.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, BinaryIO

import requests
from requests.exceptions import RequestException

from .context import OperationContext
from .logging_config import log_api_call

logger = logging.getLogger(__name__)

USER_AGENT = "srht-export/0.1.0"


@dataclass
class APICallStats:
    """Track API call statistics."""
    total_calls: int = 0
    successful_calls: int = 0
    retried_calls: int = 0
    failed_calls: int = 0


@dataclass
class Upload:
    """A file variable of a multipart GraphQL request."""
    filename: str
    body: BinaryIO
    mime_type: str = "application/octet-stream"


class GraphQLClientError(Exception):
    """Base exception for transport and HTTP level failures."""
    def __init__(self, message: str, status_code: int | None = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class RateLimitError(GraphQLClientError):
    """Raised when rate limit is exceeded."""
    def __init__(self, retry_after: int | None = None):
        super().__init__(f"Rate limit exceeded. Retry after: {retry_after}s", status_code=429)
        self.retry_after = retry_after


class GraphQLError(GraphQLClientError):
    """Raised when the server answered with a GraphQL `errors` array."""
    def __init__(self, errors: list[dict[str, Any]], status_code: int | None = None):
        messages = "; ".join(str(e.get("message", e)) for e in errors) or "unknown error"
        super().__init__(f"GraphQL error: {messages}", status_code=status_code, response=errors)
        self.errors = errors


class SrhtClient:
    """
    GraphQL client for a single sr.ht service.

    Features:
    - Bearer token authentication shared with artifact downloads
    - Exponential backoff for rate limits (429) and server errors (5xx)
    - Respects Retry-After header
    - Multipart uploads for import mutations
    - API call tracking/statistics

    Usage:
        client = SrhtClient("https://git.sr.ht", "your-token")
        data = client.execute("query { me { canonicalName } }")
    """

    DEFAULT_TIMEOUT = 30
    MAX_RETRIES = 5
    BASE_BACKOFF_SECONDS = 1.0
    MAX_BACKOFF_SECONDS = 60.0

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        verify_ssl: bool = True,
    ):
        """
        Initialize the client.

        Args:
            base_url: Service origin (e.g., "https://git.sr.ht")
            token: OAuth2 personal access token
            timeout: Request timeout in seconds
            max_retries: Maximum attempts for retryable requests
            verify_ssl: Whether to verify SSL certificates
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.verify_ssl = verify_ssl
        self.stats = APICallStats()

        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "User-Agent": USER_AGENT,
        })
        self.session.verify = verify_ssl

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/query"

    def _calculate_backoff(self, attempt: int, retry_after: int | None = None) -> float:
        """Calculate backoff time with exponential increase."""
        if retry_after is not None:
            return min(float(retry_after), self.MAX_BACKOFF_SECONDS)
        backoff = self.BASE_BACKOFF_SECONDS * (2 ** attempt)
        return min(backoff, self.MAX_BACKOFF_SECONDS)

    def _should_retry(self, status_code: int) -> bool:
        return status_code == 429 or (500 <= status_code < 600)

    def _get_retry_after(self, headers: dict[str, str]) -> int | None:
        retry_after = headers.get("Retry-After") or headers.get("retry-after")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return None

    def _sleep(self, seconds: float, ctx: OperationContext | None) -> None:
        if ctx is not None:
            ctx.wait(seconds)
        else:
            time.sleep(seconds)

    def _build_request(
        self,
        query: str,
        variables: dict[str, Any],
        uploads: dict[str, Upload] | None,
    ) -> dict[str, Any]:
        """Build keyword arguments for session.post()."""
        if not uploads:
            return {"json": {"query": query, "variables": variables}}

        # Multipart request: variables referenced by `uploads` are sent as
        # null and mapped to numbered file parts.
        operations_vars = dict(variables)
        file_map: dict[str, list[str]] = {}
        files: dict[str, tuple[str, BinaryIO, str]] = {}
        for index, (var_path, upload) in enumerate(uploads.items()):
            key = str(index)
            _set_path(operations_vars, var_path, None)
            file_map[key] = [f"variables.{var_path}"]
            files[key] = (upload.filename, upload.body, upload.mime_type)

        data = {
            "operations": json.dumps({"query": query, "variables": operations_vars}),
            "map": json.dumps(file_map),
        }
        return {"data": data, "files": files}

    def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        uploads: dict[str, Upload] | None = None,
        ctx: OperationContext | None = None,
        retry: bool = True,
    ) -> dict[str, Any]:
        """
        Execute a GraphQL operation.

        Args:
            query: GraphQL document
            variables: Operation variables
            uploads: Upload variables keyed by variable path ("files.0")
            ctx: Cancellation context
            retry: Retry on 429/5xx/transport errors. Mutations pass False.

        Returns:
            The `data` object of the response

        Raises:
            GraphQLClientError: On transport or HTTP errors
            GraphQLError: When the response carries GraphQL errors
        """
        variables = variables or {}
        attempts = self.max_retries if retry and not uploads else 1

        last_error: Exception | None = None
        last_status: int | None = None
        last_response: Any = None

        for attempt in range(attempts):
            if ctx is not None:
                ctx.check()
            self.stats.total_calls += 1
            kwargs = self._build_request(query, variables, uploads)
            started = time.monotonic()

            try:
                response = self.session.post(self.endpoint, timeout=self.timeout, **kwargs)
            except RequestException as e:
                last_error = e
                if attempt < attempts - 1:
                    self.stats.retried_calls += 1
                    backoff = self._calculate_backoff(attempt)
                    logger.warning(
                        f"Request error: {e}, retrying in {backoff:.1f}s "
                        f"(attempt {attempt + 1}/{attempts})"
                    )
                    self._sleep(backoff, ctx)
                    continue
                logger.error(f"Request failed after {attempts} attempts: {e}")
                break

            duration_ms = (time.monotonic() - started) * 1000
            log_api_call(logger, "POST", self.endpoint, response.status_code, duration_ms)

            headers = dict(response.headers)
            try:
                payload = response.json()
            except ValueError:
                payload = response.text

            last_status = response.status_code
            last_response = payload

            if self._should_retry(response.status_code) and attempt < attempts - 1:
                retry_after = self._get_retry_after(headers)
                backoff = self._calculate_backoff(attempt, retry_after)
                self.stats.retried_calls += 1
                logger.warning(
                    f"Request failed with {response.status_code}, "
                    f"retrying in {backoff:.1f}s (attempt {attempt + 1}/{attempts})"
                )
                self._sleep(backoff, ctx)
                continue

            if response.status_code == 429:
                self.stats.failed_calls += 1
                raise RateLimitError(self._get_retry_after(headers))

            if isinstance(payload, dict) and payload.get("errors"):
                self.stats.failed_calls += 1
                raise GraphQLError(payload["errors"], status_code=response.status_code)

            if response.status_code >= 400 or not isinstance(payload, dict):
                self.stats.failed_calls += 1
                raise GraphQLClientError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response=payload,
                )

            self.stats.successful_calls += 1
            return payload.get("data") or {}

        self.stats.failed_calls += 1

        if last_error:
            raise GraphQLClientError(
                f"Request failed after {attempts} attempts: {last_error}",
                status_code=last_status,
                response=last_response,
            )

        raise GraphQLClientError(
            f"Request failed with status {last_status} after {attempts} attempts",
            status_code=last_status,
            response=last_response,
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> "SrhtClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _set_path(target: dict[str, Any], dotted: str, value: Any) -> None:
    """Set `value` at a dotted path such as "files.0" inside nested dicts/lists."""
    parts = dotted.split(".")
    node: Any = target
    for part in parts[:-1]:
        node = node[int(part)] if isinstance(node, list) else node[part]
    last = parts[-1]
    if isinstance(node, list):
        node[int(last)] = value
    else:
        node[last] = value

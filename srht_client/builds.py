"""
Follow a builds.sr.ht job, streaming its logs as they are written.

The job is re-polled every second; each log keeps its own offset so every
cycle only transfers the bytes appended since the previous one.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Dict

from srht_export.fetcher import DownloadOffset, ResumableFetcher

from .context import OperationContext
from .graphql_client import SrhtClient

logger = logging.getLogger(__name__)

MONITOR_QUERY = """
query monitor($id: Int!) {
  job(id: $id) {
    id
    status
    log { fullURL }
    tasks {
      name
      status
      log { fullURL }
    }
  }
}
"""

POLL_INTERVAL = 1.0

JOB_PENDING_STATUSES = ("PENDING", "QUEUED")
JOB_ACTIVE_STATUSES = ("PENDING", "QUEUED", "RUNNING")
TASK_ACTIVE_STATUSES = ("PENDING", "RUNNING")

STATUS_ICONS = {
    "PENDING": "⌛",
    "QUEUED": "⌛",
    "RUNNING": "⌛",
    "SUCCESS": "✔",
    "FAILED": "✗",
    "TIMEOUT": "⏱️",
    "CANCELLED": "🛑",
}


def job_status_done(status: str) -> bool:
    """True once a job can no longer change."""
    return status not in JOB_ACTIVE_STATUSES


def job_status_icon(status: str) -> str:
    try:
        return STATUS_ICONS[status]
    except KeyError:
        raise ValueError(f"unknown job status: {status!r}") from None


def fetch_job_log(
    fetcher: ResumableFetcher,
    state: DownloadOffset,
    job: Dict[str, Any],
    sink: BinaryIO,
    ctx: OperationContext,
) -> None:
    if job["status"] in JOB_PENDING_STATUSES:
        return

    fetcher.fetch_range(job["log"]["fullURL"], state, sink, ctx)
    # The read succeeding says nothing about the stream being complete
    state.done = job_status_done(job["status"])


def fetch_task_log(
    fetcher: ResumableFetcher,
    state: DownloadOffset,
    task: Dict[str, Any],
    sink: BinaryIO,
    ctx: OperationContext,
) -> None:
    if task["status"] == "PENDING":
        return

    fetcher.fetch_range(task["log"]["fullURL"], state, sink, ctx)

    if task["status"] in TASK_ACTIVE_STATUSES:
        return
    state.done = True


def follow_job(
    client: SrhtClient,
    fetcher: ResumableFetcher,
    job_id: int,
    ctx: OperationContext,
    sink: BinaryIO,
    interval: float = POLL_INTERVAL,
) -> Dict[str, Any]:
    """
    Stream the logs of a job until it reaches a terminal status.

    Args:
        client: builds.sr.ht GraphQL client
        fetcher: Range-capable fetcher
        job_id: Job to follow
        ctx: Cancellation context, observed between polls and while streaming
        sink: Binary destination of the log bytes
        interval: Seconds between polls

    Returns:
        The final job object
    """
    logs: Dict[str, DownloadOffset] = {}

    while True:
        data = client.execute(MONITOR_QUERY, {"id": job_id}, ctx=ctx)
        job = data.get("job")
        if job is None:
            raise ValueError(f"job #{job_id} not found")

        if not logs:
            logs[""] = DownloadOffset()
            for task in job.get("tasks") or []:
                logs[task["name"]] = DownloadOffset()

        fetch_job_log(fetcher, logs[""], job, sink, ctx)
        for task in job.get("tasks") or []:
            state = logs.setdefault(task["name"], DownloadOffset())
            fetch_task_log(fetcher, state, task, sink, ctx)

        if job_status_done(job["status"]):
            logger.info(f"{job_status_icon(job['status'])} {job['status']}")
            return job

        ctx.wait(interval)

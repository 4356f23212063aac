"""
builds.sr.ht exporter - job logs and job metadata.

Only finished jobs (SUCCESS or FAILED) are exported. Each job gets a
directory named after its id holding _build.log, one <task>.log per
finished task and the info.json marker.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from srht_client.context import OperationContext

from .base import Exporter
from .types import PartialExportError, ResourceRecord, ServiceName

logger = logging.getLogger(__name__)

EXPORT_JOBS_QUERY = """
query exportJobs($cursor: Cursor) {
  jobs(cursor: $cursor) {
    results {
      id
      status
      note
      tags
      visibility
      log { fullURL }
      tasks {
        name
        status
        log { fullURL }
      }
    }
    cursor
  }
}
"""

EXPORTED_STATUSES = ("SUCCESS", "FAILED")

JOB_LOG_FILENAME = "_build.log"


class BuildsExporter(Exporter):
    """
    Export build jobs.

    A failed task log download is recorded as a partial error; sibling
    tasks and the job marker are still written.
    """

    service = ServiceName.BUILDS

    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        self.logger.info(f"Exporting {self.name}")
        jobs = self._walk(ctx, EXPORT_JOBS_QUERY, "jobs")
        self._export_items(ctx, jobs, lambda job: self._export_job(ctx, job, out_dir))

    def _export_job(self, ctx: OperationContext, job: Dict[str, Any], out_dir: Path) -> None:
        job_id = job["id"]
        if job.get("status") not in EXPORTED_STATUSES:
            self.logger.debug(f"Skipping #{job_id} (status {job.get('status')})")
            return

        job_dir = out_dir / str(job_id)
        job_dir.mkdir(parents=True, exist_ok=True)

        if self.markers.exists(job_dir):
            self.logger.info(f"Skipping #{job_id} (already exists)")
            return

        self.logger.info(f"Job #{job_id}")
        self.fetcher.download(
            job["log"]["fullURL"],
            job_dir / JOB_LOG_FILENAME,
            ctx,
            label=f"#{job_id}",
        )

        partial: List[Exception] = []
        for task in job.get("tasks") or []:
            try:
                self._export_task(ctx, job_id, task, job_dir)
            except PartialExportError as e:
                partial.append(e)

        self.markers.write(job_dir, ResourceRecord(
            service=self.name,
            name=str(job_id),
            fields={
                "id": job_id,
                "status": job.get("status"),
                "note": job.get("note"),
                "tags": job.get("tags") or [],
                "visibility": job.get("visibility"),
            },
        ))

        if partial:
            raise PartialExportError.collect(partial)

    def _export_task(self, ctx: OperationContext, job_id: int, task: Dict[str, Any], job_dir: Path) -> None:
        if task.get("status") not in EXPORTED_STATUSES:
            return

        name = task["name"]
        self.fetcher.download(
            task["log"]["fullURL"],
            job_dir / f"{name}.log",
            ctx,
            label=f"#{job_id}/{name}",
        )

"""
Export/import driver.

Runs the exporters of every configured service one after another, stamps
finished services, and replays an export directory through the importers.
A failure in one service or resource is logged and the run goes on;
cancellation stops everything.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from srht_client.config import SrhtConfig
from srht_client.context import OperationCancelled, OperationContext
from srht_client.graphql_client import SrhtClient
from srht_client.logging_config import LogContext
from srht_client.utils import host_of

from .base import Exporter
from .builds_exporter import BuildsExporter
from .fetcher import ResumableFetcher
from .git_exporter import GitExporter
from .hg_exporter import HgExporter
from .lists_exporter import ListsExporter
from .markers import MarkerStore
from .meta_exporter import MetaExporter
from .paste_exporter import PasteExporter
from .todo_exporter import TodoExporter
from .types import (
    ExportError,
    ExportStamp,
    ExportStatus,
    ImportSummary,
    PartialExportError,
    ServiceExportResult,
    ServiceName,
    UnsupportedOperation,
)

logger = logging.getLogger(__name__)

EXPORTER_CLASSES: Dict[ServiceName, type] = {
    ServiceName.META: MetaExporter,
    ServiceName.GIT: GitExporter,
    ServiceName.HG: HgExporter,
    ServiceName.BUILDS: BuildsExporter,
    ServiceName.PASTE: PasteExporter,
    ServiceName.LISTS: ListsExporter,
    ServiceName.TODO: TodoExporter,
}

# "https://git.sr.ht/~owner/name", "git.sr.ht/~owner/name"
RESOURCE_RE = re.compile(r"^(?:[a-z]+://)?(?P<host>[^/]+)/~?(?P<owner>[^/]+)/(?P<name>[^/]+?)/?$")


def build_exporters(
    config: SrhtConfig,
    services: Optional[Sequence[ServiceName]] = None,
    markers: Optional[MarkerStore] = None,
) -> List[Exporter]:
    """
    Create one exporter per service, in export order.

    Each exporter gets its own client bound to the service origin and a
    fetcher carrying the configured download timeout.
    """
    token = config.resolve_token()
    markers = markers or MarkerStore()
    exporters: List[Exporter] = []
    for service in services or list(ServiceName):
        client = SrhtClient(
            config.origin_for(service.short_name),
            token,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
        )
        fetcher = ResumableFetcher(client.session, timeout=config.download_timeout)
        exporters.append(EXPORTER_CLASSES[service](client, fetcher, markers))
    return exporters


def warn_missing_ssh_agent() -> None:
    if "SSH_AUTH_SOCK" not in os.environ:
        logger.warning("SSH_AUTH_SOCK is not set in your environment.")
        logger.warning(
            "Using an SSH agent is advised to avoid unlocking your SSH keys "
            "repeatedly during the transfer."
        )


class ExportDriver:
    """
    Drives export and import across services.

    Usage:
        driver = ExportDriver(build_exporters(config))
        results = driver.export_all(ctx, Path("backup"))
        summary = driver.import_all(ctx, Path("backup"))
    """

    def __init__(self, exporters: Iterable[Exporter], markers: Optional[MarkerStore] = None):
        self.exporters = list(exporters)
        self.markers = markers or MarkerStore()
        self.logger = logging.getLogger(f"{__name__}.ExportDriver")

    def exporter_for(self, service: str) -> Optional[Exporter]:
        for exporter in self.exporters:
            if exporter.name == service:
                return exporter
        return None

    def export_all(
        self,
        ctx: OperationContext,
        out_dir: Path,
        services: Optional[Sequence[str]] = None,
    ) -> List[ServiceExportResult]:
        """
        Export every service into out_dir/<service>.

        Args:
            ctx: Cancellation context
            out_dir: Export directory
            services: Restrict the run to these service names

        Returns:
            One result per service, in export order
        """
        self.logger.info("Exporting account data...")
        results = [
            self.export_service(ctx, out_dir, exporter)
            for exporter in self.exporters
            if services is None or exporter.name in services
        ]
        self.logger.info("Export complete.")
        return results

    def export_service(self, ctx: OperationContext, out_dir: Path, exporter: Exporter) -> ServiceExportResult:
        """Export one whole service, honouring and writing its export stamp."""
        service_dir = Path(out_dir) / exporter.name
        result = ServiceExportResult(
            service=exporter.name,
            status=ExportStatus.FAILED,
            output_dir=service_dir,
            started_at=datetime.now(timezone.utc),
        )

        with LogContext(service=exporter.name):
            try:
                service_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                self.logger.error(f"Failed to create export directory: {e}")
                result.error = f"failed to create export directory: {e}"
                result.finished_at = datetime.now(timezone.utc)
                return result

            if self.markers.stamp_exists(service_dir):
                self.logger.info(f"Skipping {exporter.name} (already exported)")
                result.status = ExportStatus.SKIPPED
                result.finished_at = datetime.now(timezone.utc)
                return result

            try:
                exporter.export(ctx, service_dir)
                result.status = ExportStatus.COMPLETED
            except OperationCancelled:
                raise
            except PartialExportError as e:
                self.logger.warning(f"{exporter.name} exported with errors: {e}")
                result.status = ExportStatus.PARTIAL
                result.error = str(e)
            except Exception as e:
                self.logger.error(f"Failed to export {exporter.name}: {e}")
                result.error = str(e)

            if result.status in (ExportStatus.COMPLETED, ExportStatus.PARTIAL):
                stamp = ExportStamp(
                    instance=exporter.base_url,
                    service=exporter.name,
                    date=datetime.now(timezone.utc),
                )
                try:
                    self.markers.write_stamp(service_dir, stamp)
                except (OSError, ExportError) as e:
                    self.logger.error(f"Failed writing stamp: {e}")
                    result.status = ExportStatus.FAILED
                    result.error = f"failed writing stamp: {e}"

        result.finished_at = datetime.now(timezone.utc)
        self.logger.debug(f"Service result: {result.to_dict()}")
        return result

    def export_resources(
        self,
        ctx: OperationContext,
        out_dir: Path,
        resources: Sequence[str],
    ) -> List[ServiceExportResult]:
        """
        Export selected services or single resources.

        A resource is either a service origin/hostname ("git.sr.ht") or a
        resource URL ("https://hg.sr.ht/~owner/name").
        """
        results: List[ServiceExportResult] = []
        for resource in resources:
            self.logger.info(resource)
            match = RESOURCE_RE.match(resource)
            host = host_of(match.group("host") if match else resource)

            exporter = next((e for e in self.exporters if host_of(e.base_url) == host), None)
            if exporter is None:
                raise ExportError(f"unknown resource instance: {resource}")

            if match is None:
                if self._has_path(resource):
                    self.logger.error(f"Unknown resource {resource!r}")
                    results.append(ServiceExportResult(
                        service=exporter.name,
                        status=ExportStatus.FAILED,
                        output_dir=Path(out_dir) / exporter.name,
                        error=f"unknown resource: {resource}",
                    ))
                    continue
                results.append(self.export_service(ctx, out_dir, exporter))
                continue

            owner, name = match.group("owner"), match.group("name")
            result = ServiceExportResult(
                service=exporter.name,
                status=ExportStatus.FAILED,
                output_dir=Path(out_dir) / exporter.name / name,
                started_at=datetime.now(timezone.utc),
            )
            with LogContext(service=exporter.name, resource=name):
                try:
                    service_dir = Path(out_dir) / exporter.name
                    if not exporter.supports_resource_export:
                        raise UnsupportedOperation(f"{exporter.name} cannot export single resources")
                    service_dir.mkdir(parents=True, exist_ok=True)
                    exporter.export_resource(ctx, service_dir, owner, name)
                    result.status = ExportStatus.COMPLETED
                except OperationCancelled:
                    raise
                except Exception as e:
                    self.logger.error(f"Failed to export {resource!r}: {e}")
                    result.error = str(e)
            result.finished_at = datetime.now(timezone.utc)
            results.append(result)
        return results

    @staticmethod
    def _has_path(resource: str) -> bool:
        path = resource.split("://", 1)[-1].partition("/")[2]
        return bool(path.strip("/"))

    def import_all(self, ctx: OperationContext, in_dir: Path) -> ImportSummary:
        """
        Replay every exported resource found below in_dir.

        Resources of services without an importer are skipped silently.

        Raises:
            ExportError: If the directory holds no exported data
        """
        records, broken = self.markers.find_resources(Path(in_dir))
        if not records and not broken:
            raise ExportError(f"no data found in directory {in_dir}")

        summary = ImportSummary(failed=dict(broken))
        self.logger.info("Importing account data...")

        last_service = None
        for record in records:
            ctx.check()
            exporter = self.exporter_for(record.service)
            if exporter is None or not exporter.supports_import:
                summary.skipped.append(str(record.path))
                continue

            if record.service != last_service:
                self.logger.info(record.service)
                last_service = record.service

            with LogContext(service=record.service, resource=record.name):
                self.logger.info(f"Importing {record.name}")
                try:
                    exporter.import_resource(ctx, record.path.parent)
                    summary.imported.append(str(record.path))
                except OperationCancelled:
                    raise
                except Exception as e:
                    self.logger.error(f"Error importing {str(record.path)!r}: {e}")
                    summary.failed[str(record.path)] = str(e)

        self.logger.info("Import complete.")
        self.logger.debug(f"Import summary: {summary.to_dict()}")
        return summary

"""
todo.sr.ht exporter - tracker dumps.

Each tracker is exported as the compressed dump produced by the service
(<name>/tracker.json.gz) with its settings in <name>/info.json.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from srht_client.context import OperationContext
from srht_client.graphql_client import Upload

from .base import Exporter
from .types import MarkerError, ResourceRecord, ServiceName

logger = logging.getLogger(__name__)

EXPORT_TRACKERS_QUERY = """
query exportTrackers($cursor: Cursor) {
  trackers(cursor: $cursor) {
    results {
      name
      description
      visibility
      export
    }
    cursor
  }
}
"""

CREATE_TRACKER_MUTATION = """
mutation createTracker($name: String!, $description: String, $visibility: Visibility!) {
  createTracker(name: $name, description: $description, visibility: $visibility) {
    id
  }
}
"""

IMPORT_DUMP_MUTATION = """
mutation importTrackerDump($id: Int!, $dump: Upload!) {
  importTrackerDump(trackerId: $id, dump: $dump)
}
"""

DUMP_FILENAME = "tracker.json.gz"


class TodoExporter(Exporter):
    """Export and import trackers."""

    service = ServiceName.TODO
    supports_import = True

    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        self.logger.info(f"Exporting {self.name}")
        trackers = self._walk(ctx, EXPORT_TRACKERS_QUERY, "trackers")
        self._export_items(ctx, trackers, lambda tracker: self._export_tracker(ctx, tracker, out_dir))

    def _export_tracker(self, ctx: OperationContext, tracker: Dict[str, Any], out_dir: Path) -> None:
        name = tracker["name"]
        tracker_dir = out_dir / name
        tracker_dir.mkdir(parents=True, exist_ok=True)

        if self.markers.exists(tracker_dir):
            self.logger.info(f"Skipping {name} (already exists)")
            return

        self.logger.info(f"Tracker {name}")
        self.fetcher.download(tracker["export"], tracker_dir / DUMP_FILENAME, ctx, label=name)

        self.markers.write(tracker_dir, ResourceRecord(
            service=self.name,
            name=name,
            fields={
                "description": tracker.get("description"),
                "visibility": tracker.get("visibility"),
            },
        ))

    def import_resource(self, ctx: OperationContext, resource_dir: Path) -> None:
        record = self.markers.read(resource_dir)
        dump = resource_dir / DUMP_FILENAME
        if not dump.is_file():
            raise MarkerError(f"{resource_dir}: missing {DUMP_FILENAME}")

        data = self._mutate(ctx, CREATE_TRACKER_MUTATION, {
            "name": record.name,
            "description": record.get("description"),
            "visibility": record.get("visibility") or "PUBLIC",
        })
        tracker_id = data["createTracker"]["id"]

        with open(dump, "rb") as f:
            self._mutate(
                ctx,
                IMPORT_DUMP_MUTATION,
                {"id": tracker_id, "dump": None},
                uploads={"dump": Upload(DUMP_FILENAME, f, "application/gzip")},
            )

        self.logger.info(f"Imported tracker {record.name}")

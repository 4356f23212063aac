"""
lists.sr.ht exporter - mailing list archives.

Each list is exported as <name>/archive.mbox with its settings in
<name>/info.json. The archive is fetched with a single long GET.
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

EXPORT_LISTS_QUERY = """
query exportMailingLists($cursor: Cursor) {
  me {
    lists(cursor: $cursor) {
      results {
        name
        description
        visibility
        permitMime
        rejectMime
        archive
      }
      cursor
    }
  }
}
"""

CREATE_LIST_MUTATION = """
mutation createMailingList($name: String!, $description: String, $visibility: Visibility!) {
  createMailingList(name: $name, description: $description, visibility: $visibility) {
    id
  }
}
"""

UPDATE_LIST_MUTATION = """
mutation updateMailingList($id: Int!, $input: MailingListInput!) {
  updateMailingList(id: $id, input: $input) {
    id
  }
}
"""

IMPORT_SPOOL_MUTATION = """
mutation importMailingListSpool($id: Int!, $spool: Upload!) {
  importMailingListSpool(listID: $id, spool: $spool)
}
"""

ARCHIVE_FILENAME = "archive.mbox"


class ListsExporter(Exporter):
    """Export and import mailing lists."""

    service = ServiceName.LISTS
    supports_import = True

    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        self.logger.info(f"Exporting {self.name}")
        lists = self._walk(ctx, EXPORT_LISTS_QUERY, "me.lists")
        self._export_items(ctx, lists, lambda ml: self._export_list(ctx, ml, out_dir))

    def _export_list(self, ctx: OperationContext, mailing_list: Dict[str, Any], out_dir: Path) -> None:
        name = mailing_list["name"]
        list_dir = out_dir / name
        list_dir.mkdir(parents=True, exist_ok=True)

        if self.markers.exists(list_dir):
            self.logger.info(f"Skipping {name} (already exists)")
            return

        self.logger.info(f"List {name}")
        self.fetcher.download(mailing_list["archive"], list_dir / ARCHIVE_FILENAME, ctx, label=name)

        self.markers.write(list_dir, ResourceRecord(
            service=self.name,
            name=name,
            fields={
                "description": mailing_list.get("description"),
                "visibility": mailing_list.get("visibility"),
                "permitMime": mailing_list.get("permitMime") or [],
                "rejectMime": mailing_list.get("rejectMime") or [],
            },
        ))

    def import_resource(self, ctx: OperationContext, resource_dir: Path) -> None:
        record = self.markers.read(resource_dir)
        archive = resource_dir / ARCHIVE_FILENAME
        if not archive.is_file():
            raise MarkerError(f"{resource_dir}: missing {ARCHIVE_FILENAME}")

        data = self._mutate(ctx, CREATE_LIST_MUTATION, {
            "name": record.name,
            "description": record.get("description"),
            "visibility": record.get("visibility") or "PUBLIC",
        })
        list_id = data["createMailingList"]["id"]

        self._mutate(ctx, UPDATE_LIST_MUTATION, {
            "id": list_id,
            "input": {
                "permitMime": record.get("permitMime", []),
                "rejectMime": record.get("rejectMime", []),
            },
        })

        with open(archive, "rb") as spool:
            self._mutate(
                ctx,
                IMPORT_SPOOL_MUTATION,
                {"id": list_id, "spool": None},
                uploads={"spool": Upload(ARCHIVE_FILENAME, spool, "application/mbox")},
            )

        self.logger.info(f"Imported list {record.name}")

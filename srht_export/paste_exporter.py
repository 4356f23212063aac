"""
paste.sr.ht exporter - paste files and visibility.

Layout: <paste id>/files/<filename> plus <paste id>/info.json. Unnamed
files are stored under the paste id.
"""

from __future__ import annotations

import logging
import mimetypes
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, List

from srht_client.context import OperationContext
from srht_client.graphql_client import Upload

from .base import Exporter
from .types import MarkerError, PartialExportError, ResourceRecord, ServiceName

logger = logging.getLogger(__name__)

EXPORT_PASTES_QUERY = """
query exportPastes($cursor: Cursor) {
  me {
    pastes(cursor: $cursor) {
      results {
        id
        visibility
        files {
          filename
          hash
          contents
        }
      }
      cursor
    }
  }
}
"""

CREATE_PASTE_MUTATION = """
mutation createPaste($files: [Upload!]!, $visibility: Visibility!) {
  create(files: $files, visibility: $visibility) {
    id
  }
}
"""

FILES_DIRNAME = "files"


class PasteExporter(Exporter):
    """
    Export and import pastes.

    A failed file download is partial: the other files and the paste
    marker are still written.
    """

    service = ServiceName.PASTE
    supports_import = True

    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        self.logger.info(f"Exporting {self.name}")
        pastes = self._walk(ctx, EXPORT_PASTES_QUERY, "me.pastes")
        self._export_items(ctx, pastes, lambda paste: self._export_paste(ctx, paste, out_dir))

    def _export_paste(self, ctx: OperationContext, paste: Dict[str, Any], out_dir: Path) -> None:
        paste_id = paste["id"]
        paste_dir = out_dir / paste_id
        if self.markers.exists(paste_dir):
            self.logger.info(f"Skipping {paste_id} (already exists)")
            return

        self.logger.info(f"Paste {paste_id}")
        files_dir = paste_dir / FILES_DIRNAME
        files_dir.mkdir(parents=True, exist_ok=True)

        partial: List[Exception] = []
        names: List[str] = []
        for file in paste.get("files") or []:
            name = file.get("filename") or paste_id
            names.append(name)
            try:
                self.fetcher.download(
                    file["contents"],
                    files_dir / name,
                    ctx,
                    label=f"{paste_id}/{name}",
                )
            except PartialExportError as e:
                partial.append(e)

        self.markers.write(paste_dir, ResourceRecord(
            service=self.name,
            name=paste_id,
            fields={
                "visibility": paste.get("visibility"),
                "files": names,
            },
        ))

        if partial:
            raise PartialExportError.collect(partial)

    def import_resource(self, ctx: OperationContext, resource_dir: Path) -> None:
        record = self.markers.read(resource_dir)
        files_dir = resource_dir / FILES_DIRNAME
        if not files_dir.is_dir():
            raise MarkerError(f"{resource_dir}: missing {FILES_DIRNAME}/ directory")

        paths = sorted(p for p in files_dir.iterdir() if p.is_file() and not p.name.endswith(".part"))
        if not paths:
            raise MarkerError(f"{resource_dir}: paste has no files")

        with ExitStack() as stack:
            uploads: Dict[str, Upload] = {}
            for index, path in enumerate(paths):
                # Files stored under the paste id had no name
                filename = "" if path.name == record.name else path.name
                mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"
                body = stack.enter_context(open(path, "rb"))
                uploads[f"files.{index}"] = Upload(filename, body, mime_type)

            data = self._mutate(
                ctx,
                CREATE_PASTE_MUTATION,
                {"files": [None] * len(paths), "visibility": record.get("visibility", "UNLISTED")},
                uploads=uploads,
            )

        self.logger.info(f"Created paste {data['create']['id']} from {record.name}")

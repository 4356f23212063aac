"""
Marker store for idempotent, restartable exports.

Two kinds of JSON files make up the on-disk state:

- info.json inside a resource directory: the resource was fully exported,
  and holds what import needs to recreate it.
- export-stamp.json inside a service directory: the whole service pass
  finished and should not be re-run.

Both are created once and never rewritten.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .schema import validate_record, validate_stamp
from .types import ExportStamp, MarkerError, MarkerExistsError, ResourceRecord

logger = logging.getLogger(__name__)

INFO_FILENAME = "info.json"
STAMP_FILENAME = "export-stamp.json"


class MarkerStore:
    """
    Reads and writes marker files.

    Usage:
        markers = MarkerStore()
        if markers.exists(job_dir):
            return  # already exported
        ...download artifacts...
        markers.write(job_dir, ResourceRecord("builds.sr.ht", "42", {...}))
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.MarkerStore")

    def info_path(self, resource_dir: Path) -> Path:
        return Path(resource_dir) / INFO_FILENAME

    def stamp_path(self, service_dir: Path) -> Path:
        return Path(service_dir) / STAMP_FILENAME

    def exists(self, resource_dir: Path) -> bool:
        """
        Check whether a resource was already exported.

        Args:
            resource_dir: Directory of one resource

        Returns:
            True if its info.json marker exists
        """
        return self.info_path(resource_dir).is_file()

    def read(self, resource_dir: Path) -> ResourceRecord:
        """
        Load and validate the marker of a resource.

        Raises:
            MarkerError: If the file is missing, not JSON or fails validation
        """
        path = self.info_path(resource_dir)
        data = self._load(path)

        ok, errors = validate_record(data)
        if not ok:
            raise MarkerError(f"{path}: invalid marker: {'; '.join(errors)}")

        return ResourceRecord.from_dict(data, path=path)

    def write(self, resource_dir: Path, record: ResourceRecord) -> Path:
        """
        Create the marker of a resource.

        Raises:
            MarkerExistsError: If the marker already exists
        """
        path = self.info_path(resource_dir)
        self._create(path, record.to_dict())
        record.path = path
        self.logger.debug(f"Wrote marker {path}")
        return path

    def stamp_exists(self, service_dir: Path) -> bool:
        return self.stamp_path(service_dir).is_file()

    def read_stamp(self, service_dir: Path) -> ExportStamp:
        """Load the export stamp of a service directory."""
        path = self.stamp_path(service_dir)
        data = self._load(path)

        ok, errors = validate_stamp(data)
        if not ok:
            raise MarkerError(f"{path}: invalid export stamp: {'; '.join(errors)}")

        try:
            return ExportStamp.from_dict(data)
        except ValueError as e:
            raise MarkerError(f"{path}: invalid export stamp: {e}") from e

    def write_stamp(self, service_dir: Path, stamp: ExportStamp) -> Path:
        """Create the export stamp of a service directory."""
        path = self.stamp_path(service_dir)
        self._create(path, stamp.to_dict())
        self.logger.debug(f"Wrote export stamp {path}")
        return path

    def find_resources(self, root: Path) -> Tuple[List[ResourceRecord], Dict[str, str]]:
        """
        Discover exported resources below `root`.

        Records are returned in directory walk order. Markers that cannot be
        read are returned separately, keyed by path, with the reason.

        Args:
            root: Export directory

        Returns:
            Tuple of (records, unreadable markers)
        """
        records: List[ResourceRecord] = []
        broken: Dict[str, str] = {}

        for dirpath, dirnames, filenames in os.walk(root):
            if INFO_FILENAME not in filenames:
                continue
            # Nothing below a resource marker is a marker
            dirnames[:] = []
            try:
                records.append(self.read(Path(dirpath)))
            except MarkerError as e:
                self.logger.error(f"Unreadable marker in {dirpath}: {e}")
                broken[str(Path(dirpath) / INFO_FILENAME)] = str(e)

        return records, broken

    def _load(self, path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError as e:
            raise MarkerError(f"{path}: marker not found") from e
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MarkerError(f"{path}: failed to read marker: {e}") from e

    def _create(self, path: Path, data: Dict[str, Any]) -> None:
        """Write JSON to a new file, flushing it to disk before returning."""
        try:
            f = open(path, "x", encoding="utf-8")
        except FileExistsError as e:
            raise MarkerExistsError(f"{path}: marker already exists") from e

        try:
            with f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            # A half-written marker would read as "exported"
            path.unlink(missing_ok=True)
            raise

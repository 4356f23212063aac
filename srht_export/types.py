"""
Type definitions for the export engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from srht_client.utils import parse_iso


class ServiceName(str, Enum):
    """Services known to the export engine, in export order."""
    META = "meta.sr.ht"
    GIT = "git.sr.ht"
    HG = "hg.sr.ht"
    BUILDS = "builds.sr.ht"
    PASTE = "paste.sr.ht"
    LISTS = "lists.sr.ht"
    TODO = "todo.sr.ht"

    @property
    def short_name(self) -> str:
        """Short name used for configuration ("git")."""
        return self.value.split(".", 1)[0]


class ExportStatus(str, Enum):
    """Outcome of exporting one service."""
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExportError(Exception):
    """Base class for export/import engine errors."""


class PartialExportError(ExportError):
    """
    One or more sub-resources failed while their siblings were processed.

    This is the "partial" kind: the walk went on and made progress. Fatal
    failures are any other exception.
    """

    def __init__(self, errors: List[Exception]):
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = f"{len(self.errors)} items failed: " + "; ".join(str(e) for e in self.errors)
        super().__init__(message)

    @classmethod
    def collect(cls, errors: List[Exception]) -> "PartialExportError":
        """Flatten nested partial errors into one."""
        flat: List[Exception] = []
        for err in errors:
            if isinstance(err, PartialExportError):
                flat.extend(err.errors)
            else:
                flat.append(err)
        return cls(flat)


class FetchError(ExportError):
    """Fatal download failure (transport error, unexpected response)."""


class RangeNotSatisfiedError(FetchError):
    """The server did not answer a range request with 206 Partial Content."""

    def __init__(self, status_code: int, reason: str = ""):
        super().__init__(
            f"invalid HTTP status: want 206 Partial Content, got: {status_code} {reason}".rstrip()
        )
        self.status_code = status_code


class ContentRangeError(FetchError):
    """The Content-Range response header could not be parsed."""


class MarkerError(ExportError):
    """A marker file is missing, unreadable or invalid."""


class MarkerExistsError(MarkerError):
    """Attempt to create a marker that already exists."""


class PaginationError(ExportError):
    """A collection walk exceeded its page bound."""


class VCSCommandError(ExportError):
    """An external git/hg command exited with a non-zero status."""

    def __init__(self, args: List[str], returncode: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        super().__init__(
            f"{' '.join(args[:2])} exited with status {returncode}"
            + (f": {detail}" if detail else "")
        )
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr


class UnsupportedOperation(ExportError):
    """The service does not implement the requested capability."""


@dataclass
class ResourceRecord:
    """
    Content of an info.json marker.

    `service` and `name` are common to every service; everything else lives
    in `fields` and is written at the top level of the JSON object.
    """
    service: str
    name: str
    fields: Dict[str, Any] = field(default_factory=dict)
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk dictionary."""
        data: Dict[str, Any] = {"service": self.service, "name": self.name}
        for key, value in self.fields.items():
            if key not in data:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[Path] = None) -> ResourceRecord:
        """Create from the on-disk dictionary."""
        fields = {k: v for k, v in data.items() if k not in ("service", "name")}
        return cls(service=data["service"], name=data["name"], fields=fields, path=path)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass
class ExportStamp:
    """Per-service completion marker (export-stamp.json)."""
    instance: str
    service: str
    date: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instance": self.instance,
            "service": self.service,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ExportStamp:
        return cls(
            instance=data["instance"],
            service=data["service"],
            date=parse_iso(data["date"]),
        )


@dataclass
class ServiceExportResult:
    """Result of exporting one service."""
    service: str
    status: ExportStatus
    output_dir: Path
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service": self.service,
            "status": self.status.value,
            "output_dir": str(self.output_dir),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }


@dataclass
class ImportSummary:
    """Counts gathered while replaying an export directory."""
    imported: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "failed": self.failed,
        }

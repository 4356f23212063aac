"""
sr.ht export engine - bulk export and import of account data.

This package provides:
- Cursor pagination over GraphQL collections
- Resumable HTTP downloads for artifacts and live build logs
- info.json / export-stamp.json markers that make exports restartable
- One exporter per service (meta, git, hg, builds, paste, lists, todo)
- A driver running them all and replaying exports through the importers
"""

__version__ = "0.1.0"

from .types import (
    ExportError,
    ExportStamp,
    ExportStatus,
    ImportSummary,
    PartialExportError,
    ResourceRecord,
    ServiceExportResult,
    ServiceName,
)
from .markers import MarkerStore
from .paginator import Page, paginate
from .fetcher import DownloadOffset, ResumableFetcher
from .base import Exporter
from .driver import ExportDriver, build_exporters

__all__ = [
    "DownloadOffset",
    "ExportDriver",
    "ExportError",
    "ExportStamp",
    "ExportStatus",
    "Exporter",
    "ImportSummary",
    "MarkerStore",
    "Page",
    "PartialExportError",
    "ResourceRecord",
    "ResumableFetcher",
    "ServiceExportResult",
    "ServiceName",
    "build_exporters",
    "paginate",
    "__version__",
]

"""
Common base of the per-service exporters.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List

from srht_client.context import OperationContext
from srht_client.graphql_client import SrhtClient

from .fetcher import ResumableFetcher
from .markers import MarkerStore
from .paginator import walk
from .types import PartialExportError, ServiceName, UnsupportedOperation


class Exporter(ABC):
    """
    Exports one service's resources to disk and, where supported, replays
    them against an account.

    Subclasses set `service` and override export(); services that can be
    imported set `supports_import` and override import_resource().
    """

    service: ServiceName
    supports_import = False
    supports_resource_export = False

    def __init__(
        self,
        client: SrhtClient,
        fetcher: ResumableFetcher | None = None,
        markers: MarkerStore | None = None,
    ):
        """
        Initialize the exporter.

        Args:
            client: GraphQL client bound to this service's origin
            fetcher: Downloader for artifacts, carrying the download timeout
            markers: Marker store
        """
        self.client = client
        self.fetcher = fetcher or ResumableFetcher(client.session)
        self.markers = markers or MarkerStore()
        self.logger = logging.getLogger(f"{type(self).__module__}.{type(self).__name__}")

    @property
    def name(self) -> str:
        return self.service.value

    @property
    def base_url(self) -> str:
        return self.client.base_url

    @abstractmethod
    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        """
        Export every resource of the service into `out_dir`.

        Raises:
            PartialExportError: Some items degraded, the rest were exported
        """

    def export_resource(self, ctx: OperationContext, out_dir: Path, owner: str, name: str) -> None:
        """Export a single resource identified by owner and name."""
        raise UnsupportedOperation(f"exporting individual {self.name} resources is not supported")

    def import_resource(self, ctx: OperationContext, resource_dir: Path) -> None:
        """Recreate the resource exported into `resource_dir`."""
        raise UnsupportedOperation(f"importing {self.name} resources is not supported")

    def _walk(
        self,
        ctx: OperationContext,
        query: str,
        path: str,
        variables: Dict[str, Any] | None = None,
    ) -> Iterable[Any]:
        return walk(self.client, query, path, variables, ctx)

    def _mutate(self, ctx: OperationContext, query: str, variables: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        return self.client.execute(query, variables, ctx=ctx, retry=False, **kwargs)

    def _export_items(self, ctx: OperationContext, items: Iterable[Any], export_one) -> None:
        """
        Run export_one for each item, collecting partial errors.

        Fatal errors propagate at once; partial ones are raised together
        after the last item.
        """
        partial: List[Exception] = []
        for item in items:
            ctx.check()
            try:
                export_one(item)
            except PartialExportError as e:
                self.logger.warning(f"Partial failure: {e}")
                partial.append(e)

        if partial:
            raise PartialExportError.collect(partial)

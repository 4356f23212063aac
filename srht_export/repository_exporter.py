"""
Shared logic of the git.sr.ht and hg.sr.ht exporters.

Repositories are cloned over SSH with the native tool. The clone directory
doubles as the export marker: when it exists the repository is skipped.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from pathlib import Path
from typing import Any, Dict

from srht_client.context import OperationContext
from srht_client.utils import host_of

from .base import Exporter
from .types import MarkerError, ResourceRecord

logger = logging.getLogger(__name__)


class RepositoryExporter(Exporter):
    """
    Base for version-control services.

    Subclasses provide the queries, the clone directory name, how clone
    URLs are built and how clone/push are run.
    """

    supports_import = True
    supports_resource_export = True

    REPOSITORIES_QUERY: str
    REPOSITORY_QUERY: str
    CLONE_DIRNAME: str

    @property
    def host(self) -> str:
        return host_of(self.base_url)

    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        self.logger.info(f"Exporting {self.name}")
        self._prepare(ctx)
        repos = self._walk(ctx, self.REPOSITORIES_QUERY, "repositories")
        self._export_items(ctx, repos, lambda repo: self._export_repository(ctx, repo, out_dir))

    def export_resource(self, ctx: OperationContext, out_dir: Path, owner: str, name: str) -> None:
        self._prepare(ctx)
        data = self.client.execute(
            self.REPOSITORY_QUERY,
            {"username": owner.lstrip("~"), "name": name},
            ctx=ctx,
        )
        repo = (data.get("user") or {}).get("repository")
        if repo is None:
            raise MarkerError(f"repository ~{owner.lstrip('~')}/{name} not found")
        self._export_repository(ctx, repo, out_dir)

    def _prepare(self, ctx: OperationContext) -> None:
        """Hook run once before any clone."""

    def _export_repository(self, ctx: OperationContext, repo: Dict[str, Any], out_dir: Path) -> None:
        name = repo["name"]
        repo_dir = out_dir / name
        clone_dir = repo_dir / self.CLONE_DIRNAME

        if clone_dir.exists():
            self.logger.info(f"Skipping {name} (already exists)")
            return
        if self.markers.exists(repo_dir):
            self.logger.info(f"Skipping {name} (already exported)")
            return

        repo_dir.mkdir(parents=True, exist_ok=True)
        url = self.clone_url(repo["owner"]["canonicalName"], name)
        self.logger.info(f"Cloning {name}")
        self.clone(url, clone_dir, ctx)

        self.markers.write(repo_dir, ResourceRecord(
            service=self.name,
            name=name,
            fields=self.record_fields(repo),
        ))

    def import_resource(self, ctx: OperationContext, resource_dir: Path) -> None:
        record = self.markers.read(resource_dir)
        clone_dir = resource_dir / self.CLONE_DIRNAME
        if not clone_dir.is_dir():
            raise MarkerError(f"{resource_dir}: missing {self.CLONE_DIRNAME}")

        self._prepare(ctx)
        owner = self.create_repository(ctx, record)
        url = self.clone_url(owner, record.name)
        self.logger.info(f"Pushing {record.name} to {url}")
        self.push(clone_dir, url, ctx)

    @abstractmethod
    def clone_url(self, owner: str, name: str) -> str:
        """SSH clone URL of a repository."""

    @abstractmethod
    def clone(self, url: str, dest: Path, ctx: OperationContext) -> None:
        """Clone `url` into `dest`."""

    @abstractmethod
    def push(self, repo: Path, url: str, ctx: OperationContext) -> None:
        """Push every ref of `repo` to `url`."""

    def record_fields(self, repo: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "description": repo.get("description"),
            "visibility": repo.get("visibility"),
        }

    @abstractmethod
    def create_repository(self, ctx: OperationContext, record: ResourceRecord) -> str:
        """Create the remote repository, returning its owner's canonical name."""

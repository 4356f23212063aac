"""
hg.sr.ht exporter - Mercurial clones plus readme and publishing settings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from srht_client.context import OperationContext

from . import vcs
from .repository_exporter import RepositoryExporter
from .types import ResourceRecord, ServiceName

logger = logging.getLogger(__name__)

REPOSITORY_FIELDS = """
      name
      description
      visibility
      readme
      nonPublishing
      owner { canonicalName }
"""

REPOSITORIES_QUERY = """
query repositories($cursor: Cursor) {
  repositories(cursor: $cursor) {
    results {%s}
    cursor
  }
}
""" % REPOSITORY_FIELDS

REPOSITORY_QUERY = """
query repositoryByName($username: String!, $name: String!) {
  user(username: $username) {
    repository(name: $name) {%s}
  }
}
""" % REPOSITORY_FIELDS

CREATE_REPOSITORY_MUTATION = """
mutation createRepository($name: String!, $visibility: Visibility!, $description: String) {
  createRepository(name: $name, visibility: $visibility, description: $description) {
    id
    owner { canonicalName }
  }
}
"""

UPDATE_REPOSITORY_MUTATION = """
mutation updateRepository($id: Int!, $input: RepoInput!) {
  updateRepository(id: $id, input: $input) { id }
}
"""


class HgExporter(RepositoryExporter):
    """Export Mercurial repositories with `hg clone -U`."""

    service = ServiceName.HG
    REPOSITORIES_QUERY = REPOSITORIES_QUERY
    REPOSITORY_QUERY = REPOSITORY_QUERY
    CLONE_DIRNAME = "repository"

    def clone_url(self, owner: str, name: str) -> str:
        return f"ssh://hg@{self.host}/{owner}/{name}"

    def clone(self, url: str, dest: Path, ctx: OperationContext) -> None:
        vcs.hg_clone(url, dest, ctx)

    def push(self, repo: Path, url: str, ctx: OperationContext) -> None:
        vcs.hg_push(repo, url, ctx)

    def record_fields(self, repo: Dict[str, Any]) -> Dict[str, Any]:
        fields = super().record_fields(repo)
        fields["readme"] = repo.get("readme")
        fields["nonPublishing"] = bool(repo.get("nonPublishing"))
        return fields

    def create_repository(self, ctx: OperationContext, record: ResourceRecord) -> str:
        data = self._mutate(ctx, CREATE_REPOSITORY_MUTATION, {
            "name": record.name,
            "visibility": record.get("visibility", "PUBLIC"),
            "description": record.get("description"),
        })
        created = data["createRepository"]

        settings: Dict[str, Any] = {}
        if record.get("readme") is not None:
            settings["readme"] = record.get("readme")
        if record.get("nonPublishing"):
            settings["nonPublishing"] = True
        if settings:
            self._mutate(ctx, UPDATE_REPOSITORY_MUTATION, {"id": created["id"], "input": settings})

        return created["owner"]["canonicalName"]

"""
git.sr.ht exporter - mirror clones of every repository.
"""

from __future__ import annotations

import logging
from pathlib import Path

from srht_client.context import OperationContext

from . import vcs
from .repository_exporter import RepositoryExporter
from .types import ResourceRecord, ServiceName

logger = logging.getLogger(__name__)

SSH_SETTINGS_QUERY = """
query sshSettings {
  settings { sshUser }
}
"""

REPOSITORY_FIELDS = """
      name
      description
      visibility
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


class GitExporter(RepositoryExporter):
    """Export git repositories with `git clone --mirror`."""

    service = ServiceName.GIT
    REPOSITORIES_QUERY = REPOSITORIES_QUERY
    REPOSITORY_QUERY = REPOSITORY_QUERY
    CLONE_DIRNAME = "repository.git"

    ssh_user: str | None = None

    def _prepare(self, ctx: OperationContext) -> None:
        if self.ssh_user is None:
            data = self.client.execute(SSH_SETTINGS_QUERY, ctx=ctx)
            self.ssh_user = data["settings"]["sshUser"]

    def clone_url(self, owner: str, name: str) -> str:
        return f"{self.ssh_user}@{self.host}:{owner}/{name}"

    def clone(self, url: str, dest: Path, ctx: OperationContext) -> None:
        vcs.git_mirror_clone(url, dest, ctx)

    def push(self, repo: Path, url: str, ctx: OperationContext) -> None:
        vcs.git_mirror_push(repo, url, ctx)

    def create_repository(self, ctx: OperationContext, record: ResourceRecord) -> str:
        data = self._mutate(ctx, CREATE_REPOSITORY_MUTATION, {
            "name": record.name,
            "visibility": record.get("visibility", "PUBLIC"),
            "description": record.get("description"),
        })
        return data["createRepository"]["owner"]["canonicalName"]

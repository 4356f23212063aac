"""
meta.sr.ht exporter - profile, SSH keys and PGP keys.

Unlike the other services there is no per-resource skip: every run
rewrites profile.json, ssh.keys, keys.pgp and info.json.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

from srht_client.context import OperationContext
from srht_client.graphql_client import GraphQLClientError
from srht_client.utils import write_json

from .base import Exporter
from .markers import INFO_FILENAME
from .types import ResourceRecord, ServiceName

logger = logging.getLogger(__name__)

PROFILE_QUERY = """
query fetchMe {
  me {
    canonicalName
    username
    email
    url
    location
    bio
  }
}
"""

SSH_KEYS_QUERY = """
query listRawSSHKeys($cursor: Cursor) {
  me {
    sshKeys(cursor: $cursor) {
      results { key }
      cursor
    }
  }
}
"""

PGP_KEYS_QUERY = """
query listRawPGPKeys($cursor: Cursor) {
  me {
    pgpKeys(cursor: $cursor) {
      results { key }
      cursor
    }
  }
}
"""

CREATE_SSH_KEY_MUTATION = """
mutation createSSHKey($key: String!) {
  createSSHKey(key: $key) { id }
}
"""

CREATE_PGP_KEY_MUTATION = """
mutation createPGPKey($key: String!) {
  createPGPKey(key: $key) { id }
}
"""

PROFILE_FILENAME = "profile.json"
SSH_KEYS_FILENAME = "ssh.keys"
PGP_KEYS_FILENAME = "keys.pgp"


class MetaExporter(Exporter):
    """Export the account profile and keys; import the keys."""

    service = ServiceName.META
    supports_import = True

    def export(self, ctx: OperationContext, out_dir: Path) -> None:
        self.logger.info(f"Exporting {self.name}")
        out_dir.mkdir(parents=True, exist_ok=True)

        me = self.client.execute(PROFILE_QUERY, ctx=ctx)["me"]
        write_json(out_dir / PROFILE_FILENAME, me)

        with open(out_dir / SSH_KEYS_FILENAME, "w", encoding="utf-8") as f:
            count = self._write_keys(ctx, SSH_KEYS_QUERY, "me.sshKeys", f)
        self.logger.info(f"Exported {count} SSH key(s)")

        with open(out_dir / PGP_KEYS_FILENAME, "w", encoding="utf-8") as f:
            count = self._write_keys(ctx, PGP_KEYS_QUERY, "me.pgpKeys", f)
        self.logger.info(f"Exported {count} PGP key(s)")

        # Rewritten on every run, so not created through MarkerStore.write()
        record = ResourceRecord(service=self.name, name=me["canonicalName"])
        write_json(out_dir / INFO_FILENAME, record.to_dict())

    def _write_keys(self, ctx: OperationContext, query: str, path: str, out: TextIO) -> int:
        count = 0
        for key in self._walk(ctx, query, path):
            out.write(key["key"].rstrip("\n") + "\n")
            count += 1
        return count

    def import_resource(self, ctx: OperationContext, resource_dir: Path) -> None:
        self.markers.read(resource_dir)

        with open(resource_dir / SSH_KEYS_FILENAME, "r", encoding="utf-8") as f:
            for line in f:
                key = line.strip()
                if not key:
                    continue
                try:
                    self._mutate(ctx, CREATE_SSH_KEY_MUTATION, {"key": key})
                except GraphQLClientError as e:
                    self.logger.error(f"Error importing SSH key: {e}")

        key_lines: list[str] = []
        with open(resource_dir / PGP_KEYS_FILENAME, "r", encoding="utf-8") as f:
            for line in f:
                line = line.rstrip("\n")
                if line.startswith("-----BEGIN"):
                    key_lines = []
                key_lines.append(line)
                if line.startswith("-----END"):
                    try:
                        self._mutate(ctx, CREATE_PGP_KEY_MUTATION, {"key": "\n".join(key_lines) + "\n"})
                    except GraphQLClientError as e:
                        self.logger.error(f"Error importing PGP key: {e}")
                    key_lines = []

        if "".join(key_lines).strip():
            self.logger.error("Error importing PGP key: malformed file")

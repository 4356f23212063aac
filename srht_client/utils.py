"""
Utility functions shared by the client and the export engine.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any


def parse_iso(timestamp: str) -> datetime:
    """Parse ISO8601 timestamp string to datetime."""
    return datetime.fromisoformat(timestamp.replace("Z", "+00:00"))


def write_json(path: Path, data: Any, indent: int = 2) -> None:
    """
    Write data to JSON file, replacing any previous content.

    Args:
        path: File path
        data: Data to serialize
        indent: JSON indentation
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, sort_keys=False)
        f.write("\n")


def lookup(data: Any, dotted: str) -> Any:
    """
    Follow a dotted path ("me.repositories") through nested dicts.

    Returns None as soon as a segment is missing or null.
    """
    node = data
    for part in dotted.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
        if node is None:
            return None
    return node


def host_of(url: str) -> str:
    """Hostname (with port) of an origin URL."""
    if "://" in url:
        url = url.split("://", 1)[1]
    return url.split("/", 1)[0]

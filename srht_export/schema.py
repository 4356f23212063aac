"""
JSON Schema definitions for the on-disk export layout.

Defines the structure of info.json markers (common part plus per-service
fields) and of export-stamp.json files.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

VISIBILITY = {"type": "string", "enum": ["PUBLIC", "UNLISTED", "PRIVATE"]}
NULLABLE_STRING = {"type": ["string", "null"]}
NULLABLE_VISIBILITY = {"type": ["string", "null"], "enum": ["PUBLIC", "UNLISTED", "PRIVATE", None]}

# JSON Schema shared by every info.json marker
MARKER_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Resource marker",
    "description": "Presence means the resource was fully exported",
    "type": "object",
    "required": ["service", "name"],
    "properties": {
        "service": {
            "type": "string",
            "pattern": r"^[a-z]+\.",
            "description": "Service the resource belongs to (e.g. git.sr.ht)",
        },
        "name": {
            "type": "string",
            "minLength": 1,
            "description": "Stable identifier of the resource within its service",
        },
    },
}

# Extra constraints checked on top of MARKER_SCHEMA, per service
SERVICE_SCHEMAS: dict[str, dict[str, Any]] = {
    "git.sr.ht": {
        "type": "object",
        "required": ["visibility"],
        "properties": {
            "description": NULLABLE_STRING,
            "visibility": VISIBILITY,
        },
    },
    "hg.sr.ht": {
        "type": "object",
        "required": ["visibility"],
        "properties": {
            "description": NULLABLE_STRING,
            "visibility": VISIBILITY,
            "readme": NULLABLE_STRING,
            "nonPublishing": {"type": "boolean"},
        },
    },
    "builds.sr.ht": {
        "type": "object",
        "required": ["id", "tags"],
        "properties": {
            "id": {"type": "integer"},
            "status": {"type": "string"},
            "note": NULLABLE_STRING,
            "tags": {"type": "array", "items": {"type": ["string", "null"]}},
            "visibility": NULLABLE_VISIBILITY,
        },
    },
    "paste.sr.ht": {
        "type": "object",
        "required": ["visibility"],
        "properties": {
            "visibility": VISIBILITY,
            "files": {"type": "array", "items": {"type": "string"}},
        },
    },
    "lists.sr.ht": {
        "type": "object",
        "properties": {
            "description": NULLABLE_STRING,
            "visibility": NULLABLE_VISIBILITY,
            "permitMime": {"type": "array", "items": {"type": "string"}},
            "rejectMime": {"type": "array", "items": {"type": "string"}},
        },
    },
    "todo.sr.ht": {
        "type": "object",
        "properties": {
            "description": NULLABLE_STRING,
            "visibility": NULLABLE_VISIBILITY,
        },
    },
}

STAMP_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Service export stamp",
    "type": "object",
    "required": ["instance", "service", "date"],
    "properties": {
        "instance": {"type": "string", "minLength": 1},
        "service": {"type": "string", "minLength": 1},
        "date": {"type": "string", "minLength": 1},
    },
}


def _errors(validator: Draft7Validator, data: Any) -> list[str]:
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = "/".join(str(p) for p in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def validate_record(data: Any) -> tuple[bool, list[str]]:
    """
    Validate an info.json payload.

    Args:
        data: Parsed JSON

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors = _errors(Draft7Validator(MARKER_SCHEMA), data)
    if not errors and isinstance(data, dict):
        service_schema = SERVICE_SCHEMAS.get(data["service"])
        if service_schema is not None:
            errors.extend(_errors(Draft7Validator(service_schema), data))
    return len(errors) == 0, errors


def validate_stamp(data: Any) -> tuple[bool, list[str]]:
    """Validate an export-stamp.json payload."""
    errors = _errors(Draft7Validator(STAMP_SCHEMA), data)
    return len(errors) == 0, errors

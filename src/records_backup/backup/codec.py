"""JSON codec for snapshot documents.

Arbitrary-precision numbers are written as base-10 strings: every
``Decimal``, and every ``int`` outside the IEEE-754 safe-integer range that
JSON consumers can represent exactly.  Decoding performs no type inference,
so those values come back as strings.

Usage:
    from records_backup.backup.codec import deserialize, serialize, validate_document

    payload = serialize(document)
    report = validate_document(deserialize(payload))
"""

import json
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from records_backup.backup.models import DOCUMENT_VERSION, SnapshotDocument
from records_backup.backup.tables import is_backup_target, is_master_data

MAX_SAFE_INTEGER = 2**53 - 1


def to_jsonable(value: Any) -> Any:
    """Recursively convert a value into JSON-native types without losing precision."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
            return value
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def serialize(document: SnapshotDocument | dict[str, Any]) -> bytes:
    """Encode a snapshot document as indented UTF-8 JSON."""
    data = document.to_dict() if isinstance(document, SnapshotDocument) else document
    return json.dumps(to_jsonable(data), indent=2, ensure_ascii=False).encode("utf-8")


def deserialize(payload: bytes | str) -> dict[str, Any]:
    """Decode a serialized document into plain dicts and lists.

    Raises:
        ValueError: If the payload is not a JSON object.
    """
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("Backup document must be a JSON object")
    return data


def byte_length(payload: bytes) -> int:
    """Size of a serialized document in bytes."""
    return len(payload)


def validate_document(data: dict[str, Any]) -> dict:
    """Validate document format and data integrity.

    Checks that ``metadata`` is present with a supported ``version``, that
    ``metadata.tables`` only names backup-target tables, and that every
    table list holds objects.  Records without an ``id`` and keys that are
    not backup targets produce warnings: restore skips them.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        and ``warnings`` (list[str]).
    """
    errors: list[str] = []
    warnings: list[str] = []

    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        errors.append("Missing required key: metadata")
        return {"valid": False, "errors": errors, "warnings": warnings}

    for key in ("createdAt", "version", "tables"):
        if key not in metadata:
            warnings.append(f"Missing metadata field: {key}")

    version = metadata.get("version")
    if version is not None and version != DOCUMENT_VERSION:
        errors.append(
            f"Unsupported backup version '{version}' (expected '{DOCUMENT_VERSION}')"
        )

    for name in metadata.get("tables", []):
        if is_master_data(name):
            errors.append(f"metadata.tables lists master-data table '{name}'")
        elif not is_backup_target(name):
            errors.append(f"metadata.tables lists unknown table '{name}'")

    for key, value in data.items():
        if key == "metadata":
            continue
        if not is_backup_target(key):
            warnings.append(f"Ignoring non-target key: {key}")
            continue
        if not isinstance(value, list):
            errors.append(f"{key} must be a list of records")
            continue
        for index, row in enumerate(value):
            if not isinstance(row, dict):
                errors.append(f"{key}[{index}] is not an object")
            elif not row.get("id"):
                warnings.append(f"{key}[{index}] has no id and will be skipped on restore")

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def load_document(payload: bytes | str) -> SnapshotDocument:
    """Decode and validate a payload into a ``SnapshotDocument``.

    Raises:
        ValueError: If the payload is malformed or fails validation.
    """
    data = deserialize(payload)
    report = validate_document(data)
    if report["errors"]:
        raise ValueError(f"Invalid backup document: {'; '.join(report['errors'])}")
    return SnapshotDocument.from_dict(data)


def write_artifact(path: Path, payload: bytes) -> None:
    """Write a serialized document, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)


def read_artifact(path: Path) -> SnapshotDocument:
    """Load and validate a stored document."""
    return load_document(path.read_bytes())

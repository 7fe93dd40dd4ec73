"""Single-document storage: read, replace, and field-path merge."""

import json
from typing import Any

from obscura.store import apply_patch

from .core import document_file


def get_document(path: str) -> dict[str, Any] | None:
    """Load a document. Returns None if it does not exist."""
    file = document_file(path)
    if not file.is_file():
        return None
    return json.loads(file.read_text())


def put_document(path: str, document: dict[str, Any]) -> None:
    """Create or fully replace a document."""
    file = document_file(path)
    file.parent.mkdir(parents=True, exist_ok=True)
    file.write_text(json.dumps(document, indent=2))


def patch_document(path: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    """Merge dotted field paths into a document. Returns None if it is missing."""
    document = get_document(path)
    if document is None:
        return None
    updated = apply_patch(document, fields)
    document_file(path).write_text(json.dumps(updated, indent=2))
    return updated

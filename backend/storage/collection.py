"""Collections: directories of documents, plus the append-only insert path."""

import json
import uuid
from typing import Any

from obscura.store import MonotonicClock, Query, run_query

from .core import collection_dir

_clock = MonotonicClock()


def reset_clock() -> None:
    global _clock
    _clock = MonotonicClock()


def list_documents(path: str, query: Query | None = None) -> list[dict[str, Any]]:
    """Every document in a collection, each with its "id". Returns [] if missing."""
    directory = collection_dir(path)
    if not directory.is_dir():
        return []
    docs = []
    for file in sorted(directory.glob("*.json")):
        doc = json.loads(file.read_text())
        doc["id"] = file.stem
        docs.append(doc)
    return run_query(docs, query)


def append_document(path: str, document: dict[str, Any]) -> dict[str, Any]:
    """Insert with a fresh id and a monotonic timestamp. Returns the stored doc."""
    directory = collection_dir(path)
    directory.mkdir(parents=True, exist_ok=True)
    stored = dict(document)
    stored["id"] = uuid.uuid4().hex
    stored["timestamp"] = _clock()
    (directory / f"{stored['id']}.json").write_text(json.dumps(stored, indent=2))
    return stored

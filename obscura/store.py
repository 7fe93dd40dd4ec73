"""Realtime document store — the only thing the core writes to.

Every store implementation matches this protocol (all coroutines):

    put(path, document)                 create or fully replace a document
    patch(path, fields)                 merge dotted field paths into a document
    get(path)                           one-shot read, None when absent
    subscribe(path, on_snapshot, query) push snapshots until unsubscribed
    append(collection_path, document)   insert with store-assigned id/timestamp
    query(collection_path, ...)         bounded, ordered read

Paths are slash-separated. Document paths have an even number of segments
("sessions/ABC123", "sessions/ABC123/chat/<id>"); collection paths an odd
number ("sessions/ABC123/characters"). A collection snapshot is a list of its
documents, each carrying its "id".

Two implementations are provided:

    InMemoryStore — process-local store with synchronous fan-out. Used by
                    tests and single-process play.
    HttpStore     — client for the backend service (see obscura.http_store).
"""

from __future__ import annotations

import copy
import logging
import re
import time
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Snapshot = Any  # dict | None for documents, list[dict] for collections
SnapshotCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]

_SEGMENT_RE = re.compile(r"[A-Za-z0-9_-]+")


# ---------------------------------------------------------------------------
# Absent-value marker
# ---------------------------------------------------------------------------

class _Missing:
    """Marks a value that was never set. Stores reject it in a patch."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def contains_missing(value: Any) -> bool:
    if value is MISSING:
        return True
    if isinstance(value, dict):
        return any(contains_missing(v) for v in value.values())
    if isinstance(value, list):
        return any(contains_missing(v) for v in value)
    return False


def strip_missing(value: Any) -> Any:
    """Drop MISSING dict entries and turn MISSING list items into None."""
    if isinstance(value, dict):
        return {k: strip_missing(v) for k, v in value.items() if v is not MISSING}
    if isinstance(value, list):
        return [None if v is MISSING else strip_missing(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Path and patch helpers (shared with the backend service)
# ---------------------------------------------------------------------------

def split_path(path: str) -> list[str]:
    """Split and validate a store path. Raises ValueError on bad segments."""
    segments = path.strip("/").split("/")
    for segment in segments:
        if not _SEGMENT_RE.fullmatch(segment):
            raise ValueError(f"Invalid path segment {segment!r} in {path!r}")
    return segments


def is_document_path(path: str) -> bool:
    return len(split_path(path)) % 2 == 0


def parent_collection(path: str) -> str | None:
    """Collection that holds a document path, or None for a collection path."""
    segments = split_path(path)
    if len(segments) % 2:
        return None
    return "/".join(segments[:-1])


def apply_patch(document: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """Merge dotted field paths into a copy of `document`.

    "vitals.hp" sets one leaf and leaves sibling fields alone; "derived"
    replaces the whole map. Intermediate maps are created as needed.
    """
    result = copy.deepcopy(document)
    for dotted, value in fields.items():
        keys = dotted.split(".")
        target = result
        for key in keys[:-1]:
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            target = child
        target[keys[-1]] = copy.deepcopy(value)
    return result


class Query(BaseModel):
    """Ordered, bounded view of a collection."""

    order_by: str
    limit: int | None = None
    descending: bool = False


def run_query(documents: list[dict[str, Any]], query: Query | None) -> list[dict[str, Any]]:
    if query is None:
        return documents
    ordered = sorted(
        documents,
        key=lambda d: (d.get(query.order_by) is not None, d.get(query.order_by) or 0),
        reverse=query.descending,
    )
    if query.limit is not None:
        ordered = ordered[: query.limit]
    return ordered


class MonotonicClock:
    """Millisecond timestamps that never repeat and never go backwards."""

    def __init__(self, now: Callable[[], float] = time.time) -> None:
        self._now = now
        self._last = 0

    def __call__(self) -> int:
        stamp = max(int(self._now() * 1000), self._last + 1)
        self._last = stamp
        return stamp


# ---------------------------------------------------------------------------
# Protocol: every store implementation must match these signatures
# ---------------------------------------------------------------------------

class DocumentStore(Protocol):
    async def put(self, path: str, document: dict[str, Any]) -> None: ...

    async def patch(self, path: str, fields: dict[str, Any]) -> None: ...

    async def get(self, path: str) -> dict[str, Any] | None: ...

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        query: Query | None = None,
    ) -> Unsubscribe: ...

    async def append(self, collection_path: str, document: dict[str, Any]) -> dict[str, Any]: ...

    async def query(
        self,
        collection_path: str,
        order_by: str,
        limit: int | None = None,
        descending: bool = True,
    ) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# InMemoryStore
# ---------------------------------------------------------------------------

class InMemoryStore:
    """Dict-backed store; subscribers are called synchronously on each write.

    Set `offline = True` to make every write fail with StoreError, which is
    how tests exercise the transient-failure path.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._subs: dict[str, list[tuple[SnapshotCallback, Query | None]]] = {}
        self._clock = clock or MonotonicClock()
        self._ids = 0
        self.offline = False

    # -- snapshots ---------------------------------------------------------

    def _collection_docs(self, collection_path: str) -> list[dict[str, Any]]:
        prefix = collection_path + "/"
        docs = []
        for path, doc in self._docs.items():
            rest = path[len(prefix):] if path.startswith(prefix) else None
            if rest and "/" not in rest:
                entry = copy.deepcopy(doc)
                entry["id"] = rest
                docs.append(entry)
        return docs

    def _snapshot(self, path: str, query: Query | None) -> Snapshot:
        if is_document_path(path):
            doc = self._docs.get(path)
            return copy.deepcopy(doc) if doc is not None else None
        return run_query(self._collection_docs(path), query)

    def _notify(self, path: str) -> None:
        targets = [path]
        parent = parent_collection(path)
        if parent:
            targets.append(parent)
        for target in targets:
            for callback, query in list(self._subs.get(target, [])):
                callback(self._snapshot(target, query))

    def _check_online(self, op: str, path: str) -> None:
        if self.offline:
            raise StoreError(f"{op} {path} failed: store unavailable")

    # -- protocol ----------------------------------------------------------

    async def put(self, path: str, document: dict[str, Any]) -> None:
        if not is_document_path(path):
            raise StoreError(f"put needs a document path, got {path!r}")
        self._check_online("put", path)
        if contains_missing(document):
            raise StoreError(f"put {path}: document contains an unset value")
        self._docs[path] = copy.deepcopy(document)
        logger.debug("store put path=%s", path)
        self._notify(path)

    async def patch(self, path: str, fields: dict[str, Any]) -> None:
        self._check_online("patch", path)
        if contains_missing(fields):
            raise StoreError(f"patch {path}: fields contain an unset value")
        if path not in self._docs:
            raise StoreError(f"patch {path}: document does not exist")
        self._docs[path] = apply_patch(self._docs[path], fields)
        logger.debug("store patch path=%s fields=%s", path, sorted(fields))
        self._notify(path)

    async def get(self, path: str) -> dict[str, Any] | None:
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        query: Query | None = None,
    ) -> Unsubscribe:
        entry = (on_snapshot, query)
        self._subs.setdefault(path, []).append(entry)
        on_snapshot(self._snapshot(path, query))

        def unsubscribe() -> None:
            subs = self._subs.get(path, [])
            if entry in subs:
                subs.remove(entry)

        return unsubscribe

    async def append(self, collection_path: str, document: dict[str, Any]) -> dict[str, Any]:
        if is_document_path(collection_path):
            raise StoreError(f"append needs a collection path, got {collection_path!r}")
        self._check_online("append", collection_path)
        if contains_missing(document):
            raise StoreError(f"append {collection_path}: document contains an unset value")
        self._ids += 1
        doc_id = f"m{self._ids:08d}"
        stored = copy.deepcopy(document)
        stored["id"] = doc_id
        stored["timestamp"] = self._clock()
        path = f"{collection_path}/{doc_id}"
        self._docs[path] = stored
        logger.debug("store append path=%s", path)
        self._notify(path)
        return copy.deepcopy(stored)

    async def query(
        self,
        collection_path: str,
        order_by: str,
        limit: int | None = None,
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        q = Query(order_by=order_by, limit=limit, descending=descending)
        return run_query(self._collection_docs(collection_path), q)


# ---------------------------------------------------------------------------
# StoreError: raised for every failed or rejected store operation
# ---------------------------------------------------------------------------

class StoreError(RuntimeError):
    """Raised when a store write is rejected or the store cannot be reached."""

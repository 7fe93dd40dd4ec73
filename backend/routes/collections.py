"""Collection endpoints: append, bounded query, and long-poll watch."""

from typing import Any

from fastapi import APIRouter, HTTPException

from backend import storage
from backend.watch import notifier
from obscura.store import Query, split_path

from .models import AppendDocument

router = APIRouter()


def check_collection_path(path: str) -> None:
    try:
        segments = split_path(path)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not len(segments) % 2:
        raise HTTPException(400, f"{path!r} is a document path")


def build_query(order_by: str | None, limit: int | None, descending: bool) -> Query | None:
    """Query from request params, with limit capped at max_query_limit."""
    if order_by is None:
        if limit is not None:
            raise HTTPException(400, "limit requires order_by")
        return None
    if limit is not None and limit < 1:
        raise HTTPException(400, "limit must be positive")
    cap = storage.get_config()["max_query_limit"]
    return Query(
        order_by=order_by,
        limit=cap if limit is None else min(limit, cap),
        descending=descending,
    )


@router.post("/collections/{path:path}", status_code=201)
async def append_document(path: str, body: AppendDocument):
    """Insert a document with a store-assigned id and timestamp."""
    check_collection_path(path)
    stored = storage.append_document(path, body.document)
    notifier.bump(f"{path}/{stored['id']}")
    return stored


@router.get("/collections/{path:path}")
async def query_collection(
    path: str,
    order_by: str | None = None,
    limit: int | None = None,
    descending: bool = False,
):
    """List a collection, optionally ordered and bounded."""
    check_collection_path(path)
    return storage.list_documents(path, build_query(order_by, limit, descending))


@router.get("/watch/{path:path}")
async def watch(
    path: str,
    after: int = -1,
    timeout: float | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    descending: bool = False,
):
    """Long-poll until `path` changes past revision `after`.

    Returns {"revision", "changed", "snapshot"}; snapshot is only filled when
    changed is true. A document path yields the document (or null), a
    collection path yields its (queried) list of documents.
    """
    try:
        segments = split_path(path)
    except ValueError as e:
        raise HTTPException(400, str(e))
    is_document = not len(segments) % 2
    query = None if is_document else build_query(order_by, limit, descending)

    max_wait = storage.get_config()["watch_timeout_seconds"]
    wait = max_wait if timeout is None else max(0.0, min(timeout, max_wait))
    changed = await notifier.wait(path, after, wait)

    snapshot: Any = None
    if changed:
        if is_document:
            snapshot = storage.get_document(path)
        else:
            snapshot = storage.list_documents(path, query)
    return {"revision": notifier.revision(path), "changed": changed, "snapshot": snapshot}

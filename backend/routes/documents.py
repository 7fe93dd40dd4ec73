"""Document endpoints: read, replace, merge."""

from fastapi import APIRouter, HTTPException

from backend import storage
from backend.watch import notifier
from obscura.store import split_path

from .models import PatchDocument, PutDocument

router = APIRouter()


def check_document_path(path: str) -> None:
    try:
        segments = split_path(path)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if len(segments) % 2:
        raise HTTPException(400, f"{path!r} is a collection path")


@router.get("/docs/{path:path}")
async def get_document(path: str):
    """Read one document."""
    check_document_path(path)
    doc = storage.get_document(path)
    if doc is None:
        raise HTTPException(404, "Document not found")
    return doc


@router.put("/docs/{path:path}")
async def put_document(path: str, body: PutDocument):
    """Create or fully replace a document."""
    check_document_path(path)
    storage.put_document(path, body.document)
    return {"ok": True, "revision": notifier.bump(path)}


@router.patch("/docs/{path:path}")
async def patch_document(path: str, body: PatchDocument):
    """Merge dotted field paths into an existing document."""
    check_document_path(path)
    if any(not key or "" in key.split(".") for key in body.fields):
        raise HTTPException(400, "Invalid field path")
    if storage.patch_document(path, body.fields) is None:
        raise HTTPException(404, "Document not found")
    return {"ok": True, "revision": notifier.bump(path)}

"""FastAPI API endpoints under /api.

Endpoint groups: health and settings, documents (/docs/{path}), collections
(/collections/{path}) and the long-poll watch (/watch/{path}). Paths are
store paths as defined in obscura.store; the service stores and notifies
but never interprets the documents it holds.
"""

from fastapi import APIRouter

from .collections import router as collections_router
from .documents import router as documents_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(documents_router)
router.include_router(collections_router)

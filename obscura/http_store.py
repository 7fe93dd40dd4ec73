"""HTTP client for the backend document store service.

Implements the DocumentStore protocol against the endpoints mounted by
backend.app under /api:

    GET/PUT/PATCH  /api/docs/{path}
    GET/POST       /api/collections/{path}
    GET            /api/watch/{path}     long-poll, used by subscribe()

Subscriptions are a background asyncio task per path that keeps a long-poll
open and calls on_snapshot whenever the service reports a new revision.
Cancelling that task (the returned unsubscribe callable) is the only way to
stop it. Writes are sent once; failures surface as StoreError and are never
retried here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from obscura.store import Query, SnapshotCallback, StoreError, Unsubscribe, contains_missing

logger = logging.getLogger(__name__)


class HttpStore:
    """Async client for the document store service.

    Args:
        base_url:      Service root, e.g. "http://localhost:13013".
        timeout:       Timeout for ordinary requests, in seconds.
        watch_timeout: How long the service may hold a watch request open.
        retry_delay:   Pause before re-opening a watch after a failure.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        watch_timeout: float = 25.0,
        retry_delay: float = 2.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._watch_timeout = watch_timeout
        self._retry_delay = retry_delay

    def _url(self, kind: str, path: str) -> str:
        return f"{self._base_url}/api/{kind}/{path.strip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        allow_404: bool = False,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response | None:
        try:
            async with httpx.AsyncClient(timeout=timeout or self._timeout) as client:
                resp = await getattr(client, method)(url, **kwargs)
                if allow_404 and resp.status_code == 404:
                    return None
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise StoreError(f"Cannot connect to document store at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Document store returned HTTP {e.response.status_code} for {url}"
            ) from e
        except httpx.TimeoutException as e:
            raise StoreError(f"Document store timed out on {url}") from e
        except httpx.HTTPError as e:
            raise StoreError(f"Document store request to {url} failed: {e}") from e
        return resp

    # -- protocol ----------------------------------------------------------

    async def put(self, path: str, document: dict[str, Any]) -> None:
        if contains_missing(document):
            raise StoreError(f"put {path}: document contains an unset value")
        logger.debug("http store put path=%s", path)
        await self._send("put", self._url("docs", path), json={"document": document})

    async def patch(self, path: str, fields: dict[str, Any]) -> None:
        if contains_missing(fields):
            raise StoreError(f"patch {path}: fields contain an unset value")
        logger.debug("http store patch path=%s fields=%s", path, sorted(fields))
        await self._send("patch", self._url("docs", path), json={"fields": fields})

    async def get(self, path: str) -> dict[str, Any] | None:
        resp = await self._send("get", self._url("docs", path), allow_404=True)
        if resp is None:
            return None
        return resp.json()

    async def append(self, collection_path: str, document: dict[str, Any]) -> dict[str, Any]:
        if contains_missing(document):
            raise StoreError(f"append {collection_path}: document contains an unset value")
        resp = await self._send(
            "post", self._url("collections", collection_path), json={"document": document}
        )
        return resp.json()

    async def query(
        self,
        collection_path: str,
        order_by: str,
        limit: int | None = None,
        descending: bool = True,
    ) -> list[dict[str, Any]]:
        params = _query_params(Query(order_by=order_by, limit=limit, descending=descending))
        resp = await self._send("get", self._url("collections", collection_path), params=params)
        return resp.json()

    async def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        query: Query | None = None,
    ) -> Unsubscribe:
        first = await self._watch(path, after=-1, query=query, wait=0)
        on_snapshot(first["snapshot"])
        task = asyncio.create_task(
            self._watch_loop(path, on_snapshot, query, first["revision"])
        )

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    # -- watch -------------------------------------------------------------

    async def _watch(
        self, path: str, after: int, query: Query | None, wait: float
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"after": after, "timeout": wait}
        params.update(_query_params(query))
        resp = await self._send(
            "get",
            self._url("watch", path),
            params=params,
            timeout=self._timeout + wait,
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise StoreError(f"Malformed watch response for {path}") from e
        if not isinstance(data, dict) or "revision" not in data:
            raise StoreError(f"Malformed watch response for {path}")
        return data

    async def _watch_loop(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        query: Query | None,
        revision: int,
    ) -> None:
        while True:
            try:
                data = await self._watch(path, revision, query, self._watch_timeout)
            except StoreError as e:
                logger.warning("watch %s failed (%s), retrying in %.1fs", path, e, self._retry_delay)
                await asyncio.sleep(self._retry_delay)
                continue
            if data.get("changed"):
                revision = data["revision"]
                on_snapshot(data["snapshot"])


def _query_params(query: Query | None) -> dict[str, Any]:
    if query is None:
        return {}
    params: dict[str, Any] = {
        "order_by": query.order_by,
        "descending": str(query.descending).lower(),
    }
    if query.limit is not None:
        params["limit"] = query.limit
    return params

"""Single-call object handlers for udlgate.

    - list      (GET /objects?prefix)
    - download  (GET /download?key, GET /objects/{key}/download)
    - stats     (GET /stats?key, GET /objects/{key}/stats)
    - delete    (DELETE /objects/{key})
"""

import email.utils
import logging

from fastapi import FastAPI, Request

from udlgate.errors import NotFound
from udlgate.handlers.errors import CLIENT_STORAGE_ERRORS, storage_error
from udlgate.result import Result, Success, returns_result
from udlgate.storage.backend import ObjectInfo, StorageBackend
from udlgate.validation import optional_param, require_param

logger = logging.getLogger(__name__)

# Listing returns a single page of at most this many entries.
MAX_LIST_KEYS = 1000


def _object_headers(info: ObjectInfo) -> dict[str, str]:
    """Build the content metadata headers for a download."""
    headers = {
        "Content-Length": str(info.size),
        "ETag": f'"{info.etag}"',
    }
    if info.last_modified is not None:
        headers["Last-Modified"] = email.utils.format_datetime(info.last_modified, usegmt=True)
    return headers


class ObjectHandler:
    """Handles list, download, stats and delete.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    @property
    def storage(self) -> StorageBackend:
        """Shortcut to the storage backend on app.state."""
        return self.app.state.storage

    def _key(self, request: Request, key: str | None) -> str:
        """Use the path key when the route carries one, else ``?key``."""
        if key:
            return key
        return require_param(request.query_params, "key")

    @returns_result
    async def list_objects(self, request: Request) -> Result:
        """List up to 1000 objects, optionally filtered by ``?prefix``.

        Returns:
            A JSON array of ``{"key", "size", "etag"}``.
        """
        prefix = optional_param(request.query_params, "prefix")
        entries = await self.storage.list(prefix, MAX_LIST_KEYS)
        return Success(
            [{"key": e.key, "size": e.size, "etag": e.etag} for e in entries[:MAX_LIST_KEYS]]
        )

    @returns_result
    async def download(self, request: Request, key: str | None = None) -> Result:
        """Stream an object's bytes with its content metadata headers."""
        key = self._key(request, key)
        try:
            obj = await self.storage.get(key)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc
        if obj is None:
            raise NotFound()

        return Success(
            headers=_object_headers(obj.info),
            stream=obj.body,
            media_type=obj.info.content_type,
        )

    @returns_result
    async def stats(self, request: Request, key: str | None = None) -> Result:
        """Return ``{"size", "etag"}`` without transferring the body."""
        key = self._key(request, key)
        try:
            info = await self.storage.head(key)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc
        if info is None:
            raise NotFound()

        return Success({"size": info.size, "etag": info.etag})

    @returns_result
    async def delete(self, request: Request, key: str | None = None) -> Result:
        """Delete unconditionally. A missing key still succeeds."""
        key = self._key(request, key)
        try:
            await self.storage.delete(key)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc

        logger.info("Deleted %s", key)
        return Success(status=204)

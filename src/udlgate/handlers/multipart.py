"""Multipart upload coordinator for udlgate.

Implements the three-phase upload protocol plus abort:
    - start-upload     (POST /start-upload?key)
    - upload-part      (POST /upload-part?key&uploadId&partNumber, raw body)
    - complete-upload  (POST /complete-upload?key&uploadId, JSON parts body)
    - abort-upload     (DELETE /abort-upload?key&uploadId)

The coordinator keeps no memory between calls. The ``(key, uploadId)`` pair
is an opaque handle that the backing store re-validates on every call, so a
gateway restart between parts loses nothing and any instance can serve any
phase. Every input is validated before the backing store is contacted, and
backing-store failures are never retried here: retrying a part is the
client's job.
"""

import logging

from fastapi import FastAPI, Request

from udlgate.handlers.errors import CLIENT_STORAGE_ERRORS, storage_error
from udlgate.result import Result, Success, returns_result
from udlgate.storage.backend import StorageBackend
from udlgate.validation import parse_parts, require_body, require_param, require_part_number

logger = logging.getLogger(__name__)


class MultipartCoordinator:
    """Drives the NotStarted -> InProgress -> Completed upload lifecycle.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        """Initialize the coordinator.

        Args:
            app: The FastAPI application instance.
        """
        self.app = app

    @property
    def storage(self) -> StorageBackend:
        """Shortcut to the storage backend on app.state."""
        return self.app.state.storage

    @returns_result
    async def start_upload(self, request: Request) -> Result:
        """Open a multipart session.

        Returns:
            ``{"key", "uploadId"}`` for the new session.
        """
        key = require_param(request.query_params, "key")

        try:
            session = await self.storage.create_multipart_upload(key)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc

        logger.debug("Started upload %s for %s", session.upload_id, session.key)
        return Success({"key": session.key, "uploadId": session.upload_id})

    @returns_result
    async def upload_part(self, request: Request) -> Result:
        """Store one part of an open session.

        Re-sending the same part number with the same bytes is safe and
        replaces the earlier copy.

        Returns:
            ``{"partNumber", "etag"}``; the etag must be echoed back at
            completion.
        """
        key = require_param(request.query_params, "key")
        upload_id = require_param(request.query_params, "uploadId")
        part_number = require_part_number(request.query_params)
        data = require_body(await request.body())

        session = self.storage.resume_multipart_upload(key, upload_id)
        try:
            part = await self.storage.upload_part(session, part_number, data)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc

        return Success({"partNumber": part.part_number, "etag": part.etag})

    @returns_result
    async def complete_upload(self, request: Request) -> Result:
        """Commit the listed parts as the object.

        Only the manifest's shape is checked here. Whether each part was
        actually uploaded with that etag is decided by the backing store,
        which leaves the session open when it refuses.

        Returns:
            ``{"key"}`` of the committed object.
        """
        key = require_param(request.query_params, "key")
        upload_id = require_param(request.query_params, "uploadId")
        parts = parse_parts(await request.body())

        session = self.storage.resume_multipart_upload(key, upload_id)
        try:
            info = await self.storage.complete_multipart_upload(session, parts)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc

        logger.info(
            "Completed upload %s: %s (%d parts, %d bytes)",
            upload_id,
            key,
            len(parts),
            info.size,
        )
        return Success({"key": key})

    @returns_result
    async def abort_upload(self, request: Request) -> Result:
        """Discard an open session and its parts."""
        key = require_param(request.query_params, "key")
        upload_id = require_param(request.query_params, "uploadId")

        session = self.storage.resume_multipart_upload(key, upload_id)
        try:
            await self.storage.abort_multipart_upload(session)
        except CLIENT_STORAGE_ERRORS as exc:
            raise storage_error(exc) from exc

        logger.info("Aborted upload %s for %s", upload_id, key)
        return Success(status=204)

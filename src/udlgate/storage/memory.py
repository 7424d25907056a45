"""In-memory storage backend for udlgate.

Implements the StorageBackend protocol using Python dictionaries. Objects,
open sessions and their parts are held in memory and lost on restart, which
makes this backend suitable for tests and single-process trials.

Every method runs to completion without awaiting, so each operation is
atomic with respect to other requests on the same event loop.
"""

import hashlib
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from udlgate.storage.backend import (
    CompletedPart,
    NoSuchUpload,
    ObjectInfo,
    StoredObject,
    UploadedPart,
    UploadSession,
    check_manifest,
    multipart_etag,
)

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB (matches local backend)
_CHUNK_SIZE = 64 * 1024


class MemoryStorageError(Exception):
    """Raised when the memory backend cannot fulfill a request."""


class MemoryCapacityError(MemoryStorageError):
    """Raised when a write would exceed the configured max_size_bytes."""


class MemoryStorageBackend:
    """Storage backend that holds all objects in memory.

    Objects are stored in a dictionary keyed by object key with values of
    (data_bytes, ObjectInfo). Open sessions map upload_id -> key, and parts
    are stored in a separate dictionary keyed by (upload_id, part_number).

    Attributes:
        max_size_bytes: Maximum total bytes allowed (0 = unlimited).
    """

    def __init__(self, max_size_bytes: int = 0) -> None:
        """Initialize the memory storage backend.

        Args:
            max_size_bytes: Maximum total bytes of object and part data to
                hold in memory. 0 means unlimited.
        """
        self.max_size_bytes = max_size_bytes

        # Object storage: key -> (data, info)
        self._objects: dict[str, tuple[bytes, ObjectInfo]] = {}
        # Open sessions: upload_id -> key
        self._uploads: dict[str, str] = {}
        # Part storage: (upload_id, part_number) -> (data, etag)
        self._parts: dict[tuple[str, int], tuple[bytes, str]] = {}
        # Track total bytes stored
        self._current_size: int = 0

    def _check_capacity(self, additional_bytes: int) -> None:
        """Check whether storing additional_bytes would exceed max_size_bytes.

        Raises:
            MemoryCapacityError: If the store would exceed capacity.
        """
        if self.max_size_bytes > 0:
            if self._current_size + additional_bytes > self.max_size_bytes:
                raise MemoryCapacityError(
                    f"Cannot store {additional_bytes} bytes: would exceed "
                    f"max_size_bytes ({self._current_size} + {additional_bytes} "
                    f"> {self.max_size_bytes})"
                )

    def _require_session(self, session: UploadSession) -> None:
        """Raise NoSuchUpload unless the session is open for its key."""
        if self._uploads.get(session.upload_id) != session.key:
            raise NoSuchUpload(session.upload_id)

    def _drop_parts(self, upload_id: str) -> None:
        """Remove all parts of a session, updating size tracking."""
        for part_key in [pk for pk in self._parts if pk[0] == upload_id]:
            data, _ = self._parts.pop(part_key)
            self._current_size -= len(data)

    async def init(self) -> None:
        """Nothing to prepare for the in-memory store."""
        logger.info(
            "Memory storage backend initialized (max_size=%s)",
            self.max_size_bytes if self.max_size_bytes > 0 else "unlimited",
        )

    async def close(self) -> None:
        """Drop all held data."""
        self._objects.clear()
        self._uploads.clear()
        self._parts.clear()
        self._current_size = 0

    async def create_multipart_upload(self, key: str) -> UploadSession:
        upload_id = str(uuid.uuid4())
        self._uploads[upload_id] = key
        return UploadSession(key=key, upload_id=upload_id)

    def resume_multipart_upload(self, key: str, upload_id: str) -> UploadSession:
        return UploadSession(key=key, upload_id=upload_id)

    async def upload_part(
        self, session: UploadSession, part_number: int, data: bytes
    ) -> UploadedPart:
        """Store a part in memory, replacing any earlier part with the same number."""
        self._require_session(session)

        part_key = (session.upload_id, part_number)
        old_size = len(self._parts[part_key][0]) if part_key in self._parts else 0
        self._check_capacity(len(data) - old_size)

        etag = hashlib.md5(data).hexdigest()
        self._parts[part_key] = (data, etag)
        self._current_size += len(data) - old_size
        return UploadedPart(part_number=part_number, etag=etag)

    async def complete_multipart_upload(
        self, session: UploadSession, parts: list[CompletedPart]
    ) -> ObjectInfo:
        """Concatenate the listed parts into the object and close the session.

        Parts uploaded but not listed are discarded with the session.
        """
        self._require_session(session)

        uploaded = {
            pn: etag for (uid, pn), (_, etag) in self._parts.items() if uid == session.upload_id
        }
        check_manifest(parts, uploaded)

        data = b"".join(self._parts[(session.upload_id, p.part_number)][0] for p in parts)
        info = ObjectInfo(
            key=session.key,
            size=len(data),
            etag=multipart_etag(uploaded[p.part_number] for p in parts),
            last_modified=datetime.now(timezone.utc),
        )

        old = self._objects.get(session.key)
        self._objects[session.key] = (data, info)
        self._current_size += len(data) - (len(old[0]) if old else 0)

        self._drop_parts(session.upload_id)
        del self._uploads[session.upload_id]
        return info

    async def abort_multipart_upload(self, session: UploadSession) -> None:
        self._require_session(session)
        self._drop_parts(session.upload_id)
        del self._uploads[session.upload_id]

    async def get(self, key: str) -> StoredObject | None:
        entry = self._objects.get(key)
        if entry is None:
            return None
        data, info = entry
        return StoredObject(info=info, body=_iter_chunks(data))

    async def head(self, key: str) -> ObjectInfo | None:
        entry = self._objects.get(key)
        return entry[1] if entry is not None else None

    async def list(self, prefix: str | None, limit: int) -> list[ObjectInfo]:
        """List objects in lexicographic key order."""
        keys = sorted(k for k in self._objects if not prefix or k.startswith(prefix))
        return [self._objects[k][1] for k in keys[:limit]]

    async def delete(self, key: str) -> None:
        """Delete an object from memory. Missing keys are ignored."""
        entry = self._objects.pop(key, None)
        if entry is not None:
            self._current_size -= len(entry[0])


async def _iter_chunks(data: bytes) -> AsyncIterator[bytes]:
    """Yield ``data`` in 64 KB chunks."""
    for offset in range(0, len(data), _CHUNK_SIZE):
        yield data[offset:offset + _CHUNK_SIZE]

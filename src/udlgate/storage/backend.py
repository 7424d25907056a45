"""Backing-store protocol and value types for udlgate.

The gateway never holds multipart session state itself. A session is
referenced only through its ``(key, upload_id)`` pair, which the backing
store re-validates on every call.
"""

import hashlib
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

DEFAULT_CONTENT_TYPE = "application/octet-stream"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata of a stored object."""

    key: str
    size: int
    etag: str
    content_type: str = DEFAULT_CONTENT_TYPE
    last_modified: datetime | None = None


@dataclass(frozen=True)
class StoredObject:
    """An object's metadata plus a stream over its bytes."""

    info: ObjectInfo
    body: AsyncIterator[bytes]


@dataclass(frozen=True)
class UploadSession:
    """Handle on an in-progress multipart upload.

    Carries no mutable state. Creating one does not contact the backing
    store; a stale or mismatched pair is only detected when it is used.
    """

    key: str
    upload_id: str


@dataclass(frozen=True)
class UploadedPart:
    """Result of ingesting one part."""

    part_number: int
    etag: str


@dataclass(frozen=True)
class CompletedPart:
    """One entry of the completion manifest, echoed back by the client."""

    part_number: int
    etag: str


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StorageError(Exception):
    """Base class for failures a backing store reports about a request."""


class NoSuchUpload(StorageError):
    """The upload id is unknown, finished, or was issued for another key."""

    def __init__(self, upload_id: str = "") -> None:
        super().__init__(f"Upload not found: {upload_id}")
        self.upload_id = upload_id


class InvalidPart(StorageError):
    """A manifest entry names a part that was not uploaded or has another etag."""


class InvalidPartOrder(StorageError):
    """The manifest is not in strictly ascending part-number order."""


class InvalidKey(StorageError):
    """The key cannot be stored by this backend."""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def strip_etag(etag: str) -> str:
    """Remove surrounding double quotes from an etag, if present."""
    return etag.strip('"')


def multipart_etag(part_etags: Iterable[str]) -> str:
    """Compute an S3-style multipart etag: ``md5(concat(part md5s))-N``.

    Args:
        part_etags: Hex MD5 etags of the assembled parts, in order.
    """
    md5 = hashlib.md5()
    count = 0
    for etag in part_etags:
        md5.update(bytes.fromhex(strip_etag(etag)))
        count += 1
    return f"{md5.hexdigest()}-{count}"


def check_manifest(parts: list[CompletedPart], uploaded: dict[int, str]) -> None:
    """Verify a completion manifest against the parts a session holds.

    Args:
        parts: The manifest supplied by the client.
        uploaded: Part number -> etag for every part stored for the session.

    Raises:
        InvalidPartOrder: If part numbers are not strictly ascending.
        InvalidPart: If a part is missing or its etag does not match.
    """
    previous = 0
    for part in parts:
        if part.part_number <= previous:
            raise InvalidPartOrder("The list of parts was not in ascending order.")
        previous = part.part_number

        stored = uploaded.get(part.part_number)
        if stored is None or strip_etag(stored) != strip_etag(part.etag):
            raise InvalidPart(f"Invalid part: {part.part_number}")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class StorageBackend(Protocol):
    """Protocol defining the backing-store interface.

    All backends (memory, local filesystem, AWS S3) implement this
    interface. The store owns objects and multipart session state.
    """

    async def init(self) -> None:
        """Initialize the backend (create directories, connect, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the backend."""
        ...

    async def create_multipart_upload(self, key: str) -> UploadSession:
        """Open a multipart session for ``key``.

        Returns:
            The session handle with its newly issued upload id.
        """
        ...

    def resume_multipart_upload(self, key: str, upload_id: str) -> UploadSession:
        """Build a handle on an existing session without any I/O."""
        ...

    async def upload_part(
        self, session: UploadSession, part_number: int, data: bytes
    ) -> UploadedPart:
        """Store one part. Re-uploading a part number replaces it.

        Raises:
            NoSuchUpload: If the session does not exist for this key.
        """
        ...

    async def complete_multipart_upload(
        self, session: UploadSession, parts: list[CompletedPart]
    ) -> ObjectInfo:
        """Assemble the listed parts into the object and close the session.

        Either the whole object is committed or nothing changes and the
        session stays open.

        Raises:
            NoSuchUpload: If the session does not exist for this key.
            InvalidPart: If a listed part is missing or its etag differs.
            InvalidPartOrder: If the list is not in ascending order.
        """
        ...

    async def abort_multipart_upload(self, session: UploadSession) -> None:
        """Discard a session and its stored parts.

        Raises:
            NoSuchUpload: If the session does not exist for this key.
        """
        ...

    async def get(self, key: str) -> StoredObject | None:
        """Return the object with a body stream, or None if absent."""
        ...

    async def head(self, key: str) -> ObjectInfo | None:
        """Return the object's metadata, or None if absent."""
        ...

    async def list(self, prefix: str | None, limit: int) -> list[ObjectInfo]:
        """List up to ``limit`` objects whose key starts with ``prefix``.

        Entries come back in the store's native order (lexicographic).
        """
        ...

    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        ...

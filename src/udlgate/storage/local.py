"""Local filesystem storage backend for udlgate.

Implements the StorageBackend protocol using the local filesystem.

Layout under ``root``:
    Objects:   ``{root}/{key}``
    Metadata:  ``{root}/.meta/{key}.json`` (etag and content type)
    Sessions:  ``{root}/.parts/{upload_id}/.key`` holds the session's key
    Parts:     ``{root}/.parts/{upload_id}/{part_number}``

Crash-only design:
    - Atomic writes via temp-fsync-rename pattern.
    - Never acknowledge before data is fsync'd to disk.
    - Startup cleans orphan temp files left by interrupted writes.
"""

import hashlib
import json
import logging
import os
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

from udlgate.storage.backend import (
    DEFAULT_CONTENT_TYPE,
    CompletedPart,
    InvalidKey,
    NoSuchUpload,
    ObjectInfo,
    StoredObject,
    UploadedPart,
    UploadSession,
    check_manifest,
    multipart_etag,
)

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_PARTS_DIR = ".parts"
_META_DIR = ".meta"
_SESSION_KEY_FILE = ".key"
_RESERVED = {_PARTS_DIR, _META_DIR}


def _atomic_write(path: Path, chunks: list[bytes]) -> None:
    """Write ``chunks`` to ``path`` via temp file, fsync and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex[:8]}")
    try:
        fd = os.open(str(tmp), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
        try:
            for chunk in chunks:
                os.write(fd, chunk)
            os.fsync(fd)
        finally:
            os.close(fd)
        tmp.rename(path)
    except Exception:
        # Clean up temp file on failure
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise


class LocalStorageBackend:
    """Storage backend that persists objects on the local filesystem.

    File I/O is blocking and runs on the event loop: while one request
    reads or writes a file, no other request makes progress.

    An object and a directory cannot share a path: once ``a`` is stored,
    ``a/b`` cannot be, and the reverse.

    Attributes:
        root: The root directory for all stored data.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the local storage backend.

        Args:
            root: Root directory path for object storage.
        """
        self.root = Path(root)

    def _object_path(self, key: str) -> Path:
        """Return the filesystem path for a stored object.

        Raises:
            InvalidKey: If the key would escape the root directory or land in
                one of the reserved bookkeeping directories.
        """
        parts = key.split("/")
        if (
            key.startswith("/")
            or any(p in ("", ".", "..") for p in parts)
            or parts[0] in _RESERVED
            or ".tmp." in parts[-1]
        ):
            raise InvalidKey(f"Key cannot be stored: {key!r}")
        return self.root.joinpath(*parts)

    def _check_placement(self, key: str) -> Path:
        """Return the object path, or raise InvalidKey if it clashes with the tree.

        A clash is an existing directory at the path itself, or an existing
        object where one of its parent directories would have to be.
        """
        path = self._object_path(key)
        if path.is_dir():
            raise InvalidKey(f"Key is a prefix of stored objects: {key!r}")
        parent = path.parent
        while parent != self.root:
            if parent.exists() and not parent.is_dir():
                raise InvalidKey(f"Key is nested under a stored object: {key!r}")
            parent = parent.parent
        return path

    def _meta_path(self, key: str) -> Path:
        return self.root / _META_DIR / f"{key}.json"

    def _session_dir(self, upload_id: str) -> Path:
        return self.root / _PARTS_DIR / upload_id

    def _require_session(self, session: UploadSession) -> Path:
        """Return the session directory, or raise NoSuchUpload."""
        # upload ids are uuid hex strings; anything else cannot be ours
        if not session.upload_id or "/" in session.upload_id or session.upload_id.startswith("."):
            raise NoSuchUpload(session.upload_id)
        session_dir = self._session_dir(session.upload_id)
        try:
            stored_key = (session_dir / _SESSION_KEY_FILE).read_text("utf-8")
        except FileNotFoundError:
            raise NoSuchUpload(session.upload_id)
        if stored_key != session.key:
            raise NoSuchUpload(session.upload_id)
        return session_dir

    def _read_info(self, key: str) -> ObjectInfo | None:
        path = self._object_path(key)
        try:
            stat = path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None
        if not path.is_file():
            return None

        etag = ""
        content_type = DEFAULT_CONTENT_TYPE
        try:
            meta = json.loads(self._meta_path(key).read_text("utf-8"))
            etag = meta.get("etag", "")
            content_type = meta.get("content_type", DEFAULT_CONTENT_TYPE)
        except FileNotFoundError:
            pass
        if not etag:
            etag = hashlib.md5(path.read_bytes()).hexdigest()

        return ObjectInfo(
            key=key,
            size=stat.st_size,
            etag=etag,
            content_type=content_type,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    async def init(self) -> None:
        """Create the root directory and clean up orphan temp files.

        Crash-only design: every startup is a recovery. Remove any
        leftover ``.tmp.*`` files from interrupted writes.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        self._clean_temp_files()
        logger.info("Local storage backend initialized at %s", self.root)

    def _clean_temp_files(self) -> None:
        """Remove orphan temp files left by interrupted atomic writes."""
        count = 0
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for fname in filenames:
                if ".tmp." in fname:
                    try:
                        os.unlink(os.path.join(dirpath, fname))
                        count += 1
                    except OSError:
                        pass
        if count > 0:
            logger.info("Cleaned %d orphan temp files on startup", count)

    async def close(self) -> None:
        """No-op for local filesystem backend."""
        pass

    async def create_multipart_upload(self, key: str) -> UploadSession:
        """Open a session by recording its key under a fresh upload directory."""
        self._check_placement(key)
        upload_id = uuid.uuid4().hex
        _atomic_write(self._session_dir(upload_id) / _SESSION_KEY_FILE, [key.encode("utf-8")])
        return UploadSession(key=key, upload_id=upload_id)

    def resume_multipart_upload(self, key: str, upload_id: str) -> UploadSession:
        return UploadSession(key=key, upload_id=upload_id)

    async def upload_part(
        self, session: UploadSession, part_number: int, data: bytes
    ) -> UploadedPart:
        """Store a part under the session directory.

        Uses atomic temp-fsync-rename for crash safety.
        """
        session_dir = self._require_session(session)
        _atomic_write(session_dir / str(part_number), [data])
        return UploadedPart(part_number=part_number, etag=hashlib.md5(data).hexdigest())

    async def complete_multipart_upload(
        self, session: UploadSession, parts: list[CompletedPart]
    ) -> ObjectInfo:
        """Assemble the listed parts into the final object.

        Reads each part sequentially, writes the concatenation to a temp
        file, then atomically renames it onto the object path. The session
        directory is removed only after the object is committed.
        """
        session_dir = self._require_session(session)

        uploaded: dict[int, str] = {}
        part_data: dict[int, bytes] = {}
        for child in session_dir.iterdir():
            if child.name.isdigit():
                data = child.read_bytes()
                part_data[int(child.name)] = data
                uploaded[int(child.name)] = hashlib.md5(data).hexdigest()
        check_manifest(parts, uploaded)

        # Re-checked: another upload may have claimed the path since start.
        dest = self._check_placement(session.key)
        etag = multipart_etag(uploaded[p.part_number] for p in parts)
        _atomic_write(dest, [part_data[p.part_number] for p in parts])
        _atomic_write(
            self._meta_path(session.key),
            [json.dumps({"etag": etag, "content_type": DEFAULT_CONTENT_TYPE}).encode()],
        )

        self._remove_session(session_dir)
        return ObjectInfo(
            key=session.key,
            size=sum(len(part_data[p.part_number]) for p in parts),
            etag=etag,
            last_modified=datetime.now(timezone.utc),
        )

    async def abort_multipart_upload(self, session: UploadSession) -> None:
        self._remove_session(self._require_session(session))

    def _remove_session(self, session_dir: Path) -> None:
        """Delete the session directory and all part files within it."""
        for child in session_dir.iterdir():
            try:
                child.unlink()
            except OSError:
                pass
        try:
            session_dir.rmdir()
        except OSError:
            pass

    async def get(self, key: str) -> StoredObject | None:
        info = self._read_info(key)
        if info is None:
            return None
        return StoredObject(info=info, body=self._stream(self._object_path(key)))

    async def _stream(self, path: Path) -> AsyncIterator[bytes]:
        """Yield the file at ``path`` in 64 KB chunks."""
        with open(path, "rb") as f:
            while True:
                chunk = f.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def head(self, key: str) -> ObjectInfo | None:
        return self._read_info(key)

    async def list(self, prefix: str | None, limit: int) -> list[ObjectInfo]:
        """Walk the root in lexicographic key order, skipping bookkeeping dirs."""
        keys: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root)
            if rel_dir == Path("."):
                dirnames[:] = [d for d in dirnames if d not in _RESERVED]
            for fname in filenames:
                if ".tmp." in fname:
                    continue
                key = (rel_dir / fname).as_posix()
                if not prefix or key.startswith(prefix):
                    keys.append(key)

        result: list[ObjectInfo] = []
        for key in sorted(keys)[:limit]:
            info = self._read_info(key)
            if info is not None:
                result.append(info)
        return result

    async def delete(self, key: str) -> None:
        """Delete an object from the local filesystem.

        A key with no stored object is a no-op, including one that names a
        directory of other objects. Cleans up empty parent directories up to
        the root.
        """
        path = self._object_path(key)
        if not path.is_file():
            return
        self._meta_path(key).unlink(missing_ok=True)

        try:
            path.unlink()
        except FileNotFoundError:
            return

        parent = path.parent
        while parent != self.root:
            try:
                parent.rmdir()  # Only removes empty dirs
            except OSError:
                break
            parent = parent.parent

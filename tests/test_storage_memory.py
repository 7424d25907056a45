"""Tests for the in-memory storage backend."""

import hashlib

import pytest

from udlgate.storage.backend import (
    CompletedPart,
    InvalidPart,
    InvalidPartOrder,
    NoSuchUpload,
    multipart_etag,
)
from udlgate.storage.memory import MemoryCapacityError, MemoryStorageBackend


async def _read(obj) -> bytes:
    return b"".join([chunk async for chunk in obj.body])


@pytest.fixture
async def backend():
    b = MemoryStorageBackend()
    await b.init()
    yield b
    await b.close()


class TestMultipart:
    async def test_roundtrip(self, backend):
        session = await backend.create_multipart_upload("k")
        p1 = await backend.upload_part(session, 1, b"hello ")
        p2 = await backend.upload_part(session, 2, b"world")
        info = await backend.complete_multipart_upload(
            session, [CompletedPart(1, p1.etag), CompletedPart(2, p2.etag)]
        )
        assert info.size == 11
        assert info.etag == multipart_etag([p1.etag, p2.etag])
        assert await _read(await backend.get("k")) == b"hello world"

    async def test_part_etag_is_md5(self, backend):
        session = await backend.create_multipart_upload("k")
        part = await backend.upload_part(session, 1, b"abc")
        assert part.etag == hashlib.md5(b"abc").hexdigest()

    async def test_resume_does_no_io(self, backend):
        session = backend.resume_multipart_upload("k", "does-not-exist")
        assert session.key == "k"
        assert session.upload_id == "does-not-exist"

    async def test_unknown_session(self, backend):
        session = backend.resume_multipart_upload("k", "nope")
        with pytest.raises(NoSuchUpload):
            await backend.upload_part(session, 1, b"x")

    async def test_key_mismatch(self, backend):
        session = await backend.create_multipart_upload("k")
        other = backend.resume_multipart_upload("other", session.upload_id)
        with pytest.raises(NoSuchUpload):
            await backend.upload_part(other, 1, b"x")

    async def test_missing_part(self, backend):
        session = await backend.create_multipart_upload("k")
        await backend.upload_part(session, 1, b"x")
        with pytest.raises(InvalidPart):
            await backend.complete_multipart_upload(session, [CompletedPart(2, "e")])

    async def test_quoted_etag_accepted(self, backend):
        session = await backend.create_multipart_upload("k")
        part = await backend.upload_part(session, 1, b"x")
        await backend.complete_multipart_upload(session, [CompletedPart(1, f'"{part.etag}"')])
        assert await backend.head("k") is not None

    async def test_duplicate_part_number_rejected(self, backend):
        session = await backend.create_multipart_upload("k")
        part = await backend.upload_part(session, 1, b"x")
        with pytest.raises(InvalidPartOrder):
            await backend.complete_multipart_upload(
                session, [CompletedPart(1, part.etag), CompletedPart(1, part.etag)]
            )

    async def test_unlisted_parts_discarded(self, backend):
        session = await backend.create_multipart_upload("k")
        p1 = await backend.upload_part(session, 1, b"keep")
        await backend.upload_part(session, 2, b"drop")
        info = await backend.complete_multipart_upload(session, [CompletedPart(1, p1.etag)])
        assert info.size == 4
        assert backend._parts == {}

    async def test_abort(self, backend):
        session = await backend.create_multipart_upload("k")
        await backend.upload_part(session, 1, b"x")
        await backend.abort_multipart_upload(session)
        assert backend._parts == {}
        with pytest.raises(NoSuchUpload):
            await backend.abort_multipart_upload(session)

    async def test_capacity_limit(self):
        backend = MemoryStorageBackend(max_size_bytes=4)
        session = await backend.create_multipart_upload("k")
        await backend.upload_part(session, 1, b"1234")
        with pytest.raises(MemoryCapacityError):
            await backend.upload_part(session, 2, b"5")


class TestObjects:
    async def _put(self, backend, key, data):
        session = await backend.create_multipart_upload(key)
        part = await backend.upload_part(session, 1, data)
        await backend.complete_multipart_upload(session, [CompletedPart(1, part.etag)])

    async def test_get_missing(self, backend):
        assert await backend.get("nope") is None
        assert await backend.head("nope") is None

    async def test_list_prefix_and_limit(self, backend):
        for key in ["b", "a", "c/1", "c/2"]:
            await self._put(backend, key, b"x")
        assert [i.key for i in await backend.list(None, 10)] == ["a", "b", "c/1", "c/2"]
        assert [i.key for i in await backend.list("c/", 10)] == ["c/1", "c/2"]
        assert [i.key for i in await backend.list(None, 2)] == ["a", "b"]

    async def test_overwrite_tracks_size(self, backend):
        await self._put(backend, "k", b"12345")
        await self._put(backend, "k", b"12")
        assert (await backend.head("k")).size == 2
        assert backend._current_size == 2

    async def test_delete_idempotent(self, backend):
        await self._put(backend, "k", b"x")
        await backend.delete("k")
        await backend.delete("k")
        assert await backend.head("k") is None
        assert backend._current_size == 0

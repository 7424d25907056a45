"""Tests for route resolution and dispatch."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from udlgate.errors import MethodNotAllowed, NotFound


@pytest.fixture
def router(app):
    return app.state.router


class TestResolve:
    """Tests for Router.resolve()."""

    @pytest.mark.parametrize(
        "method,path,operation",
        [
            ("POST", "/start-upload", "start_upload"),
            ("POST", "/uploads/create", "start_upload"),
            ("POST", "/upload-part", "upload_part"),
            ("POST", "/uploads/upload-part", "upload_part"),
            ("POST", "/complete-upload", "complete_upload"),
            ("POST", "/uploads/complete", "complete_upload"),
            ("DELETE", "/abort-upload", "abort_upload"),
            ("DELETE", "/uploads/abort", "abort_upload"),
            ("GET", "/download", "download"),
            ("GET", "/stats", "stats"),
            ("GET", "/objects", "list_objects"),
            ("GET", "/objects/", "list_objects"),
            ("DELETE", "/objects/a.txt", "delete"),
            ("GET", "/objects/a.txt/download", "download"),
            ("GET", "/objects/a/b.txt/stats", "stats"),
        ],
    )
    def test_known_routes(self, router, method, path, operation):
        resolved, handler = router.resolve(method, path)
        assert resolved == operation
        assert callable(handler)

    def test_nested_key_is_bound(self, router):
        _, handler = router.resolve("GET", "/objects/dir/file.txt/stats")
        assert handler.keywords == {"key": "dir/file.txt"}

    def test_delete_key_is_bound(self, router):
        _, handler = router.resolve("DELETE", "/objects/dir/file.txt")
        assert handler.keywords == {"key": "dir/file.txt"}

    @pytest.mark.parametrize("path", ["/", "/nope", "/uploads", "/start-upload/extra", "/objectsx"])
    def test_unknown_path(self, router, path):
        with pytest.raises(NotFound):
            router.resolve("GET", path)

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/start-upload"),
            ("PUT", "/upload-part"),
            ("POST", "/download"),
            ("DELETE", "/stats"),
            ("POST", "/objects"),
            ("DELETE", "/objects"),
            ("GET", "/objects/a.txt"),
            ("PUT", "/objects/a.txt"),
            ("POST", "/abort-upload"),
        ],
    )
    def test_wrong_method(self, router, method, path):
        with pytest.raises(MethodNotAllowed):
            router.resolve(method, path)


class TestDispatch:
    """Tests for error translation over HTTP."""

    async def test_unknown_route_404(self, client: AsyncClient):
        resp = await client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not found"}

    async def test_wrong_method_405(self, client: AsyncClient):
        resp = await client.put("/download", params={"key": "k"})
        assert resp.status_code == 405
        assert resp.json() == {"error": "Method not allowed"}

    @pytest.mark.parametrize("method", ["TRACE", "PROPFIND"])
    async def test_nonstandard_method_405(self, client: AsyncClient, method):
        resp = await client.request(method, "/objects")
        assert resp.status_code == 405
        assert resp.json() == {"error": "Method not allowed"}

    async def test_unexpected_error_is_500_without_detail(self, app, client: AsyncClient, caplog):
        store = AsyncMock()
        store.head.side_effect = RuntimeError("connection string with password=hunter2")
        app.state.storage = store

        with caplog.at_level("ERROR", logger="udlgate.router"):
            resp = await client.get("/stats", params={"key": "k"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "hunter2" not in resp.text
        assert any("Unhandled exception" in r.getMessage() for r in caplog.records)

    async def test_backing_store_failure_on_complete_is_500(self, app, client: AsyncClient):
        store = AsyncMock()
        store.resume_multipart_upload = lambda key, upload_id: object()
        store.complete_multipart_upload.side_effect = OSError("disk gone")
        app.state.storage = store

        resp = await client.post(
            "/complete-upload",
            params={"key": "k", "uploadId": "u"},
            json=[{"partNumber": 1, "etag": "E1"}],
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

"""Shared pytest fixtures for udlgate tests.

A fresh app with an in-memory backing store is built for every test. The
storage backend is placed on app.state directly because the lifespan
context does not run under ASGITransport.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from udlgate.config import (
    AuthConfig,
    GatewayConfig,
    ServerConfig,
    StorageConfig,
)
from udlgate.server import create_app
from udlgate.storage.memory import MemoryStorageBackend

SECRET = "test-secret"
AUTH = {"Authorization": SECRET}


@pytest.fixture
def config() -> GatewayConfig:
    """Create a test GatewayConfig with the memory backend."""
    return GatewayConfig(
        server=ServerConfig(host="127.0.0.1", port=8788),
        auth=AuthConfig(secret=SECRET),
        storage=StorageConfig(backend="memory"),
    )


@pytest.fixture
def storage() -> MemoryStorageBackend:
    return MemoryStorageBackend()


@pytest.fixture
def app(config: GatewayConfig, storage: MemoryStorageBackend):
    """Create a test FastAPI application bound to the memory store."""
    app = create_app(config)
    app.state.storage = storage
    return app


@pytest.fixture
async def client(app) -> AsyncClient:
    """Async client that sends the correct credential on every request."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://testserver", headers=AUTH
    ) as ac:
        yield ac


@pytest.fixture
async def anon_client(app) -> AsyncClient:
    """Async client without any credential."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def put_object(client: AsyncClient):
    """Return a helper that uploads ``chunks`` as parts 1..N of ``key``."""

    async def _put(key: str, *chunks: bytes) -> None:
        resp = await client.post("/start-upload", params={"key": key})
        assert resp.status_code == 200
        upload_id = resp.json()["uploadId"]

        parts = []
        for number, chunk in enumerate(chunks, 1):
            resp = await client.post(
                "/upload-part",
                params={"key": key, "uploadId": upload_id, "partNumber": number},
                content=chunk,
            )
            assert resp.status_code == 200
            parts.append(resp.json())

        resp = await client.post(
            "/complete-upload",
            params={"key": key, "uploadId": upload_id},
            json=parts,
        )
        assert resp.status_code == 200

    return _put

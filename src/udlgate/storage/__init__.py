"""Backing store adapters for udlgate."""

from typing import TYPE_CHECKING

from udlgate.storage.backend import (
    CompletedPart,
    InvalidKey,
    InvalidPart,
    InvalidPartOrder,
    NoSuchUpload,
    ObjectInfo,
    StorageBackend,
    StorageError,
    StoredObject,
    UploadedPart,
    UploadSession,
)

if TYPE_CHECKING:
    from udlgate.config import StorageConfig

__all__ = [
    "CompletedPart",
    "create_storage_backend",
    "InvalidKey",
    "InvalidPart",
    "InvalidPartOrder",
    "NoSuchUpload",
    "ObjectInfo",
    "StorageBackend",
    "StorageError",
    "StoredObject",
    "UploadedPart",
    "UploadSession",
]


def create_storage_backend(config: "StorageConfig") -> StorageBackend:
    """Create a storage backend instance based on configuration.

    Supports 'memory', 'local', and 'aws' backends.

    Args:
        config: The storage configuration.

    Returns:
        A backend implementing the StorageBackend protocol.

    Raises:
        ValueError: If the backend is unknown or required config is missing.
    """
    backend = config.backend

    if backend == "memory":
        from udlgate.storage.memory import MemoryStorageBackend

        return MemoryStorageBackend(max_size_bytes=config.memory_max_size_bytes)

    elif backend == "local":
        from udlgate.storage.local import LocalStorageBackend

        return LocalStorageBackend(config.local_root)

    elif backend == "aws":
        if not config.aws_bucket:
            raise ValueError("storage.aws.bucket is required when backend is 'aws'")
        from udlgate.storage.aws import AWSGatewayBackend

        return AWSGatewayBackend(
            bucket_name=config.aws_bucket,
            region=config.aws_region,
            prefix=config.aws_prefix,
            endpoint_url=config.aws_endpoint_url,
            use_path_style=config.aws_use_path_style,
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
        )

    else:
        raise ValueError(f"Unknown storage backend: {backend}")

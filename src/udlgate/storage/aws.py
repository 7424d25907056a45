"""AWS S3 gateway storage backend for udlgate.

Proxies all operations to an upstream S3 (or S3-compatible, e.g. R2 or
MinIO) bucket via aiobotocore. Multipart sessions map one-to-one onto
native S3 multipart uploads, so the upstream service owns all session
state.

Key mapping:
    Objects:  {prefix}{key}

Credentials are resolved via the standard AWS credential chain
(env vars, ~/.aws/credentials, IAM role, etc.) unless given explicitly.
"""

import logging
from collections.abc import AsyncIterator

from aiobotocore.session import AioSession
from botocore.exceptions import ClientError

from udlgate.storage.backend import (
    DEFAULT_CONTENT_TYPE,
    CompletedPart,
    InvalidPart,
    InvalidPartOrder,
    NoSuchUpload,
    ObjectInfo,
    StoredObject,
    UploadedPart,
    UploadSession,
    strip_etag,
)

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB (matches local backend)
_CHUNK_SIZE = 64 * 1024

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _translate(exc: ClientError, upload_id: str = "") -> Exception:
    """Map a multipart ClientError onto the storage error it stands for.

    Errors without a storage counterpart are returned unchanged.
    """
    code = _error_code(exc)
    message = exc.response.get("Error", {}).get("Message", code)
    if code == "NoSuchUpload":
        return NoSuchUpload(upload_id)
    if code in ("InvalidPart", "EntityTooSmall"):
        return InvalidPart(message)
    if code == "InvalidPartOrder":
        return InvalidPartOrder(message)
    return exc


class AWSGatewayBackend:
    """Storage backend that proxies to a real AWS S3 bucket.

    Attributes:
        bucket_name: The upstream AWS S3 bucket name.
        region: The AWS region for the bucket.
        prefix: Key prefix for all objects in the upstream bucket.
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        prefix: str = "",
        endpoint_url: str = "",
        use_path_style: bool = False,
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.prefix = prefix
        self.endpoint_url = endpoint_url
        self.use_path_style = use_path_style
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    def _s3_key(self, key: str) -> str:
        """Map a gateway key to an upstream S3 key."""
        return f"{self.prefix}{key}"

    def _gateway_key(self, s3_key: str) -> str:
        """Strip the configured prefix from an upstream key."""
        return s3_key[len(self.prefix):] if s3_key.startswith(self.prefix) else s3_key

    async def init(self) -> None:
        """Create the aiobotocore S3 client and verify the upstream bucket exists.

        Raises:
            ValueError: If the upstream bucket does not exist or is inaccessible.
        """
        client_kwargs: dict = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.use_path_style:
            from botocore.config import Config as BotoConfig
            client_kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})

        # Use explicit credentials if provided, otherwise fall back to chain
        if self.access_key_id and self.secret_access_key:
            session = AioSession()
            session.set_credentials(self.access_key_id, self.secret_access_key)
            self._session = session
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        try:
            await self._client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            code = _error_code(e)
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None
            raise ValueError(
                f"Cannot access upstream S3 bucket '{self.bucket_name}': {code}"
            ) from e

        logger.info(
            "AWS gateway backend initialized: bucket=%s region=%s prefix='%s'",
            self.bucket_name,
            self.region,
            self.prefix,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def create_multipart_upload(self, key: str) -> UploadSession:
        resp = await self._client.create_multipart_upload(
            Bucket=self.bucket_name, Key=self._s3_key(key)
        )
        return UploadSession(key=key, upload_id=resp["UploadId"])

    def resume_multipart_upload(self, key: str, upload_id: str) -> UploadSession:
        return UploadSession(key=key, upload_id=upload_id)

    async def upload_part(
        self, session: UploadSession, part_number: int, data: bytes
    ) -> UploadedPart:
        try:
            resp = await self._client.upload_part(
                Bucket=self.bucket_name,
                Key=self._s3_key(session.key),
                UploadId=session.upload_id,
                PartNumber=part_number,
                Body=data,
            )
        except ClientError as e:
            raise _translate(e, session.upload_id) from e
        return UploadedPart(part_number=part_number, etag=strip_etag(resp["ETag"]))

    async def complete_multipart_upload(
        self, session: UploadSession, parts: list[CompletedPart]
    ) -> ObjectInfo:
        """Finalize the native upload, then read back the object's size."""
        manifest = [{"ETag": p.etag, "PartNumber": p.part_number} for p in parts]
        try:
            resp = await self._client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=self._s3_key(session.key),
                UploadId=session.upload_id,
                MultipartUpload={"Parts": manifest},
            )
        except ClientError as e:
            raise _translate(e, session.upload_id) from e

        info = await self.head(session.key)
        if info is None:
            # Listed as committed but not yet visible; report what we know
            return ObjectInfo(key=session.key, size=0, etag=strip_etag(resp.get("ETag", "")))
        return info

    async def abort_multipart_upload(self, session: UploadSession) -> None:
        try:
            await self._client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=self._s3_key(session.key),
                UploadId=session.upload_id,
            )
        except ClientError as e:
            raise _translate(e, session.upload_id) from e

    async def get(self, key: str) -> StoredObject | None:
        """Open the object for streaming.

        The upstream body is closed once the stream is exhausted.
        """
        try:
            resp = await self._client.get_object(Bucket=self.bucket_name, Key=self._s3_key(key))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise

        info = ObjectInfo(
            key=key,
            size=resp.get("ContentLength", 0),
            etag=strip_etag(resp.get("ETag", "")),
            content_type=resp.get("ContentType") or DEFAULT_CONTENT_TYPE,
            last_modified=resp.get("LastModified"),
        )
        return StoredObject(info=info, body=self._stream(resp["Body"]))

    async def _stream(self, body) -> AsyncIterator[bytes]:
        async with body as stream:
            while True:
                chunk = await stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def head(self, key: str) -> ObjectInfo | None:
        try:
            resp = await self._client.head_object(Bucket=self.bucket_name, Key=self._s3_key(key))
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise
        return ObjectInfo(
            key=key,
            size=resp.get("ContentLength", 0),
            etag=strip_etag(resp.get("ETag", "")),
            content_type=resp.get("ContentType") or DEFAULT_CONTENT_TYPE,
            last_modified=resp.get("LastModified"),
        )

    async def list(self, prefix: str | None, limit: int) -> list[ObjectInfo]:
        """List a single page of up to ``limit`` objects."""
        resp = await self._client.list_objects_v2(
            Bucket=self.bucket_name,
            Prefix=self._s3_key(prefix or ""),
            MaxKeys=limit,
        )
        return [
            ObjectInfo(
                key=self._gateway_key(obj["Key"]),
                size=obj.get("Size", 0),
                etag=strip_etag(obj.get("ETag", "")),
                last_modified=obj.get("LastModified"),
            )
            for obj in resp.get("Contents", [])
        ]

    async def delete(self, key: str) -> None:
        """Delete an object from the upstream S3 bucket.

        Idempotent: S3 delete_object does not error on missing keys.
        """
        await self._client.delete_object(Bucket=self.bucket_name, Key=self._s3_key(key))

# ============================================
# FILE: assetmigrator/storage/backends/s3/provider.py
# ============================================

"""
S3 Storage Provider

AWS S3 binding for the provider interface. S3-compatible vendors
(DigitalOcean Spaces, Wasabi, Cloudflare R2) subclass it and only
change endpoint derivation, public URLs and capabilities.

Requires: pip install aioboto3
"""

import asyncio
import time
from collections.abc import AsyncIterator
from typing import Any

from assetmigrator.core.exceptions import MissingDependencyError
from assetmigrator.storage.core import (
    ConnectionTestResult,
    NotFoundError,
    ProviderError,
    ProviderTransportError,
    RateLimitError,
)
from assetmigrator.storage.interfaces.provider import (
    DEFAULT_CHUNK_SIZE,
    ProviderCapabilities,
    StorageObject,
    StorageProvider,
    WriteOptions,
    guess_content_type,
    normalize_path,
)

try:
    import aioboto3
    from botocore.exceptions import BotoCoreError, ClientError

    AIOBOTO3_AVAILABLE = True
    CLIENT_ERRORS: tuple = (ClientError, BotoCoreError)
except ImportError:
    AIOBOTO3_AVAILABLE = False  # pragma: no cover
    aioboto3 = None  # pragma: no cover
    CLIENT_ERRORS = ()  # pragma: no cover

# S3 hard limits
MAX_OBJECT_SIZE = 5 * 1024**4  # 5 TiB
MAX_COPY_OBJECT_SIZE = 5 * 1024**3  # single CopyObject call
MIN_PART_SIZE = 5 * 1024**2

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
THROTTLE_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "TooManyRequests",
    "RequestLimitExceeded",
    "503",
}


def classify_client_error(
    exc: BaseException,
    provider: str | None = None,
    path: str | None = None,
    endpoint: str | None = None,
) -> ProviderError:
    """
    Map a botocore exception onto the provider error taxonomy.

    - 404 / NoSuchKey / NotFound -> NotFoundError
    - SlowDown / Throttling / 503 ... -> RateLimitError
    - everything else (auth, DNS, timeouts) -> ProviderTransportError
    """
    if isinstance(exc, ProviderError):
        return exc

    code = None
    status = None
    retry_after = None
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        code = str(response.get("Error", {}).get("Code", "")) or None
        metadata = response.get("ResponseMetadata", {})
        status = metadata.get("HTTPStatusCode")
        header = metadata.get("HTTPHeaders", {}).get("retry-after")
        if header is not None:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None

    if code in NOT_FOUND_CODES or status == 404:
        return NotFoundError(f"Object not found: {path}", provider=provider, path=path)

    if code in THROTTLE_CODES or status in (429, 503):
        return RateLimitError(
            f"Request throttled by backend: {code or status}",
            provider=provider,
            path=path,
            retry_after=retry_after,
            code=code,
        )

    return ProviderTransportError(
        f"S3 request failed: {exc}",
        provider=provider,
        path=path,
        endpoint=endpoint,
        code=code,
        error_type=type(exc).__name__,
    )


class S3StorageProvider(StorageProvider):
    """
    AWS S3 implementation of the storage provider interface.

    Example:
        >>> provider = S3StorageProvider(
        ...     bucket="my-assets",
        ...     region="ca-central-1",
        ...     access_key="...",
        ...     secret_key="...",
        ...     subfolder="images",
        ... )
        >>> async with provider:
        ...     async for obj in provider.list_objects("2024/"):
        ...         print(obj.path, obj.size)
    """

    provider_type = "s3"

    def __init__(
        self,
        bucket: str,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        endpoint: str | None = None,
        subfolder: str = "",
        base_url: str | None = None,
        name: str | None = None,
        acl: str | None = None,
        multipart_chunk_size: int = 8 * 1024**2,
        **client_kwargs: Any,
    ):
        """
        Initialize S3 provider.

        Args:
            bucket: Bucket name
            access_key: Access key id
            secret_key: Secret access key
            region: Bucket region
            endpoint: Custom endpoint URL (S3-compatible vendors)
            subfolder: Key prefix applied to every object path
            base_url: Public URL prefix; derived from bucket/region otherwise
            name: Instance name (filesystem handle)
            acl: Canned ACL applied to writes (e.g. "public-read")
            multipart_chunk_size: Part size for streamed uploads
            **client_kwargs: Extra arguments for the aioboto3 client
        """
        if not AIOBOTO3_AVAILABLE:
            msg = "aioboto3"
            raise MissingDependencyError(msg, f"{self.provider_type} storage provider")

        super().__init__(name=name)
        self.bucket = bucket
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.endpoint = endpoint or self._default_endpoint()
        self.subfolder = normalize_path(subfolder) if subfolder else ""
        self.base_url = (base_url or self._default_base_url()).rstrip("/")
        self.acl = acl
        self.multipart_chunk_size = max(multipart_chunk_size, MIN_PART_SIZE)
        self.client_kwargs = client_kwargs

        self._session = None
        self._client_cm = None
        self._s3_client = None
        self._lock = asyncio.Lock()
        self._capabilities = self._build_capabilities()

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------

    def _default_endpoint(self) -> str | None:
        return None

    def _default_base_url(self) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com"

    def _build_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=True,
            supports_streaming=True,
            max_file_size=MAX_OBJECT_SIZE,
            optimal_batch_size=100,
            supports_multipart_upload=True,
        )

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    @property
    def vendor_key(self) -> str:
        endpoint = self.endpoint or "https://s3.amazonaws.com"
        return f"{self.provider_type}|{endpoint}|{self.access_key}"

    def url_pattern(self) -> str:
        if self.subfolder:
            return f"{self.base_url}/{self.subfolder}/{{path}}"
        return f"{self.base_url}/{{path}}"

    # ------------------------------------------------------------------
    # Client
    # ------------------------------------------------------------------

    async def _get_s3_client(self):
        """Get S3 client, creating if necessary"""
        async with self._lock:
            if self._s3_client is None:
                try:
                    self._session = aioboto3.Session(
                        aws_access_key_id=self.access_key,
                        aws_secret_access_key=self.secret_key,
                    )
                    kwargs = dict(self.client_kwargs)
                    if self.endpoint:
                        kwargs["endpoint_url"] = self.endpoint
                    self._client_cm = self._session.client(
                        "s3", region_name=self.region, **kwargs
                    )
                    self._s3_client = await self._client_cm.__aenter__()
                except Exception as e:
                    raise ProviderTransportError(
                        f"Failed to create S3 client: {e}",
                        provider=self.name,
                        endpoint=self.endpoint,
                    ) from e

        return self._s3_client

    async def close(self) -> None:
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
        self._client_cm = None
        self._s3_client = None
        await super().close()

    def _key(self, path: str) -> str:
        key = normalize_path(path)
        return f"{self.subfolder}/{key}" if self.subfolder else key

    def _relative(self, key: str) -> str:
        if self.subfolder and key.startswith(self.subfolder + "/"):
            return key[len(self.subfolder) + 1 :]
        return key

    def _error(self, exc: BaseException, path: str | None = None) -> ProviderError:
        return classify_client_error(exc, provider=self.name, path=path, endpoint=self.endpoint)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    async def head_object(self, path: str) -> StorageObject | None:
        s3 = await self._get_s3_client()
        try:
            response = await s3.head_object(Bucket=self.bucket, Key=self._key(path))
        except CLIENT_ERRORS as e:
            error = self._error(e, path)
            if isinstance(error, NotFoundError):
                return None
            raise error from e

        return StorageObject(
            path=normalize_path(path),
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType") or guess_content_type(path),
            last_modified=response.get("LastModified"),
            version_id=response.get("VersionId"),
            etag=(response.get("ETag") or "").strip('"') or None,
        )

    async def _get_object(self, path: str) -> dict[str, Any]:
        s3 = await self._get_s3_client()
        try:
            return await s3.get_object(Bucket=self.bucket, Key=self._key(path))
        except CLIENT_ERRORS as e:
            raise self._error(e, path) from e

    async def read(self, path: str) -> bytes:
        response = await self._get_object(path)
        return await response["Body"].read()

    async def read_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        response = await self._get_object(path)
        body = response["Body"]
        try:
            while True:
                chunk = await body.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    def _put_params(self, key: str, options: WriteOptions | None) -> dict[str, Any]:
        options = options or WriteOptions()
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "ContentType": options.content_type or guess_content_type(key),
        }
        acl = options.acl or self.acl
        if acl:
            params["ACL"] = acl
        if options.cache_control:
            params["CacheControl"] = options.cache_control
        if options.metadata:
            params["Metadata"] = dict(options.metadata)
        return params

    async def write(
        self,
        path: str,
        data: bytes | AsyncIterator[bytes],
        options: WriteOptions | None = None,
    ) -> StorageObject:
        s3 = await self._get_s3_client()
        key = self._key(path)
        params = self._put_params(key, options)

        try:
            if isinstance(data, bytes | bytearray):
                await s3.put_object(Body=bytes(data), **params)
                size = len(data)
            else:
                size = await self._upload_stream(s3, data, params)
        except CLIENT_ERRORS as e:
            raise self._error(e, path) from e

        self._log_operation("write", path, size=size)
        return StorageObject(
            path=normalize_path(path),
            size=size,
            content_type=params["ContentType"],
        )

    async def _upload_stream(
        self, s3, chunks: AsyncIterator[bytes], params: dict[str, Any]
    ) -> int:
        """
        Upload a chunk stream.

        Objects smaller than one part go through a single put_object;
        larger ones use a multipart upload that is aborted on failure.
        """
        buffer = bytearray()
        upload_id = None
        parts: list[dict[str, Any]] = []
        total = 0

        try:
            async for chunk in chunks:
                buffer.extend(chunk)
                total += len(chunk)
                while len(buffer) >= self.multipart_chunk_size:
                    if upload_id is None:
                        created = await s3.create_multipart_upload(**params)
                        upload_id = created["UploadId"]
                    part = bytes(buffer[: self.multipart_chunk_size])
                    del buffer[: self.multipart_chunk_size]
                    parts.append(await self._upload_part(s3, params, upload_id, len(parts) + 1, part))

            if upload_id is None:
                await s3.put_object(Body=bytes(buffer), **params)
                return total

            if buffer:
                parts.append(
                    await self._upload_part(s3, params, upload_id, len(parts) + 1, bytes(buffer))
                )
            await s3.complete_multipart_upload(
                Bucket=params["Bucket"],
                Key=params["Key"],
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
            return total
        except BaseException:
            if upload_id is not None:
                await s3.abort_multipart_upload(
                    Bucket=params["Bucket"], Key=params["Key"], UploadId=upload_id
                )
            raise

    async def _upload_part(
        self, s3, params: dict[str, Any], upload_id: str, number: int, data: bytes
    ) -> dict[str, Any]:
        response = await s3.upload_part(
            Bucket=params["Bucket"],
            Key=params["Key"],
            UploadId=upload_id,
            PartNumber=number,
            Body=data,
        )
        return {"PartNumber": number, "ETag": response["ETag"]}

    async def delete_file(self, path: str) -> bool:
        if await self.head_object(path) is None:
            return False

        s3 = await self._get_s3_client()
        try:
            await s3.delete_object(Bucket=self.bucket, Key=self._key(path))
        except CLIENT_ERRORS as e:
            error = self._error(e, path)
            if isinstance(error, NotFoundError):
                return False
            raise error from e

        self._log_operation("delete", path)
        return True

    async def list_objects(
        self,
        prefix: str = "",
        max_keys: int | None = None,
        recursive: bool = True,
    ) -> AsyncIterator[StorageObject]:
        s3 = await self._get_s3_client()
        key_prefix = self._key(prefix) if prefix else (f"{self.subfolder}/" if self.subfolder else "")
        if prefix.endswith("/") and not key_prefix.endswith("/"):
            key_prefix += "/"

        paginate_args: dict[str, Any] = {"Bucket": self.bucket, "Prefix": key_prefix}
        if not recursive:
            paginate_args["Delimiter"] = "/"

        emitted = 0
        paginator = s3.get_paginator("list_objects_v2")
        try:
            async for page in paginator.paginate(**paginate_args):
                for item in page.get("Contents", []):
                    key = item["Key"]
                    if key.endswith("/"):
                        continue
                    relative = self._relative(key)
                    yield StorageObject(
                        path=relative,
                        size=int(item.get("Size", 0)),
                        content_type=guess_content_type(relative),
                        last_modified=item.get("LastModified"),
                        etag=(item.get("ETag") or "").strip('"') or None,
                    )
                    emitted += 1
                    if max_keys is not None and emitted >= max_keys:
                        return
        except CLIENT_ERRORS as e:
            raise self._error(e, prefix) from e

    async def test_connection(self) -> ConnectionTestResult:
        start = time.perf_counter()
        details = {
            "provider": self.name,
            "type": self.provider_type,
            "bucket": self.bucket,
            "region": self.region,
            "endpoint": self.endpoint or "aws-default",
            "subfolder": self.subfolder or None,
        }

        try:
            s3 = await self._get_s3_client()
            prefix = f"{self.subfolder}/" if self.subfolder else ""
            await s3.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        except Exception as e:
            return ConnectionTestResult.failure(
                f"Connection failed: {e}",
                exception=e,
                details=details,
                response_time_seconds=time.perf_counter() - start,
            )

        return ConnectionTestResult.ok(
            "Connection successful",
            details=details,
            response_time_seconds=time.perf_counter() - start,
        )

    async def _server_side_copy(
        self,
        source_path: str,
        target_provider: StorageProvider,
        target_path: str,
    ) -> None:
        assert isinstance(target_provider, S3StorageProvider)
        source_meta = await self.get_object_metadata(source_path)

        if source_meta.size > MAX_COPY_OBJECT_SIZE:
            # CopyObject is capped; stream anything larger through a multipart upload
            await target_provider.write(
                target_path,
                self.read_stream(source_path),
                WriteOptions(content_type=source_meta.content_type),
            )
            return

        s3 = await target_provider._get_s3_client()
        params: dict[str, Any] = {
            "Bucket": target_provider.bucket,
            "Key": target_provider._key(target_path),
            "CopySource": {"Bucket": self.bucket, "Key": self._key(source_path)},
            "MetadataDirective": "COPY",
        }
        if target_provider.acl:
            params["ACL"] = target_provider.acl

        try:
            await s3.copy_object(**params)
        except CLIENT_ERRORS as e:
            raise self._error(e, source_path) from e

"""
S3-compatible vendors.

Each vendor speaks the S3 API; only endpoints, public URLs and the
declared capabilities differ from AWS.
"""

from typing import Any

from assetmigrator.storage.interfaces.provider import ProviderCapabilities

from .provider import MAX_OBJECT_SIZE, S3StorageProvider


class DigitalOceanSpacesProvider(S3StorageProvider):
    """
    DigitalOcean Spaces.

    Endpoint: https://{region}.digitaloceanspaces.com
    Public URL: https://{bucket}.{region}.digitaloceanspaces.com
    """

    provider_type = "digitalocean-spaces"

    def __init__(self, bucket: str, access_key: str, secret_key: str, region: str = "nyc3", **kwargs: Any):
        super().__init__(bucket, access_key, secret_key, region=region, **kwargs)

    def _default_endpoint(self) -> str:
        return f"https://{self.region}.digitaloceanspaces.com"

    def _default_base_url(self) -> str:
        return f"https://{self.bucket}.{self.region}.digitaloceanspaces.com"

    def _build_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=False,
            supports_streaming=True,
            max_file_size=MAX_OBJECT_SIZE,
            optimal_batch_size=100,
            supports_multipart_upload=True,
        )


class WasabiStorageProvider(S3StorageProvider):
    """
    Wasabi hot storage.

    Endpoint: https://s3.{region}.wasabisys.com
    """

    provider_type = "wasabi"

    def _default_endpoint(self) -> str:
        return f"https://s3.{self.region}.wasabisys.com"

    def _default_base_url(self) -> str:
        return f"https://s3.{self.region}.wasabisys.com/{self.bucket}"

    def _build_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=False,
            supports_streaming=True,
            max_file_size=MAX_OBJECT_SIZE,
            optimal_batch_size=100,
            supports_multipart_upload=True,
        )


class CloudflareR2Provider(S3StorageProvider):
    """
    Cloudflare R2.

    Needs either an explicit endpoint or the account id, from which
    https://{account_id}.r2.cloudflarestorage.com is derived. R2 has no
    public bucket URL unless one is configured via base_url.
    """

    provider_type = "cloudflare-r2"

    def __init__(
        self,
        bucket: str,
        access_key: str,
        secret_key: str,
        account_id: str | None = None,
        region: str = "auto",
        **kwargs: Any,
    ):
        if not account_id and not kwargs.get("endpoint"):
            msg = "Cloudflare R2 requires either account_id or endpoint"
            raise ValueError(msg)
        self.account_id = account_id
        super().__init__(bucket, access_key, secret_key, region=region, **kwargs)

    def _default_endpoint(self) -> str | None:
        if self.account_id:
            return f"https://{self.account_id}.r2.cloudflarestorage.com"
        return None

    def _default_base_url(self) -> str:
        return f"{self.endpoint}/{self.bucket}"

    def _build_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=False,
            supports_streaming=True,
            max_file_size=MAX_OBJECT_SIZE,
            optimal_batch_size=100,
            supports_multipart_upload=True,
            supports_public_urls=False,
        )


class BackblazeB2Provider(S3StorageProvider):
    """
    Backblaze B2 through its S3-compatible API.

    Endpoint: https://s3.{region}.backblazeb2.com
    Public URL: https://{bucket}.s3.{region}.backblazeb2.com
    """

    provider_type = "backblaze-b2"

    AVAILABLE_REGIONS = ("us-west-001", "us-west-002", "us-west-004", "eu-central-003")

    # Largest file B2 accepts (10 TB, assembled from large-file parts)
    MAX_FILE_SIZE = 10 * 1024**4

    def __init__(
        self, bucket: str, access_key: str, secret_key: str, region: str = "us-west-002", **kwargs: Any
    ):
        super().__init__(bucket, access_key, secret_key, region=region, **kwargs)

    def _default_endpoint(self) -> str:
        return f"https://s3.{self.region}.backblazeb2.com"

    def _default_base_url(self) -> str:
        return f"https://{self.bucket}.s3.{self.region}.backblazeb2.com"

    def _build_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_server_side_copy=True,
            supports_versioning=False,
            supports_streaming=True,
            max_file_size=self.MAX_FILE_SIZE,
            optimal_batch_size=100,
            supports_multipart_upload=True,
        )

"""Storage bridge — presigned upload grants and object writes on S3.

Bridge boundary
---------------
The session manager depends only on the ``CredentialIssuer`` protocol:
``issue(bucket, key, content_type, ttl_seconds) -> IssuedCredential``.
``S3CredentialIssuer`` satisfies it with boto3 presigned ``put_object``
URLs; tests and other backends can plug in any object with that method.

``S3ObjectWriter`` puts small JSON documents (manifests) next to the
uploaded objects.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import AwareDatetime, BaseModel, ConfigDict

from permavault.config import VaultConfig
from permavault.errors import VaultBuildError

logger = logging.getLogger(__name__)


class StorageError(VaultBuildError):
    """Raised when the storage backend rejects an operation."""


class IssuedCredential(BaseModel):
    """A signed upload URL and the instant it stops working."""

    model_config = ConfigDict(frozen=True)

    upload_url: str
    expires_at: AwareDatetime


@runtime_checkable
class CredentialIssuer(Protocol):
    """Protocol for storage credential issuers."""

    def issue(
        self, bucket: str, key: str, content_type: str, ttl_seconds: int
    ) -> IssuedCredential:
        """Return a time-bounded credential for a single PUT to *key*.

        Raises
        ------
        StorageError
            If the backend refuses to sign.
        """
        ...


def storage_uri(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def make_s3_client(config: VaultConfig) -> Any:
    """Create a boto3 S3 client from the vault configuration."""
    return boto3.client(
        "s3",
        region_name=config.storage_region,
        endpoint_url=config.storage_endpoint_url,
    )


class S3CredentialIssuer:
    """Issues presigned ``PUT`` URLs via boto3.

    The content type is bound into the signature, so the uploader must send
    the same ``Content-Type`` header it was granted.

    Parameters
    ----------
    client:
        A boto3 S3 client.  Presigning is a local operation; no request is
        sent to S3 until the URL is used.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: VaultConfig) -> S3CredentialIssuer:
        return cls(make_s3_client(config))

    def issue(
        self, bucket: str, key: str, content_type: str, ttl_seconds: int
    ) -> IssuedCredential:
        issued_at = datetime.now(timezone.utc)
        try:
            url = self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Presign failed for s3://{bucket}/{key}: {exc}") from exc
        logger.debug("Issued %ds grant for s3://%s/%s", ttl_seconds, bucket, key)
        return IssuedCredential(
            upload_url=url,
            expires_at=issued_at + timedelta(seconds=ttl_seconds),
        )


class S3ObjectWriter:
    """Writes small documents to S3 with ``put_object``."""

    def __init__(self, client: Any, bucket: str) -> None:
        if not bucket:
            raise StorageError("S3ObjectWriter requires a bucket name")
        self._client = client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    def put(self, key: str, body: bytes, content_type: str = "application/json") -> str:
        """Put *body* at *key* and return its ``s3://`` URI."""
        try:
            self._client.put_object(
                Bucket=self._bucket, Key=key, Body=body, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"PUT failed for s3://{self._bucket}/{key}: {exc}") from exc
        uri = storage_uri(self._bucket, key)
        logger.info("Wrote %d bytes to %s", len(body), uri)
        return uri

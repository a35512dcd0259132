"""Object-store adapter contract and its boto3 implementation.

This module encapsulates boto3 client creation for object reads and writes.
It is shared by object-store sources and destinations.
"""

from __future__ import annotations

from typing import Any, Protocol

from core.config import SluiceConfig
from core.errors import SluiceDependencyError, SluiceExtractError, SluiceLoadError
from core.pipeline_config import AwsCredentials


class ObjectStoreAdapter(Protocol):
    """Byte-level access to objects in a bucket."""

    def get(
        self,
        bucket: str,
        key: str,
        region: str,
        credentials: AwsCredentials | None,
    ) -> bytes:
        """Return the bytes of one object."""

    def put(
        self,
        bucket: str,
        key: str,
        region: str,
        credentials: AwsCredentials | None,
        payload: bytes,
    ) -> None:
        """Write one object."""


class Boto3ObjectStore:
    """S3-compatible object store backed by boto3."""

    def __init__(self, runtime: SluiceConfig) -> None:
        self._runtime = runtime

    def get(
        self,
        bucket: str,
        key: str,
        region: str,
        credentials: AwsCredentials | None,
    ) -> bytes:
        """Download an object.

        Raises:
            SluiceExtractError: If the download fails.
        """
        s3_client = self._create_client(region, credentials)
        try:
            response = s3_client.get_object(Bucket=bucket, Key=key)
            return bytes(response["Body"].read())
        except Exception as error:
            raise SluiceExtractError(
                f"Failed to read s3://{bucket}/{key}: {error}. "
                "Check AWS credentials, bucket, and key."
            ) from error

    def put(
        self,
        bucket: str,
        key: str,
        region: str,
        credentials: AwsCredentials | None,
        payload: bytes,
    ) -> None:
        """Upload an object.

        Raises:
            SluiceLoadError: If the upload fails.
        """
        s3_client = self._create_client(region, credentials)
        try:
            s3_client.put_object(Bucket=bucket, Key=key, Body=payload)
        except Exception as error:
            raise SluiceLoadError(
                f"Failed to write s3://{bucket}/{key}: {error}. "
                "Check AWS credentials and bucket permissions."
            ) from error

    def _create_client(self, region: str, credentials: AwsCredentials | None) -> Any:
        """Create a boto3 S3 client.

        Args:
            region: Region declared in the pipeline config.
            credentials: Static credentials, or None for the session chain.

        Returns:
            Boto3 S3 client.

        Raises:
            SluiceDependencyError: If boto3 is missing.
        """
        try:
            import boto3
        except ImportError as error:
            raise SluiceDependencyError(
                "Object-store support requires boto3, but it is not installed. "
                "Install boto3 to use object_store sources and destinations."
            ) from error
        session = boto3.session.Session(**build_session_kwargs(self._runtime, region, credentials))
        return session.client("s3")


def build_session_kwargs(
    runtime: SluiceConfig,
    region: str | None,
    credentials: AwsCredentials | None,
) -> dict[str, str]:
    """Build boto3 Session kwargs.

    Explicit credentials take precedence over the runtime profile; the
    declared region takes precedence over the runtime default region.
    """
    kwargs: dict[str, str] = {}
    if credentials is not None:
        kwargs["aws_access_key_id"] = credentials.access_key_id
        kwargs["aws_secret_access_key"] = credentials.secret_access_key
        if credentials.session_token:
            kwargs["aws_session_token"] = credentials.session_token
    elif runtime.s3_profile:
        kwargs["profile_name"] = runtime.s3_profile
    resolved_region = region or runtime.s3_region
    if resolved_region:
        kwargs["region_name"] = resolved_region
    return kwargs

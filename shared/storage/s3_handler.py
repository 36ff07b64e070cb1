"""
S3/Minio storage handler module.
Provides unified interface for S3-compatible storage.
"""

from datetime import timedelta
from typing import Optional, Tuple
from urllib.parse import urlparse

import urllib3
from minio import Minio
from minio.error import S3Error
from loguru import logger

from shared.utils.env import first_env, get_env, get_env_bool

DEFAULT_S3_ENDPOINT = "s3.amazonaws.com"


def parse_s3_url(url: str) -> Tuple[str, str]:
    """
    Split an s3:// URL into bucket and object key.

    Args:
        url: URL of the form s3://bucket/path/to/key

    Returns:
        Tuple of (bucket, key)

    Raises:
        ValueError: If the URL is not a complete s3:// URL
    """
    parsed = urlparse(url)
    if parsed.scheme != "s3":
        raise ValueError(f"Not an s3:// URL: {url}")
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if not bucket or not key:
        raise ValueError(f"s3 URL must include bucket and key: {url}")
    return bucket, key


class S3Handler:
    """
    Handler for S3/Minio storage operations.
    Supports object download and presigned URLs.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: Optional[str] = None,
        secure: Optional[bool] = None,
    ):
        """
        Initialize S3 handler.

        Credentials fall back to S3_* and then AWS_* environment variables.

        Args:
            endpoint: S3/Minio endpoint (host[:port])
            access_key: Access key ID
            secret_key: Secret access key
            region: Bucket region
            secure: Use HTTPS (default: $S3_SECURE, true)
        """
        self.endpoint = endpoint or get_env("S3_ENDPOINT", DEFAULT_S3_ENDPOINT)
        self.access_key = access_key or first_env("S3_ACCESS_KEY", "AWS_ACCESS_KEY_ID")
        self.secret_key = secret_key or first_env("S3_SECRET_KEY", "AWS_SECRET_ACCESS_KEY")
        self.region = region or first_env("S3_REGION", "AWS_REGION", "AWS_DEFAULT_REGION")
        self.secure = get_env_bool("S3_SECURE", True) if secure is None else secure

        self.client = self._create_client()

    def _create_client(self) -> Minio:
        """Create Minio client with a pooled HTTP transport."""
        http_client = urllib3.PoolManager(
            retries=urllib3.Retry(total=3, backoff_factor=0.5, status_forcelist=[500, 502, 503, 504])
        )

        return Minio(
            endpoint=self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            session_token=get_env("AWS_SESSION_TOKEN"),
            region=self.region,
            http_client=http_client,
            secure=self.secure,
        )

    def download_to_file(self, bucket: str, key: str, file_path: str) -> int:
        """
        Download an object to a local file.

        Args:
            bucket: Bucket name
            key: Object key
            file_path: Destination path (overwritten)

        Returns:
            Number of bytes downloaded

        Raises:
            S3Error: If the object cannot be fetched
        """
        logger.debug(f"Downloading s3://{bucket}/{key} to {file_path}")
        try:
            stat = self.client.fget_object(
                bucket_name=bucket,
                object_name=key,
                file_path=file_path,
            )
        except S3Error as e:
            logger.error(f"Failed to download s3://{bucket}/{key}: {e}")
            raise
        return stat.size

    def presign_get(self, url: str, expires_seconds: int = 3600) -> str:
        """Presign a GET for an s3:// URL."""
        bucket, key = parse_s3_url(url)
        return self.client.presigned_get_object(
            bucket_name=bucket,
            object_name=key,
            expires=timedelta(seconds=expires_seconds),
        )

    def presign_put(self, url: str, expires_seconds: int = 3600) -> str:
        """Presign a PUT for an s3:// URL."""
        bucket, key = parse_s3_url(url)
        return self.client.presigned_put_object(
            bucket_name=bucket,
            object_name=key,
            expires=timedelta(seconds=expires_seconds),
        )

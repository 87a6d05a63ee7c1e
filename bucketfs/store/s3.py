"""Object store client for S3-compatible services like AWS S3 and Tencent COS."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import boto3
import botocore
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from bucketfs.config import StoreConfig
from bucketfs.logger import log
from .common import (
    Listing,
    ObjectInfo,
    RemoteNotFound,
    RemoteTimeout,
    RemoteUnavailable,
    StoreClient,
)

# Error codes that S3-compatible services use to report a missing object.
_NOT_FOUND_CODES = ("NoSuchKey", "NotFound", "404")


def cos_endpoint(region: str) -> str:
    """Return the S3-compatible endpoint of Tencent COS for the given region."""
    return f"https://cos.{region}.myqcloud.com"


def resolve_endpoint(config: StoreConfig) -> Optional[str]:
    """
    Determine the endpoint URL of the configured store.

    None means that boto3 picks the regular AWS endpoint for the region.
    """
    if config.endpoint:
        return config.endpoint

    if config.provider == "cos":
        if not config.region:
            raise ValueError("a region is required for the cos provider")

        return cos_endpoint(config.region)

    return None


class S3StoreClient(StoreClient):
    """
    Store client on top of boto3.

    Listings use ListObjectsV2 with a delimiter, so that a single call returns one
    level of the hierarchy. All pages of a listing are collected before returning,
    which makes a listing a single operation from the perspective of the caller.

    Timeouts and retries are configured on the botocore client. The file system itself
    never retries a failed call.
    """

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: int = 5000,
        retries: int = 3,
        anonymous: bool = False,
        client: Any = None,
    ):
        """Instantiate a client for a bucket, optionally with a prepared boto3 client."""
        self._bucket = bucket

        if client is None:
            config = BotoConfig(
                connect_timeout=timeout / 1000,
                read_timeout=timeout / 1000,
                retries={"max_attempts": retries, "mode": "standard"},
            )

            if anonymous:
                config = config.merge(BotoConfig(signature_version=botocore.UNSIGNED))

            client = boto3.client(
                "s3", region_name=region, endpoint_url=endpoint, config=config
            )

        self._client = client

    @staticmethod
    def from_config(config: StoreConfig) -> S3StoreClient:
        """Instantiate a client from the store section of the configuration."""
        endpoint = resolve_endpoint(config)

        log.info(
            f"using bucket {config.bucket} (region={config.region}, endpoint={endpoint})"
        )

        return S3StoreClient(
            config.bucket,
            region=config.region,
            endpoint=endpoint,
            timeout=config.timeout,
            retries=config.retries,
            anonymous=config.anonymous,
        )

    def list(self, prefix: str, delimiter: str = "/") -> Listing:
        listing = Listing()

        with self._translate_errors(f"list {prefix!r}"):
            paginator = self._client.get_paginator("list_objects_v2")

            for page in paginator.paginate(
                Bucket=self._bucket, Prefix=prefix, Delimiter=delimiter
            ):
                for common_prefix in page.get("CommonPrefixes", []):
                    listing.sub_prefixes.append(common_prefix["Prefix"])

                for obj in page.get("Contents", []):
                    listing.objects.append(
                        ObjectInfo(
                            key=obj["Key"],
                            size=obj["Size"],
                            modified_at=obj["LastModified"].timestamp(),
                        )
                    )

        return listing

    def fetch(self, key: str) -> bytes:
        with self._translate_errors(f"fetch {key!r}"):
            response = self._client.get_object(Bucket=self._bucket, Key=key)

            body = response["Body"]

            try:
                return body.read()
            finally:
                body.close()

    @contextmanager
    def _translate_errors(self, description: str) -> Iterator[None]:
        """Turn botocore exceptions into the errors of the store interface."""
        try:
            yield
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            raise RemoteTimeout(f"{description} timed out: {e}") from e
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))

            if code in _NOT_FOUND_CODES:
                raise RemoteNotFound(f"{description}: no such object") from e

            raise RemoteUnavailable(f"{description} failed: {e}") from e
        except BotoCoreError as e:
            raise RemoteUnavailable(f"{description} failed: {e}") from e

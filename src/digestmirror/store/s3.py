"""ObjectStore implementation backed by AWS S3 (or any S3-compatible endpoint)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from digestmirror.config.models import StoreConfig
from digestmirror.errors import LocalIOError, ObjectNotFound, StoreServiceError
from digestmirror.interfaces.store import ObjectHead

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_RETRYABLE_CODES = {
    "Throttling",
    "ThrottlingException",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "InternalError",
    "ServiceUnavailable",
}
_PRECONDITION_CODES = {"PreconditionFailed", "412"}

# Object attributes a REPLACE self-copy would otherwise reset to bucket defaults.
# head_object and copy_object use the same parameter names for all of them.
_PRESERVED_ATTRIBUTES = (
    "ContentType",
    "CacheControl",
    "ContentDisposition",
    "ContentEncoding",
    "ContentLanguage",
    "Expires",
    "WebsiteRedirectLocation",
    "StorageClass",
    "ServerSideEncryption",
    "SSEKMSKeyId",
    "BucketKeyEnabled",
)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _status_code(exc: ClientError) -> int:
    return int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)


class S3ObjectStore:
    """AWS S3 store that conforms to the ObjectStore and MetadataUpdater protocols.

    The digest lives in user metadata (``x-amz-meta-<field>``), so checking
    freshness is a single HEAD request. Uploads use put_object so body and
    metadata are written in one request and can never disagree.
    """

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
        profile: str | None = None,
        client: Any | None = None,
        **boto_kwargs,
    ) -> None:
        if client is not None:
            self._client = client
            return
        kwargs: dict[str, Any] = dict(boto_kwargs)
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if profile:
            session = boto3.Session(profile_name=profile)
            self._client = session.client("s3", **kwargs)
        else:
            self._client = boto3.client("s3", **kwargs)

    @classmethod
    def from_config(cls, config: StoreConfig) -> S3ObjectStore:
        boto_config = BotoConfig(
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            retries={"max_attempts": config.max_attempts, "mode": "standard"},
        )
        return cls(
            region=config.region,
            endpoint_url=config.endpoint_url,
            profile=config.profile,
            config=boto_config,
        )

    # -- error mapping --------------------------------------------------------

    @staticmethod
    def _wrap(operation: str, bucket: str, key: str, exc: Exception) -> Exception:
        if isinstance(exc, ClientError):
            code = _error_code(exc)
            if code in _NOT_FOUND_CODES:
                return ObjectNotFound(bucket, key)
            if code in _PRECONDITION_CODES or _status_code(exc) == 412:
                # someone replaced the object mid-pass; the next pass sees the new body
                logger.warning("s3://%s/%s changed during %s", bucket, key, operation)
                return StoreServiceError(operation, bucket, key, exc, retryable=True)
            retryable = code in _RETRYABLE_CODES or _status_code(exc) >= 500
            return StoreServiceError(operation, bucket, key, exc, retryable=retryable)
        # connection drops and read timeouts; missing credentials are not retryable
        retryable = isinstance(exc, (BotoConnectionError, HTTPClientError))
        return StoreServiceError(operation, bucket, key, exc, retryable=retryable)

    # -- ObjectStore protocol -------------------------------------------------

    def head(self, bucket: str, key: str) -> ObjectHead:
        try:
            resp = self._client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("head", bucket, key, e) from e
        return ObjectHead(
            bucket=bucket,
            key=key,
            metadata={k.lower(): v for k, v in (resp.get("Metadata") or {}).items()},
            size=resp.get("ContentLength"),
            etag=resp.get("ETag"),
        )

    def download(self, bucket: str, key: str, dest: Path) -> None:
        try:
            self._client.download_file(bucket, key, str(dest))
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("download", bucket, key, e) from e
        logger.info("Downloaded s3://%s/%s to %s", bucket, key, dest)

    def upload(self, bucket: str, key: str, source: Path, metadata: dict[str, str]) -> None:
        try:
            body = open(source, "rb")
        except OSError as e:
            raise LocalIOError("open for upload", source, e) from e
        with body:
            try:
                self._client.put_object(Bucket=bucket, Key=key, Body=body, Metadata=metadata)
            except (ClientError, BotoCoreError) as e:
                raise self._wrap("upload", bucket, key, e) from e
        logger.info("Uploaded %s to s3://%s/%s with metadata %s", source, bucket, key, sorted(metadata))

    # -- MetadataUpdater protocol ---------------------------------------------

    def update_metadata(
        self,
        bucket: str,
        key: str,
        metadata: dict[str, str],
        if_match: str | None = None,
    ) -> None:
        """Replace user metadata in place via a self-copy (no body transfer).

        With *if_match* the copy only succeeds while the object still has that
        ETag, so a digest is never attached to a body it was not computed from.
        Content headers, storage class and SSE settings are carried over from
        a fresh HEAD, since a REPLACE copy would drop them.
        """
        try:
            current = self._client.head_object(Bucket=bucket, Key=key)
            extra: dict[str, Any] = {
                name: current[name] for name in _PRESERVED_ATTRIBUTES if current.get(name) is not None
            }
            if if_match:
                extra["CopySourceIfMatch"] = if_match
            self._client.copy_object(
                Bucket=bucket,
                Key=key,
                CopySource={"Bucket": bucket, "Key": key},
                Metadata=metadata,
                MetadataDirective="REPLACE",
                **extra,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("update_metadata", bucket, key, e) from e
        logger.info("Replaced metadata on s3://%s/%s: %s", bucket, key, sorted(metadata))

"""Tests for the S3 ObjectStore. The boto3 client is mocked; errors are real botocore types."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from digestmirror.config.models import MirrorTarget, StoreConfig
from digestmirror.digest import compute_digest
from digestmirror.errors import LocalIOError, ObjectNotFound, StoreServiceError
from digestmirror.interfaces.store import MetadataUpdater, ObjectStore
from digestmirror.reconciler import FileReconciler
from digestmirror.store import create_store
from digestmirror.store.s3 import S3ObjectStore


def _client_error(code: str, status: int, operation: str = "HeadObject") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} happened"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@pytest.fixture
def client():
    return MagicMock(name="s3_client")


@pytest.fixture
def s3(client):
    return S3ObjectStore(client=client)


class TestProtocolConformance:
    def test_object_store(self, s3):
        assert isinstance(s3, ObjectStore)

    def test_metadata_updater(self, s3):
        assert isinstance(s3, MetadataUpdater)


class TestHead:
    def test_returns_metadata(self, s3, client):
        client.head_object.return_value = {
            "Metadata": {"SHA512": "abc"},
            "ContentLength": 3,
            "ETag": '"etag"',
        }
        head = s3.head("bkt", "k")
        client.head_object.assert_called_once_with(Bucket="bkt", Key="k")
        # keys come back lowercased the way S3 stores them
        assert head.metadata == {"sha512": "abc"}
        assert head.size == 3
        assert head.digest("sha512") == "abc"

    def test_missing_metadata(self, s3, client):
        client.head_object.return_value = {"ContentLength": 0}
        assert s3.head("bkt", "k").digest("sha512") is None

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    def test_not_found(self, s3, client, code):
        client.head_object.side_effect = _client_error(code, 404)
        with pytest.raises(ObjectNotFound) as exc_info:
            s3.head("bkt", "k")
        assert exc_info.value.bucket == "bkt"
        assert exc_info.value.key == "k"

    def test_access_denied_is_not_retryable(self, s3, client):
        client.head_object.side_effect = _client_error("AccessDenied", 403)
        with pytest.raises(StoreServiceError) as exc_info:
            s3.head("bkt", "k")
        assert exc_info.value.operation == "head"
        assert not exc_info.value.retryable
        assert isinstance(exc_info.value.__cause__, ClientError)

    @pytest.mark.parametrize(
        "code, status",
        [("SlowDown", 503), ("InternalError", 500), ("Whatever", 502), ("ThrottlingException", 400)],
    )
    def test_retryable_errors(self, s3, client, code, status):
        client.head_object.side_effect = _client_error(code, status)
        with pytest.raises(StoreServiceError) as exc_info:
            s3.head("bkt", "k")
        assert exc_info.value.retryable

    def test_connection_error_is_retryable(self, s3, client):
        client.head_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.example")
        with pytest.raises(StoreServiceError) as exc_info:
            s3.head("bkt", "k")
        assert exc_info.value.retryable

    def test_missing_credentials(self, s3, client):
        client.head_object.side_effect = NoCredentialsError()
        with pytest.raises(StoreServiceError) as exc_info:
            s3.head("bkt", "k")
        assert not exc_info.value.retryable


class TestDownload:
    def test_delegates_to_download_file(self, s3, client, tmp_path: Path):
        dest = tmp_path / "out"
        s3.download("bkt", "k", dest)
        client.download_file.assert_called_once_with("bkt", "k", str(dest))

    def test_not_found(self, s3, client, tmp_path: Path):
        client.download_file.side_effect = _client_error("404", 404)
        with pytest.raises(ObjectNotFound):
            s3.download("bkt", "k", tmp_path / "out")


class TestUpload:
    def test_body_and_metadata_in_one_request(self, s3, client, tmp_path: Path):
        src = tmp_path / "src"
        src.write_bytes(b"ABC")

        s3.upload("bkt", "k", src, {"sha512": "abc"})

        client.put_object.assert_called_once()
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bkt"
        assert kwargs["Key"] == "k"
        assert kwargs["Metadata"] == {"sha512": "abc"}
        assert kwargs["Body"].closed  # file handle released after the call

    def test_missing_source(self, s3, client, tmp_path: Path):
        with pytest.raises(LocalIOError):
            s3.upload("bkt", "k", tmp_path / "ghost", {})
        client.put_object.assert_not_called()

    def test_service_error(self, s3, client, tmp_path: Path):
        src = tmp_path / "src"
        src.write_bytes(b"ABC")
        client.put_object.side_effect = _client_error("AccessDenied", 403, "PutObject")
        with pytest.raises(StoreServiceError) as exc_info:
            s3.upload("bkt", "k", src, {})
        assert exc_info.value.operation == "upload"


class TestUpdateMetadata:
    def test_self_copy_with_replace(self, s3, client):
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        client.head_object.return_value = {
            "ContentType": "text/plain",
            "CacheControl": "max-age=60",
            "ContentEncoding": "gzip",
            "ContentDisposition": "inline",
            "ContentLanguage": "en",
            "Expires": expires,
            "StorageClass": "STANDARD_IA",
            "ServerSideEncryption": "aws:kms",
            "SSEKMSKeyId": "arn:aws:kms:eu-west-1:111122223333:key/abcd",
            "BucketKeyEnabled": True,
            "ETag": '"v1"',
            "ContentLength": 3,
            "Metadata": {},
        }

        s3.update_metadata("bkt", "k", {"sha512": "abc"})

        client.copy_object.assert_called_once_with(
            Bucket="bkt",
            Key="k",
            CopySource={"Bucket": "bkt", "Key": "k"},
            Metadata={"sha512": "abc"},
            MetadataDirective="REPLACE",
            ContentType="text/plain",
            CacheControl="max-age=60",
            ContentEncoding="gzip",
            ContentDisposition="inline",
            ContentLanguage="en",
            Expires=expires,
            StorageClass="STANDARD_IA",
            ServerSideEncryption="aws:kms",
            SSEKMSKeyId="arn:aws:kms:eu-west-1:111122223333:key/abcd",
            BucketKeyEnabled=True,
        )

    def test_standard_object_copies_only_metadata(self, s3, client):
        client.head_object.return_value = {"ContentLength": 3, "ETag": '"v1"', "Metadata": {}}
        s3.update_metadata("bkt", "k", {"sha512": "abc"})
        kwargs = client.copy_object.call_args.kwargs
        assert set(kwargs) == {"Bucket", "Key", "CopySource", "Metadata", "MetadataDirective"}

    def test_if_match_becomes_copy_precondition(self, s3, client):
        client.head_object.return_value = {"Metadata": {}}
        s3.update_metadata("bkt", "k", {"sha512": "abc"}, if_match='"v1"')
        assert client.copy_object.call_args.kwargs["CopySourceIfMatch"] == '"v1"'

    def test_precondition_failed_is_retryable_service_error(self, s3, client):
        client.head_object.return_value = {"Metadata": {}}
        client.copy_object.side_effect = _client_error("PreconditionFailed", 412, "CopyObject")
        with pytest.raises(StoreServiceError) as exc_info:
            s3.update_metadata("bkt", "k", {"sha512": "abc"}, if_match='"v1"')
        assert exc_info.value.operation == "update_metadata"
        assert exc_info.value.retryable

    def test_reconciler_passes_snapshot_etag(self, s3, client, tmp_path: Path):
        client.head_object.return_value = {
            "ContentType": "text/plain",
            "ETag": '"v1"',
            "ContentLength": 3,
            "Metadata": {},
        }
        client.download_file.side_effect = lambda bucket, key, dest: Path(dest).write_bytes(b"ABC")
        target = MirrorTarget(bucket="bkt", key="k", local_path=tmp_path / "app.conf")

        report = FileReconciler(s3, target).reconcile()

        assert report.metadata_updated
        kwargs = client.copy_object.call_args.kwargs
        assert kwargs["CopySourceIfMatch"] == '"v1"'
        assert kwargs["Metadata"] == {"sha512": compute_digest(b"ABC")}

    def test_without_content_type(self, s3, client):
        client.head_object.return_value = {"Metadata": {}}
        s3.update_metadata("bkt", "k", {"sha512": "abc"})
        assert "ContentType" not in client.copy_object.call_args.kwargs

    def test_copy_failure(self, s3, client):
        client.head_object.return_value = {}
        client.copy_object.side_effect = _client_error("AccessDenied", 403, "CopyObject")
        with pytest.raises(StoreServiceError) as exc_info:
            s3.update_metadata("bkt", "k", {})
        assert exc_info.value.operation == "update_metadata"


class TestConstruction:
    def test_from_config_passes_region_and_endpoint(self):
        cfg = StoreConfig(region="eu-west-1", endpoint_url="http://localhost:9000", max_attempts=5)
        with patch("digestmirror.store.s3.boto3") as mock_boto3:
            S3ObjectStore.from_config(cfg)
        kwargs = mock_boto3.client.call_args.kwargs
        assert mock_boto3.client.call_args.args == ("s3",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["config"].retries == {"max_attempts": 5, "mode": "standard"}

    def test_profile_uses_session(self):
        with patch("digestmirror.store.s3.boto3") as mock_boto3:
            S3ObjectStore(profile="ops", region="us-east-1")
        mock_boto3.Session.assert_called_once_with(profile_name="ops")
        mock_boto3.Session.return_value.client.assert_called_once_with("s3", region_name="us-east-1")
        mock_boto3.client.assert_not_called()

    def test_empty_region_is_not_forwarded(self):
        with patch("digestmirror.store.s3.boto3") as mock_boto3:
            S3ObjectStore(region="")
        assert "region_name" not in mock_boto3.client.call_args.kwargs

    def test_create_store(self):
        with patch("digestmirror.store.s3.boto3"):
            store = create_store(StoreConfig())
        assert isinstance(store, S3ObjectStore)

"""Tests for presigned URL generation."""

import time
import urllib.error
import urllib.request
from unittest.mock import MagicMock

import pytest
from conftest import ENDPOINT_BUCKET_REGION, endpoint_config

from s3compat_tools.core.exceptions import ValidationError
from s3compat_tools.objectstorage import S3CompatStorageClient
from s3compat_tools.objectstorage.clients import S3ClientConfig, S3ClientManager
from s3compat_tools.objectstorage.models import PresignedUrlSpec
from s3compat_tools.objectstorage.presign import PresignedUrlIssuer


@pytest.fixture
def manager():
    manager = MagicMock(spec=S3ClientManager)
    manager.call.return_value = "https://example.com/signed"
    return manager


class TestPresignedUrlIssuer:
    """Test presign parameter mapping."""

    def test_get_url(self, manager):
        url = PresignedUrlIssuer(manager).generate(
            PresignedUrlSpec(bucket="bucket", key="a.txt")
        )

        assert url == "https://example.com/signed"
        manager.call.assert_called_once_with(
            "generate_presigned_url",
            ClientMethod="get_object",
            Params={"Bucket": "bucket", "Key": "a.txt"},
            ExpiresIn=3600,
            HttpMethod="GET",
        )

    def test_put_binds_content_type(self, manager):
        PresignedUrlIssuer(manager).generate(
            PresignedUrlSpec(
                bucket="bucket", key="a.txt", method="PUT", content_type="text/plain"
            )
        )

        kwargs = manager.call.call_args.kwargs
        assert kwargs["ClientMethod"] == "put_object"
        assert kwargs["Params"]["ContentType"] == "text/plain"

    def test_get_overrides_response_headers(self, manager):
        PresignedUrlIssuer(manager).generate(
            PresignedUrlSpec(
                bucket="bucket",
                key="a.txt",
                content_type="application/json",
                response_content_encoding="gzip",
                lifetime=1,
            )
        )

        kwargs = manager.call.call_args.kwargs
        assert kwargs["Params"]["ResponseContentType"] == "application/json"
        assert kwargs["Params"]["ResponseContentEncoding"] == "gzip"
        assert kwargs["ExpiresIn"] == 1

    def test_delete_with_content_type_rejected(self, manager):
        spec = PresignedUrlSpec(
            bucket="bucket", key="a.txt", method="DELETE", content_type="text/plain"
        )

        with pytest.raises(ValidationError):
            PresignedUrlIssuer(manager).generate(spec)
        manager.call.assert_not_called()

    def test_put_with_response_encoding_rejected(self, manager):
        spec = PresignedUrlSpec(
            bucket="bucket", key="a.txt", method="PUT", response_content_encoding="gzip"
        )

        with pytest.raises(ValidationError):
            PresignedUrlIssuer(manager).generate(spec)

    def test_real_signing_is_offline(self):
        # Signing needs credentials but no endpoint
        manager = S3ClientManager(
            S3ClientConfig(
                access_key_id="key",
                secret_access_key="secret",
                region_name="us-east-1",
                endpoint_url="http://localhost:9000",
            )
        )

        url = PresignedUrlIssuer(manager).generate(
            PresignedUrlSpec(bucket="bucket", key="dir/a.txt", lifetime=60)
        )

        assert url.startswith("http://localhost:9000/bucket/dir/a.txt?")
        assert "X-Amz-Expires=60" in url
        assert "X-Amz-Signature=" in url


class TestPresignedUrlExpiry:
    """Presigned URLs are honoured until their lifetime runs out."""

    def test_url_rejected_after_lifetime(self, http_endpoint):
        client = S3CompatStorageClient(
            endpoint_config(http_endpoint, ENDPOINT_BUCKET_REGION)
        )
        url = client.generate_presigned_url(
            PresignedUrlSpec(bucket="bkt", key="a.txt", lifetime=2)
        )

        with urllib.request.urlopen(url, timeout=5) as response:
            assert response.status == 200
            assert response.read() == b"hello"

        time.sleep(3.5)

        with pytest.raises(urllib.error.HTTPError) as exc_info:
            urllib.request.urlopen(url, timeout=5)
        assert exc_info.value.code == 403
        exc_info.value.close()
        # signing and both downloads happen without a header-signed request
        assert http_endpoint.signed_regions == []

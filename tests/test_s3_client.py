"""Tests for the S3 client manager and its error translation."""

from unittest.mock import MagicMock, patch

import pytest
from botocore import UNSIGNED
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ParamValidationError,
    ReadTimeoutError,
)

from s3compat_tools.core.config import Settings
from s3compat_tools.core.exceptions import (
    ProviderError,
    RegionMismatchError,
    TransportError,
    TransportTimeoutError,
    ValidationError,
)
from s3compat_tools.objectstorage.clients import S3ClientConfig, S3ClientManager
from s3compat_tools.objectstorage.clients.s3_client import (
    MAX_TIMEOUT_CLIENTS,
    _disable_region_redirect,
)


def client_error(code, message="failed", status=400, region=None, header_region=None):
    error = {"Code": code, "Message": message}
    if region:
        error["Region"] = region
    headers = {}
    if header_region:
        headers["x-amz-bucket-region"] = header_region
    return ClientError(
        {
            "Error": error,
            "ResponseMetadata": {
                "HTTPStatusCode": status,
                "RequestId": "req-123",
                "HTTPHeaders": headers,
            },
        },
        "HeadObject",
    )


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.meta.region_name = "us-east-1"
    return client


@pytest.fixture
def manager(mock_client):
    config = S3ClientConfig(region_name="us-west-2")
    manager = S3ClientManager(config)
    with patch.object(S3ClientManager, "_create_client", return_value=mock_client):
        yield manager


class TestS3ClientConfig:
    """Test client configuration."""

    def test_defaults(self):
        config = S3ClientConfig()
        assert config.region_name is None
        assert config.addressing_style == "path"
        assert config.max_error_retry == 5
        assert config.anonymous is False

    def test_from_settings_with_overrides(self):
        settings = Settings(
            endpoint_url="http://localhost:9000",
            region_name="eu-west-1",
            max_error_retry=2,
        )
        config = S3ClientConfig.from_settings(
            settings, region_name="us-west-2", aws_profile=None
        )

        assert config.endpoint_url == "http://localhost:9000"
        assert config.region_name == "us-west-2"
        assert config.max_error_retry == 2
        assert config.aws_profile is None

    def test_unknown_field_rejected(self):
        with pytest.raises(Exception):
            S3ClientConfig(bucket="nope")


class TestClientCreation:
    """Test boto3 client configuration."""

    def test_default_retries_and_timeouts(self):
        manager = S3ClientManager(
            S3ClientConfig(max_error_retry=3, connect_timeout=4, read_timeout=7)
        )
        config = manager._client_config()

        assert config.retries == {"total_max_attempts": 4, "mode": "standard"}
        assert config.connect_timeout == 4
        assert config.read_timeout == 7
        assert config.s3 == {"addressing_style": "path"}
        assert config.signature_version == "s3v4"

    def test_timeout_client_single_attempt(self):
        manager = S3ClientManager(S3ClientConfig())
        config = manager._client_config(timeout=2.5)

        assert config.read_timeout == 2.5
        assert config.connect_timeout == 2.5
        assert config.retries == {"total_max_attempts": 1, "mode": "standard"}

    def test_anonymous_unsigned(self):
        manager = S3ClientManager(S3ClientConfig(anonymous=True))
        assert manager._client_config().signature_version is UNSIGNED

    @patch("s3compat_tools.objectstorage.clients.s3_client.boto3")
    def test_explicit_credentials(self, mock_boto3):
        manager = S3ClientManager(
            S3ClientConfig(
                access_key_id="key",
                secret_access_key="secret",
                session_token="token",
                region_name="us-west-2",
                endpoint_url="http://localhost:9000",
            )
        )
        manager.client

        kwargs = mock_boto3.client.call_args.kwargs
        assert mock_boto3.client.call_args.args == ("s3",)
        assert kwargs["aws_access_key_id"] == "key"
        assert kwargs["aws_secret_access_key"] == "secret"
        assert kwargs["aws_session_token"] == "token"
        assert kwargs["region_name"] == "us-west-2"
        assert kwargs["endpoint_url"] == "http://localhost:9000"

    @patch("s3compat_tools.objectstorage.clients.s3_client.boto3")
    def test_profile_credentials(self, mock_boto3):
        manager = S3ClientManager(S3ClientConfig(aws_profile="my-profile"))
        manager.client

        mock_boto3.Session.assert_called_once_with(profile_name="my-profile")
        mock_boto3.Session.return_value.client.assert_called_once()
        mock_boto3.client.assert_not_called()

    def test_region_redirect_disabled(self, aws_credentials):
        manager = S3ClientManager(
            S3ClientConfig(
                access_key_id="key", secret_access_key="secret", region_name="us-west-2"
            )
        )
        context = {"s3_redirect": {"redirected": False, "bucket": "b"}}

        manager.client.meta.events.emit(
            "before-parameter-build.s3.HeadObject",
            params={"Bucket": "b", "Key": "k"},
            model=manager.client.meta.service_model.operation_model("HeadObject"),
            context=context,
        )

        assert context["s3_redirect"]["redirected"] is True

    def test_disable_redirect_without_annotation(self):
        context = {}
        _disable_region_redirect(context=context)
        assert context == {"s3_redirect": {"redirected": True}}

    def test_client_created_once(self, manager, mock_client):
        assert manager.client is mock_client
        assert manager.client is mock_client
        S3ClientManager._create_client.assert_called_once_with()


class TestRegion:
    """Test effective region handling."""

    def test_configured_region(self, manager):
        assert manager.region_name == "us-west-2"

    def test_region_from_sdk_default(self, mock_client):
        manager = S3ClientManager(S3ClientConfig())
        with patch.object(S3ClientManager, "_create_client", return_value=mock_client):
            assert manager.region_name == "us-east-1"

    def test_set_region_recreates_client(self, manager):
        manager.client
        manager.set_region("eu-central-1")
        manager.client

        assert manager.region_name == "eu-central-1"
        assert S3ClientManager._create_client.call_count == 2

    def test_set_blank_region_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.set_region(" ")


class TestCall:
    """Test call dispatch and error translation."""

    def test_success(self, manager, mock_client):
        mock_client.head_object.return_value = {"ContentLength": 3}

        response = manager.call("head_object", Bucket="b", Key="k")

        assert response == {"ContentLength": 3}
        mock_client.head_object.assert_called_once_with(Bucket="b", Key="k")

    def test_per_call_timeout_uses_dedicated_client(self, manager, mock_client):
        manager.call("get_object", timeout=5, Bucket="b", Key="k")
        manager.call("get_object", timeout=5, Bucket="b", Key="k")

        S3ClientManager._create_client.assert_called_once_with(5)

    def test_zero_timeout_uses_default_client(self, manager, mock_client):
        manager.call("get_object", timeout=0, Bucket="b", Key="k")

        S3ClientManager._create_client.assert_called_once_with()

    def test_timeout_clients_bounded(self, manager):
        timeouts = [float(t) for t in range(1, MAX_TIMEOUT_CLIENTS + 3)]
        for timeout in timeouts:
            manager.call("get_object", timeout=timeout, Bucket="b", Key="k")
        # touch the oldest survivor so it outlives a newer entry
        manager.call("get_object", timeout=timeouts[2], Bucket="b", Key="k")
        manager.call("get_object", timeout=99.0, Bucket="b", Key="k")

        cached = list(manager._timeout_clients)
        assert len(cached) == MAX_TIMEOUT_CLIENTS
        assert timeouts[2] in cached
        assert timeouts[3] not in cached
        assert cached[-1] == 99.0
        assert S3ClientManager._create_client.call_count == len(timeouts) + 1

    def test_provider_error(self, manager, mock_client):
        mock_client.head_object.side_effect = client_error(
            "NoSuchKey", "Not Found", status=404
        )

        with pytest.raises(ProviderError) as exc_info:
            manager.call("head_object", Bucket="b", Key="k")

        error = exc_info.value
        assert not isinstance(error, RegionMismatchError)
        assert error.status_code == 404
        assert error.error_code == "NoSuchKey"
        assert error.request_id == "req-123"
        assert "NoSuchKey" in str(error)

    def test_region_mismatch_from_error_body(self, manager, mock_client):
        mock_client.head_object.side_effect = client_error(
            "AuthorizationHeaderMalformed", region="eu-central-1"
        )

        with pytest.raises(RegionMismatchError) as exc_info:
            manager.call("head_object", Bucket="b", Key="k")

        assert exc_info.value.correct_region == "eu-central-1"

    def test_region_mismatch_from_header(self, manager, mock_client):
        mock_client.head_object.side_effect = client_error(
            "400", status=400, header_region="ap-southeast-2"
        )

        with pytest.raises(RegionMismatchError) as exc_info:
            manager.call("head_object", Bucket="b", Key="k")

        assert exc_info.value.correct_region == "ap-southeast-2"

    def test_matching_region_hint_is_plain_provider_error(self, manager, mock_client):
        mock_client.head_object.side_effect = client_error(
            "AccessDenied", status=403, header_region="us-west-2"
        )

        with pytest.raises(ProviderError) as exc_info:
            manager.call("head_object", Bucket="b", Key="k")

        assert not isinstance(exc_info.value, RegionMismatchError)

    def test_read_timeout(self, manager, mock_client):
        mock_client.get_object.side_effect = ReadTimeoutError(
            endpoint_url="http://localhost:9000"
        )

        with pytest.raises(TransportTimeoutError):
            manager.call("get_object", timeout=1, Bucket="b", Key="k")

    def test_connect_timeout(self, manager, mock_client):
        mock_client.get_object.side_effect = ConnectTimeoutError(
            endpoint_url="http://localhost:9000"
        )

        with pytest.raises(TransportTimeoutError):
            manager.call("get_object", Bucket="b", Key="k")

    def test_connection_failure(self, manager, mock_client):
        mock_client.get_object.side_effect = EndpointConnectionError(
            endpoint_url="http://localhost:9000"
        )

        with pytest.raises(TransportError) as exc_info:
            manager.call("get_object", Bucket="b", Key="k")

        assert not isinstance(exc_info.value, TransportTimeoutError)

    def test_param_validation(self, manager, mock_client):
        mock_client.get_object.side_effect = ParamValidationError(report="bad key")

        with pytest.raises(ValidationError):
            manager.call("get_object", Bucket="b", Key="")


class TestParseS3Path:
    """Test S3 path parsing."""

    def test_bucket_and_prefix(self):
        assert S3ClientManager.parse_s3_path("s3://bucket/a/b") == ("bucket", "a/b")

    def test_bucket_only(self):
        assert S3ClientManager.parse_s3_path("s3://bucket") == ("bucket", "")

    def test_missing_scheme(self):
        with pytest.raises(ValidationError):
            S3ClientManager.parse_s3_path("bucket/key")

    def test_missing_bucket(self):
        with pytest.raises(ValidationError):
            S3ClientManager.parse_s3_path("s3:///key")

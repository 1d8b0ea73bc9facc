"""Tests for bucket region resolution."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from conftest import ENDPOINT_BUCKET_REGION, endpoint_config

from s3compat_tools.core.exceptions import ProviderError, RegionMismatchError
from s3compat_tools.objectstorage import S3CompatStorageClient
from s3compat_tools.objectstorage.clients import S3ClientConfig, S3ClientManager
from s3compat_tools.objectstorage.region import RegionResolver, normalize_region


def wrong_region_error(region=None):
    error = {"Code": "AuthorizationHeaderMalformed", "Message": "wrong region"}
    if region:
        error["Region"] = region
    return ClientError(
        {"Error": error, "ResponseMetadata": {"HTTPStatusCode": 400}},
        "GetBucketLocation",
    )


@pytest.fixture
def mock_client():
    return MagicMock()


@pytest.fixture
def manager(mock_client):
    manager = S3ClientManager(S3ClientConfig(region_name="us-west-2"))
    with patch.object(S3ClientManager, "_create_client", return_value=mock_client):
        yield manager


class TestNormalizeRegion:
    """Test legacy location aliases."""

    @pytest.mark.parametrize(
        "location, expected",
        [
            (None, "us-east-1"),
            ("", "us-east-1"),
            ("US", "us-east-1"),
            ("EU", "eu-west-1"),
            ("ap-southeast-2", "ap-southeast-2"),
        ],
    )
    def test_aliases(self, location, expected):
        assert normalize_region(location) == expected


class TestRegionResolver:
    """Test one-shot region correction."""

    def test_location_returned(self, manager, mock_client):
        mock_client.get_bucket_location.return_value = {
            "LocationConstraint": "us-west-2"
        }

        assert RegionResolver(manager).get_bucket_location("bucket") == "us-west-2"
        mock_client.get_bucket_location.assert_called_once_with(Bucket="bucket")

    def test_legacy_alias_normalized(self, manager, mock_client):
        mock_client.get_bucket_location.return_value = {"LocationConstraint": "EU"}

        assert RegionResolver(manager).get_bucket_location("bucket") == "eu-west-1"

    def test_corrects_region_and_retries_once(self, manager, mock_client):
        mock_client.get_bucket_location.side_effect = [
            wrong_region_error("eu-central-1"),
            {"LocationConstraint": "eu-central-1"},
        ]

        region = RegionResolver(manager).get_bucket_location("bucket")

        assert region == "eu-central-1"
        assert manager.region_name == "eu-central-1"
        assert mock_client.get_bucket_location.call_count == 2

    def test_error_without_hint_surfaces_unchanged(self, manager, mock_client):
        mock_client.get_bucket_location.side_effect = wrong_region_error()

        with pytest.raises(ProviderError) as exc_info:
            RegionResolver(manager).get_bucket_location("bucket")

        assert exc_info.value.error_code == "AuthorizationHeaderMalformed"
        assert manager.region_name == "us-west-2"
        mock_client.get_bucket_location.assert_called_once()

    def test_failed_retry_surfaces(self, manager, mock_client):
        mock_client.get_bucket_location.side_effect = [
            wrong_region_error("eu-central-1"),
            wrong_region_error("ap-south-1"),
        ]

        with pytest.raises(ProviderError):
            RegionResolver(manager).get_bucket_location("bucket")

        assert mock_client.get_bucket_location.call_count == 2


class TestRegionOverHttp:
    """Region handling against a live endpoint that rejects wrong regions."""

    def test_location_corrects_client_region(self, http_endpoint):
        client = S3CompatStorageClient(endpoint_config(http_endpoint, "us-west-1"))

        region = client.get_bucket_location("bkt")

        assert region == ENDPOINT_BUCKET_REGION
        assert client.region_name == ENDPOINT_BUCKET_REGION
        assert http_endpoint.signed_regions == ["us-west-1", ENDPOINT_BUCKET_REGION]

    def test_wrong_region_not_silently_redirected(self, http_endpoint):
        manager = S3ClientManager(endpoint_config(http_endpoint, "us-west-1"))

        with pytest.raises(RegionMismatchError) as exc_info:
            manager.call("head_object", Bucket="bkt", Key="a.txt")

        assert exc_info.value.correct_region == ENDPOINT_BUCKET_REGION
        assert manager.region_name == "us-west-1"
        assert http_endpoint.signed_regions == ["us-west-1"]

    def test_right_region_needs_one_request(self, http_endpoint):
        client = S3CompatStorageClient(
            endpoint_config(http_endpoint, ENDPOINT_BUCKET_REGION)
        )

        assert client.get_bucket_location("bkt") == ENDPOINT_BUCKET_REGION
        assert http_endpoint.signed_regions == [ENDPOINT_BUCKET_REGION]

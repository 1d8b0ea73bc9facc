"""Bucket region resolution with one-shot region correction."""

from typing import Optional

from s3compat_tools.core import get_logger
from s3compat_tools.core.exceptions import RegionMismatchError
from s3compat_tools.objectstorage.clients import S3ClientManager

logger = get_logger(__name__)

DEFAULT_REGION = "us-east-1"

# Legacy location constraints reported for the oldest regions
LEGACY_REGION_ALIASES = {
    "": DEFAULT_REGION,
    "US": DEFAULT_REGION,
    "EU": "eu-west-1",
}


def normalize_region(location: Optional[str]) -> str:
    """Map a reported location constraint to its canonical region name."""
    if location is None:
        return DEFAULT_REGION
    return LEGACY_REGION_ALIASES.get(location, location)


class RegionResolver:
    """Resolves the region of a bucket.

    A wrong client region makes every call against the bucket fail. When the
    provider names the right region in its error, the client is switched to
    it and the lookup is retried once; any other failure surfaces unchanged.
    """

    def __init__(self, client_manager: S3ClientManager):
        self.client_manager = client_manager

    def _query(self, bucket: str) -> str:
        response = self.client_manager.call("get_bucket_location", Bucket=bucket)
        return normalize_region(response.get("LocationConstraint"))

    def get_bucket_location(self, bucket: str) -> str:
        """Return the canonical region name of ``bucket``.

        Raises:
            RegionMismatchError: If the corrected retry fails the same way
            ProviderError: For every other provider error
        """
        try:
            region = self._query(bucket)
        except RegionMismatchError as e:
            logger.info(
                "Correcting client region",
                bucket=bucket,
                from_region=self.client_manager.config.region_name,
                to_region=e.correct_region,
            )
            self.client_manager.set_region(e.correct_region)
            region = self._query(bucket)

        logger.info("Bucket location resolved", bucket=bucket, region=region)
        return region

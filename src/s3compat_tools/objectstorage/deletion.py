"""Bulk deletion of objects and object versions."""

from typing import Iterator, Sequence

from s3compat_tools.core import get_logger
from s3compat_tools.core.exceptions import (
    DeleteFailure,
    PartialDeleteFailure,
    S3CompatError,
    ValidationError,
)
from s3compat_tools.objectstorage.clients import S3ClientManager
from s3compat_tools.objectstorage.listing import ListingPaginator
from s3compat_tools.objectstorage.models import DeleteSpec

logger = get_logger(__name__)

# Provider cap on keys per multi-object delete request
MAX_KEYS_PER_DELETE = 1000


def batched(specs: Sequence[DeleteSpec], size: int) -> Iterator[Sequence[DeleteSpec]]:
    """Split ``specs`` into consecutive batches of at most ``size`` items."""
    for start in range(0, len(specs), size):
        yield specs[start : start + size]


class BulkDeleteBatcher:
    """Deletes many keys with as few requests as the provider allows."""

    def __init__(
        self,
        client_manager: S3ClientManager,
        paginator: ListingPaginator,
        batch_size: int = MAX_KEYS_PER_DELETE,
    ):
        if not 0 < batch_size <= MAX_KEYS_PER_DELETE:
            raise ValidationError(
                f"batch_size must be between 1 and {MAX_KEYS_PER_DELETE}, "
                f"got: {batch_size}"
            )
        self.client_manager = client_manager
        self.paginator = paginator
        self.batch_size = batch_size

    def delete_objects(self, bucket: str, specs: Sequence[DeleteSpec]) -> int:
        """Delete the given keys/versions with multi-object delete requests.

        Every batch is sent even when an earlier batch reported failures, so
        one bad version id does not leave the rest of the input in place.

        Args:
            bucket: Bucket holding the keys
            specs: Keys (and optionally version ids) to delete

        Returns:
            Number of keys the provider reported deleted

        Raises:
            PartialDeleteFailure: If the provider failed to delete any key;
                carries the deleted count and each failed key with its reason
        """
        if not specs:
            return 0

        deleted = 0
        failures: list[DeleteFailure] = []
        batches = 0

        for batch in batched(specs, self.batch_size):
            response = self.client_manager.call(
                "delete_objects",
                Bucket=bucket,
                Delete={
                    "Objects": [spec.to_s3_identifier() for spec in batch],
                    "Quiet": False,
                },
            )
            batches += 1
            deleted += len(response.get("Deleted", []))
            failures.extend(
                DeleteFailure(
                    key=error.get("Key", ""),
                    version_id=error.get("VersionId"),
                    code=error.get("Code"),
                    message=error.get("Message"),
                )
                for error in response.get("Errors", [])
            )

        logger.info(
            "Bulk delete completed",
            bucket=bucket,
            requested=len(specs),
            deleted=deleted,
            failed=len(failures),
            batches=batches,
        )
        if failures:
            raise PartialDeleteFailure(
                f"Failed to delete {len(failures)} of {len(specs)} keys in '{bucket}'",
                deleted_count=deleted,
                failures=failures,
            )
        return deleted

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """Delete every object under a prefix, one request per object.

        Not atomic: a failure leaves the prefix partially deleted.

        Raises:
            PartialDeleteFailure: Chained to the error that stopped the loop,
                carrying how many objects were deleted before it
        """
        deleted = 0
        for summary in self.paginator.list_objects(bucket, prefix):
            try:
                self.client_manager.call("delete_object", Bucket=bucket, Key=summary.key)
            except S3CompatError as e:
                logger.error(
                    "Prefix delete interrupted",
                    bucket=bucket,
                    prefix=prefix,
                    deleted=deleted,
                    key=summary.key,
                    error=str(e),
                )
                raise PartialDeleteFailure(
                    f"Deleted {deleted} objects under '{prefix}' before failing "
                    f"on '{summary.key}': {e}",
                    deleted_count=deleted,
                    failures=[
                        DeleteFailure(
                            key=summary.key,
                            version_id=None,
                            code=getattr(e, "error_code", None),
                            message=str(e),
                        )
                    ],
                ) from e
            deleted += 1

        logger.info("Prefix deleted", bucket=bucket, prefix=prefix, deleted=deleted)
        return deleted

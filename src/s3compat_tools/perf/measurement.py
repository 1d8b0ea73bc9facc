"""Repeated-call performance measurement against a live endpoint.

Each measurable operation is registered in a dispatch table mapping an
Operation to a callable that performs one call. Timings come from the
client's OperationRecorder, so only the measured call itself is counted.
"""

import io
import statistics
import uuid
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from pydantic import BaseModel

from s3compat_tools.core import get_logger
from s3compat_tools.core.exceptions import ValidationError
from s3compat_tools.objectstorage.models import (
    ObjectLocator,
    PresignedUrlSpec,
    WriteRequest,
)
from s3compat_tools.perf.stats import Operation, OperationStat

if TYPE_CHECKING:
    from s3compat_tools.objectstorage.storage_client import S3CompatStorageClient

logger = get_logger(__name__)

DEFAULT_TIMES = 20


class OperationSummary(BaseModel):
    """Aggregated timings for one operation."""

    operation: Operation
    runs: int
    failures: int
    mean_ms: float
    min_ms: float
    max_ms: float


def summarize(operation: Operation, stats: list[OperationStat]) -> OperationSummary:
    timings = [stat.time_taken_ms for stat in stats] or [0.0]
    return OperationSummary(
        operation=operation,
        runs=len(stats),
        failures=sum(1 for stat in stats if not stat.succeeded),
        mean_ms=statistics.fmean(timings),
        min_ms=min(timings),
        max_ms=max(timings),
    )


def parse_operations(names: str) -> list[Operation]:
    """Parse a comma separated list such as "getObject,putObject"."""
    by_name = {op.value.lower(): op for op in Operation}
    operations = []
    for name in names.split(","):
        name = name.strip()
        if not name:
            continue
        op = by_name.get(name.lower())
        if op is None:
            supported = " ".join(op.value for op in Operation)
            raise ValidationError(
                f"Operation {name} not supported. Supported operations are: "
                f"{supported}. Example: getObject,putObject"
            )
        operations.append(op)
    return operations


class PerfMeasurement:
    """Runs operations repeatedly under a scratch prefix and cleans up after."""

    def __init__(
        self,
        client: "S3CompatStorageClient",
        bucket: str,
        prefix: str,
        payload_size: int = 1024,
    ):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.rstrip("/")
        self.payload = b"x" * payload_size
        self.seed_key = f"{self.prefix}/seed.bin"
        self._measurements: dict[Operation, Callable[[], None]] = {
            Operation.GET_BUCKET_LOCATION: self._get_bucket_location,
            Operation.GET_OBJECT: self._get_object,
            Operation.GET_OBJECT_METADATA: self._get_object_metadata,
            Operation.PUT_OBJECT: self._put_object,
            Operation.LIST_OBJECTS: self._list_objects,
            Operation.LIST_OBJECTS_V2: self._list_objects_v2,
            Operation.LIST_VERSIONS: self._list_versions,
            Operation.DELETE_OBJECT: self._delete_object,
            Operation.COPY_OBJECT: self._copy_object,
            Operation.SET_REGION: self._set_region,
            Operation.GENERATE_PRESIGNED_URL: self._generate_presigned_url,
        }

    @property
    def supported_operations(self) -> list[Operation]:
        return list(self._measurements)

    def _new_key(self) -> str:
        return f"{self.prefix}/{uuid.uuid4().hex}.bin"

    def _write(self, key: str) -> None:
        payload = self.payload
        self.client.write_object(
            WriteRequest(
                bucket=self.bucket,
                key=key,
                content_source=lambda: io.BytesIO(payload),
                content_length=len(payload),
            )
        )

    def _get_bucket_location(self) -> None:
        self.client.get_bucket_location(self.bucket)

    def _get_object(self) -> None:
        _, body = self.client.read_object(
            ObjectLocator(bucket=self.bucket, key=self.seed_key)
        )
        try:
            body.read()
        finally:
            body.close()

    def _get_object_metadata(self) -> None:
        self.client.read_object_metadata(
            ObjectLocator(bucket=self.bucket, key=self.seed_key)
        )

    def _put_object(self) -> None:
        self._write(self._new_key())

    def _list_objects(self) -> None:
        self.client.list_objects(self.bucket, self.prefix)

    def _list_objects_v2(self) -> None:
        self.client.list_objects_v2(self.bucket, self.prefix)

    def _list_versions(self) -> None:
        self.client.list_versions(self.bucket, self.prefix, url_encoding=True)

    def _delete_object(self) -> None:
        key = self._new_key()
        self._write(key)
        self.client.delete_object(ObjectLocator(bucket=self.bucket, key=key))

    def _copy_object(self) -> None:
        self.client.copy_object(
            ObjectLocator(bucket=self.bucket, key=self.seed_key),
            ObjectLocator(bucket=self.bucket, key=self._new_key()),
        )

    def _set_region(self) -> None:
        region = self.client.region_name
        if region:
            self.client.set_region(region)

    def _generate_presigned_url(self) -> None:
        self.client.generate_presigned_url(
            PresignedUrlSpec(bucket=self.bucket, key=self.seed_key)
        )

    def run(
        self,
        operations: Optional[Iterable[Operation]] = None,
        times: int = DEFAULT_TIMES,
    ) -> dict[Operation, OperationSummary]:
        """Measure each operation ``times`` times.

        Args:
            operations: Operations to measure, all supported ones when None
            times: Number of runs per operation

        Returns:
            Summary per measured operation
        """
        if times <= 0:
            raise ValidationError("Number of times to run an operation should be > 0")
        selected = list(operations) if operations else self.supported_operations

        self._write(self.seed_key)
        summaries: dict[Operation, OperationSummary] = {}
        try:
            for operation in selected:
                summaries[operation] = self._measure(operation, times)
        finally:
            self.cleanup()
        return summaries

    def _measure(self, operation: Operation, times: int) -> OperationSummary:
        measure_once = self._measurements[operation]
        self.client.recorder.clear()
        for _ in range(times):
            measure_once()
        stats = [stat for stat in self.client.stats if stat.operation == operation]
        summary = summarize(operation, stats)
        logger.info(
            "Operation measured",
            operation=operation.value,
            runs=summary.runs,
            mean_ms=round(summary.mean_ms, 3),
            min_ms=round(summary.min_ms, 3),
            max_ms=round(summary.max_ms, 3),
        )
        self.client.flush_stats()
        return summary

    def cleanup(self) -> int:
        """Delete every version written under the scratch prefix."""
        versions = self.client.list_versions(self.bucket, self.prefix, url_encoding=True)
        deleted = self.client.delete_objects(
            self.bucket, [version.to_delete_spec() for version in versions]
        )
        logger.info("Perf prefix cleaned up", prefix=self.prefix, deleted=deleted)
        return deleted

"""Per-operation statistics collected by a storage client.

Each client owns its own OperationRecorder; there is no process-wide
"current operation" state, so independent clients can be used side by side.
"""

import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Union

from pydantic import BaseModel, Field

from s3compat_tools.core import get_logger
from s3compat_tools.core.observability import get_tracer

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class Operation(str, Enum):
    """Operations exposed by the storage client."""

    GET_BUCKET_LOCATION = "getBucketLocation"
    GET_OBJECT = "getObject"
    GET_OBJECT_METADATA = "getObjectMetadata"
    PUT_OBJECT = "putObject"
    LIST_OBJECTS = "listObjects"
    LIST_OBJECTS_V2 = "listObjectsV2"
    LIST_VERSIONS = "listVersions"
    DELETE_OBJECT = "deleteObject"
    DELETE_OBJECTS = "deleteObjects"
    COPY_OBJECT = "copyObject"
    SET_REGION = "setRegion"
    GENERATE_PRESIGNED_URL = "generatePresignedUrl"


class OperationStat(BaseModel):
    """Timing and size of one operation.

    ``content_length_or_list_size`` is the content length for object
    operations and the number of items for list and delete operations.
    """

    operation: Operation
    bucket: str
    key: Optional[str] = None
    time_taken_ms: float = 0.0
    content_length_or_list_size: Optional[int] = None
    succeeded: bool = False
    error: Optional[str] = None


class StatScope:
    """Mutable handle given to the body of a measured operation."""

    def __init__(self, operation: Operation, bucket: str, key: Optional[str]):
        self.operation = operation
        self.bucket = bucket
        self.key = key
        self.size: Optional[int] = None


class OperationRecorder:
    """Collects OperationStat records for one client instance."""

    def __init__(self, max_records: Optional[int] = 10_000):
        self.max_records = max_records
        self._stats: list[OperationStat] = []

    @property
    def stats(self) -> list[OperationStat]:
        return list(self._stats)

    @property
    def last(self) -> Optional[OperationStat]:
        return self._stats[-1] if self._stats else None

    def clear(self) -> None:
        self._stats = []

    @contextmanager
    def measure(
        self, operation: Operation, bucket: str, key: Optional[str] = None
    ) -> Iterator[StatScope]:
        """Time the enclosed block; the timer stops on every exit path."""
        scope = StatScope(operation, bucket, key)
        error: Optional[BaseException] = None
        started = time.perf_counter()
        with tracer.start_as_current_span(operation.value) as span:
            span.set_attribute("s3.bucket", bucket)
            if key is not None:
                span.set_attribute("s3.key", key)
            try:
                yield scope
            except BaseException as e:
                error = e
                raise
            finally:
                elapsed_ms = (time.perf_counter() - started) * 1000
                self._record(
                    OperationStat(
                        operation=operation,
                        bucket=bucket,
                        key=key,
                        time_taken_ms=elapsed_ms,
                        content_length_or_list_size=scope.size,
                        succeeded=error is None,
                        error=type(error).__name__ if error is not None else None,
                    )
                )

    def _record(self, stat: OperationStat) -> None:
        self._stats.append(stat)
        if self.max_records is not None and len(self._stats) > self.max_records:
            del self._stats[0]
        logger.debug(
            "Operation measured",
            operation=stat.operation.value,
            bucket=stat.bucket,
            key=stat.key,
            time_taken_ms=round(stat.time_taken_ms, 3),
            size=stat.content_length_or_list_size,
            succeeded=stat.succeeded,
        )

    def flush(self, path: Union[str, Path], last_only: bool = False) -> int:
        """Append recorded stats to ``path`` as pretty-printed JSON documents.

        Returns:
            Number of records written
        """
        records = self._stats[-1:] if last_only else self._stats
        with open(path, "a", encoding="utf-8") as fh:
            for stat in records:
                fh.write(stat.model_dump_json(indent=2))
                fh.write("\n")
        logger.info("Operation stats flushed", path=str(path), count=len(records))
        return len(records)

"""Storage client facade.

S3CompatStorageClient is the single entry point used by the CLI and the
performance harness. It owns the transport handle (an S3ClientManager) and
composes the single-object, listing, bulk-delete, presign and region
components on top of it. Every operation is timed by the client's own
OperationRecorder.

Example:
    >>> from s3compat_tools import S3ClientConfig, S3CompatStorageClient
    >>> from s3compat_tools.objectstorage.models import ObjectLocator
    >>> client = S3CompatStorageClient(
    ...     S3ClientConfig(endpoint_url="http://localhost:9000", region_name="us-east-1")
    ... )
    >>> client.get_bucket_location("my-bucket")
    'us-east-1'
    >>> client.read_object_metadata(ObjectLocator(bucket="my-bucket", key="a.txt"))
"""

from pathlib import Path
from typing import Optional, Sequence, Union

from botocore.response import StreamingBody

from s3compat_tools.core import get_logger, settings
from s3compat_tools.core.config import Settings
from s3compat_tools.objectstorage.access import ObjectAccess
from s3compat_tools.objectstorage.clients import S3ClientConfig, S3ClientManager
from s3compat_tools.objectstorage.deletion import BulkDeleteBatcher
from s3compat_tools.objectstorage.listing import ListingPaginator
from s3compat_tools.objectstorage.models import (
    ByteRange,
    DeleteSpec,
    ObjectLocator,
    ObjectMetadata,
    ObjectSummary,
    PresignedUrlSpec,
    VersionSummary,
    WriteRequest,
    WriteResult,
)
from s3compat_tools.objectstorage.presign import PresignedUrlIssuer
from s3compat_tools.objectstorage.region import RegionResolver
from s3compat_tools.perf.stats import Operation, OperationRecorder, OperationStat

logger = get_logger(__name__)

RangeArg = Union[ByteRange, tuple[int, Optional[int]], None]


class S3CompatStorageClient:
    """Storage client for an S3-compatible endpoint."""

    def __init__(
        self,
        config: S3ClientConfig,
        recorder: Optional[OperationRecorder] = None,
    ):
        self.client_manager = S3ClientManager(config)
        self.recorder = recorder or OperationRecorder()
        self._objects = ObjectAccess(self.client_manager)
        self._paginator = ListingPaginator(self.client_manager)
        self._deleter = BulkDeleteBatcher(self.client_manager, self._paginator)
        self._presigner = PresignedUrlIssuer(self.client_manager)
        self._region_resolver = RegionResolver(self.client_manager)

    @classmethod
    def from_settings(
        cls, app_settings: Optional[Settings] = None, **overrides
    ) -> "S3CompatStorageClient":
        """Create a client from environment-driven settings."""
        return cls(S3ClientConfig.from_settings(app_settings or settings, **overrides))

    @property
    def region_name(self) -> Optional[str]:
        return self.client_manager.region_name

    @property
    def stats(self) -> list[OperationStat]:
        return self.recorder.stats

    @property
    def last_stat(self) -> Optional[OperationStat]:
        return self.recorder.last

    def get_bucket_location(self, bucket: str) -> str:
        """Resolve the region of a bucket, correcting the client region once."""
        with self.recorder.measure(Operation.GET_BUCKET_LOCATION, bucket):
            return self._region_resolver.get_bucket_location(bucket)

    resolve_region = get_bucket_location

    def set_region(self, region: str) -> None:
        """Change the region used by subsequent calls."""
        with self.recorder.measure(Operation.SET_REGION, region):
            self.client_manager.set_region(region)

    def read_object(
        self,
        locator: ObjectLocator,
        byte_range: RangeArg = None,
        timeout: Optional[float] = None,
    ) -> tuple[ObjectMetadata, StreamingBody]:
        """Read an object, or an inclusive byte range of it.

        Args:
            locator: Object to read
            byte_range: ByteRange or (start, end) tuple; end may be None
            timeout: Execution timeout in seconds

        Returns:
            Tuple of (metadata, body stream)
        """
        if isinstance(byte_range, tuple):
            byte_range = ByteRange(start=byte_range[0], end=byte_range[1])
        with self.recorder.measure(
            Operation.GET_OBJECT, locator.bucket, locator.key
        ) as scope:
            metadata, body = self._objects.read_object(locator, byte_range, timeout)
            scope.size = metadata.content_length
            return metadata, body

    def read_object_metadata(self, locator: ObjectLocator) -> ObjectMetadata:
        """Read object metadata; a set version id must match exactly."""
        with self.recorder.measure(
            Operation.GET_OBJECT_METADATA, locator.bucket, locator.key
        ) as scope:
            metadata = self._objects.read_object_metadata(locator)
            scope.size = metadata.content_length
            return metadata

    def write_object(self, request: WriteRequest) -> WriteResult:
        """Upload an object and verify it by reading its metadata back."""
        with self.recorder.measure(
            Operation.PUT_OBJECT, request.bucket, request.key
        ) as scope:
            scope.size = request.content_length
            return self._objects.write_object(request)

    def put_file(
        self,
        bucket: str,
        prefix: str,
        file_path: Union[str, Path],
        timeout: Optional[float] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> WriteResult:
        """Upload a local file to ``<prefix>/<file name>``."""
        path = Path(file_path)
        key = f"{prefix.rstrip('/')}/{path.name}" if prefix else path.name
        request = WriteRequest(
            bucket=bucket,
            key=key,
            content_source=lambda: open(path, "rb"),
            content_length=path.stat().st_size,
            timeout=timeout,
            additional_user_metadata=metadata,
        )
        return self.write_object(request)

    def copy_object(
        self,
        source: ObjectLocator,
        dest: ObjectLocator,
        metadata: Optional[ObjectMetadata] = None,
    ) -> WriteResult:
        """Server-side copy; copies exactly ``source.version_id`` when set."""
        with self.recorder.measure(Operation.COPY_OBJECT, source.bucket, source.key):
            return self._objects.copy_object(source, dest, metadata)

    def delete_object(self, locator: ObjectLocator) -> None:
        with self.recorder.measure(Operation.DELETE_OBJECT, locator.bucket, locator.key):
            self._objects.delete_object(locator)

    def delete_objects(self, bucket: str, specs: Sequence[DeleteSpec]) -> int:
        """Delete keys/versions in batches; see BulkDeleteBatcher."""
        with self.recorder.measure(Operation.DELETE_OBJECTS, bucket) as scope:
            deleted = self._deleter.delete_objects(bucket, specs)
            scope.size = deleted
            return deleted

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """Delete every object under ``prefix``, one at a time."""
        with self.recorder.measure(Operation.DELETE_OBJECTS, bucket, prefix) as scope:
            deleted = self._deleter.delete_prefix(bucket, prefix)
            scope.size = deleted
            return deleted

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        url_encoding: bool = False,
        max_keys: Optional[int] = None,
    ) -> list[ObjectSummary]:
        """List all objects under a prefix (marker-based pages)."""
        with self.recorder.measure(Operation.LIST_OBJECTS, bucket, prefix) as scope:
            summaries = self._paginator.list_objects(
                bucket, prefix, url_encoding, max_keys
            )
            scope.size = len(summaries)
            return summaries

    def list_objects_v2(
        self,
        bucket: str,
        prefix: str = "",
        max_keys: Optional[int] = None,
        url_encoding: bool = False,
    ) -> list[ObjectSummary]:
        """List all objects under a prefix; ``max_keys`` bounds each page."""
        with self.recorder.measure(Operation.LIST_OBJECTS_V2, bucket, prefix) as scope:
            summaries = self._paginator.list_objects_v2(
                bucket, prefix, max_keys, url_encoding
            )
            scope.size = len(summaries)
            return summaries

    def list_versions(
        self,
        bucket: str,
        prefix: str = "",
        url_encoding: bool = False,
        max_keys: Optional[int] = None,
    ) -> list[VersionSummary]:
        """List all versions and delete markers under a prefix."""
        with self.recorder.measure(Operation.LIST_VERSIONS, bucket, prefix) as scope:
            summaries = self._paginator.list_versions(
                bucket, prefix, url_encoding, max_keys
            )
            scope.size = len(summaries)
            return summaries

    def generate_presigned_url(self, spec: PresignedUrlSpec) -> str:
        """Sign a URL locally; no request is sent."""
        with self.recorder.measure(
            Operation.GENERATE_PRESIGNED_URL, spec.bucket, spec.key
        ):
            return self._presigner.generate(spec)

    def flush_stats(self, path: Union[str, Path, None] = None) -> int:
        """Append recorded operation stats to ``path`` (or settings.stats_file)."""
        target = path or settings.stats_file
        if target is None:
            logger.warning("No stats file configured, skipping flush")
            return 0
        return self.recorder.flush(target)

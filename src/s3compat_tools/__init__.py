"""Client and tooling for certifying S3-compatible object storage endpoints.

This package wraps an S3-compatible endpoint in a small, deterministic API
covering what a storage-dependent application needs: bucket region
resolution, object reads (including byte ranges) and verified writes,
exhaustive listings (flat, list-v2 and versions), batched deletion, copies
and presigned URLs.

Key Features:
    - Read-after-write verification of every upload
    - Listings driven to exhaustion with URL-encoded key support
    - Multi-object deletes batched to the provider cap, partial failures reported
    - One-shot region correction on bucket location lookups
    - Per-client operation statistics and a performance harness
    - CLI interface

Recommended Usage:

    >>> from s3compat_tools import S3ClientConfig, S3CompatStorageClient
    >>> client = S3CompatStorageClient(
    ...     S3ClientConfig(endpoint_url="https://s3.example.com", region_name="us-east-1")
    ... )
    >>> client.get_bucket_location("my-bucket")
"""

__version__ = "0.1.0"

from .core.exceptions import (
    ConsistencyViolation,
    DeleteFailure,
    PartialDeleteFailure,
    ProviderError,
    RegionMismatchError,
    S3CompatError,
    TransportError,
    TransportTimeoutError,
    ValidationError,
)
from .objectstorage import (
    ByteRange,
    DeleteSpec,
    ObjectLocator,
    ObjectMetadata,
    ObjectSummary,
    PresignedUrlSpec,
    S3ClientConfig,
    S3CompatStorageClient,
    VersionSummary,
    WriteRequest,
    WriteResult,
)
from .perf import Operation, OperationRecorder, OperationStat

__all__ = [
    # Client
    "S3ClientConfig",
    "S3CompatStorageClient",
    # Values
    "ByteRange",
    "DeleteSpec",
    "ObjectLocator",
    "ObjectMetadata",
    "ObjectSummary",
    "PresignedUrlSpec",
    "VersionSummary",
    "WriteRequest",
    "WriteResult",
    # Errors
    "ConsistencyViolation",
    "DeleteFailure",
    "PartialDeleteFailure",
    "ProviderError",
    "RegionMismatchError",
    "S3CompatError",
    "TransportError",
    "TransportTimeoutError",
    "ValidationError",
    # Statistics
    "Operation",
    "OperationRecorder",
    "OperationStat",
]

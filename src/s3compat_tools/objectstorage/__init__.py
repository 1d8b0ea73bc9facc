"""Object storage operations for S3-compatible services."""

from .clients import S3ClientConfig, S3ClientManager
from .deletion import MAX_KEYS_PER_DELETE, BulkDeleteBatcher
from .listing import ListingPaginator
from .models import (
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
from .presign import PresignedUrlIssuer
from .region import RegionResolver, normalize_region
from .storage_client import S3CompatStorageClient

__all__ = [
    "MAX_KEYS_PER_DELETE",
    "BulkDeleteBatcher",
    "ByteRange",
    "DeleteSpec",
    "ListingPaginator",
    "ObjectLocator",
    "ObjectMetadata",
    "ObjectSummary",
    "PresignedUrlIssuer",
    "PresignedUrlSpec",
    "RegionResolver",
    "S3ClientConfig",
    "S3ClientManager",
    "S3CompatStorageClient",
    "VersionSummary",
    "WriteRequest",
    "WriteResult",
    "normalize_region",
]

"""Paginated listing of objects and object versions.

Three wire protocols share one loop:

* flat listing (ListObjects) resumes from a *marker*, which is a key;
* list-v2 (ListObjectsV2) resumes from an opaque *continuation token*;
* version listing (ListObjectVersions) resumes from a *key marker* plus a
  *version id marker*.

Every page is requested strictly after the previous one, and listing always
runs until the provider reports the result is no longer truncated. A page
size hint only bounds a single round trip.

When URL encoding is requested, keys come back percent-encoded so that
control characters survive the XML response; they are decoded before being
returned. Markers are keys and are decoded before being sent back, while
continuation tokens and version id markers are passed back byte for byte.
"""

from dataclasses import dataclass
from datetime import timezone
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar
from urllib.parse import unquote_plus

from s3compat_tools.core import get_logger
from s3compat_tools.core.exceptions import ConsistencyViolation, ValidationError
from s3compat_tools.objectstorage.clients import S3ClientManager
from s3compat_tools.objectstorage.models import ObjectSummary, VersionSummary

logger = get_logger(__name__)

URL_ENCODING = "url"

T = TypeVar("T")


@dataclass(frozen=True)
class ListingPage(Generic[T]):
    """One listing round trip, consumed immediately by the paginator."""

    items: list[T]
    is_truncated: bool
    next_request: Optional[dict[str, str]]
    encoding_was_url: bool


PageParser = Callable[[Mapping[str, Any], bool], ListingPage]


def _encoding_was_url(response: Mapping[str, Any], requested: bool) -> bool:
    # botocore sets EncodingType=url on its own when the caller does not and
    # decodes the keys itself; only pages we asked to be encoded need decoding.
    if not requested:
        return False
    encoding_type = response.get("EncodingType")
    if encoding_type is None:
        return False
    if encoding_type != URL_ENCODING:
        raise ConsistencyViolation(f"Unexpected encoding type: {encoding_type}")
    return True


def _decode(value: str, encoded: bool) -> str:
    return unquote_plus(value) if encoded else value


def parse_objects_page(response: Mapping[str, Any], url_encoding: bool) -> ListingPage:
    """Parse a flat (marker based) listing page."""
    encoded = _encoding_was_url(response, url_encoding)
    items = [
        ObjectSummary.from_listing_entry(entry, _decode(entry["Key"], encoded))
        for entry in response.get("Contents", [])
    ]
    truncated = bool(response.get("IsTruncated", False))

    next_request = None
    if truncated:
        # Providers only send NextMarker when a delimiter is used; otherwise
        # the last key of the page is the marker.
        marker = response.get("NextMarker")
        if marker is not None:
            marker = _decode(marker, encoded)
        elif items:
            marker = items[-1].key
        if marker:
            next_request = {"Marker": marker}

    return ListingPage(items, truncated, next_request, encoded)


def parse_objects_v2_page(
    response: Mapping[str, Any], url_encoding: bool
) -> ListingPage:
    """Parse a list-v2 (continuation token based) listing page."""
    encoded = _encoding_was_url(response, url_encoding)
    items = [
        ObjectSummary.from_listing_entry(entry, _decode(entry["Key"], encoded))
        for entry in response.get("Contents", [])
    ]
    truncated = bool(response.get("IsTruncated", False))
    token = response.get("NextContinuationToken")
    next_request = {"ContinuationToken": token} if truncated and token else None
    return ListingPage(items, truncated, next_request, encoded)


def _newest_first(summary: VersionSummary) -> float:
    last_modified = summary.last_modified
    if last_modified is None:
        return 0.0
    if last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)
    return -last_modified.timestamp()


def parse_versions_page(response: Mapping[str, Any], url_encoding: bool) -> ListingPage:
    """Parse a version listing page.

    The response interleaves versions and delete markers by key, newest
    first; boto3 splits them into two lists, so they are merged back into
    that order. Entries of one key sharing a timestamp put the latest one
    first, then keep versions ahead of delete markers in listing order.
    """
    encoded = _encoding_was_url(response, url_encoding)
    items = [
        VersionSummary.from_listing_entry(
            entry, _decode(entry["Key"], encoded), is_delete_marker=False
        )
        for entry in response.get("Versions", [])
    ]
    markers = [
        VersionSummary.from_listing_entry(
            entry, _decode(entry["Key"], encoded), is_delete_marker=True
        )
        for entry in response.get("DeleteMarkers", [])
    ]
    if markers:
        items = sorted(
            items + markers,
            key=lambda summary: (
                summary.key,
                _newest_first(summary),
                not summary.is_latest,
            ),
        )

    truncated = bool(response.get("IsTruncated", False))
    next_request = None
    key_marker = response.get("NextKeyMarker")
    if truncated and key_marker:
        next_request = {"KeyMarker": _decode(key_marker, encoded)}
        version_marker = response.get("NextVersionIdMarker")
        if version_marker:
            next_request["VersionIdMarker"] = version_marker

    return ListingPage(items, truncated, next_request, encoded)


class ListingPaginator:
    """Drives listings to exhaustion through the client manager."""

    def __init__(self, client_manager: S3ClientManager):
        self.client_manager = client_manager

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        url_encoding: bool = False,
        max_keys: Optional[int] = None,
    ) -> list[ObjectSummary]:
        """List every object under a prefix using marker-based pages."""
        return self._paginate(
            "list_objects",
            self._base_params(bucket, prefix, url_encoding, max_keys),
            parse_objects_page,
            url_encoding,
        )

    def list_objects_v2(
        self,
        bucket: str,
        prefix: str = "",
        max_keys: Optional[int] = None,
        url_encoding: bool = False,
    ) -> list[ObjectSummary]:
        """List every object under a prefix using continuation tokens."""
        return self._paginate(
            "list_objects_v2",
            self._base_params(bucket, prefix, url_encoding, max_keys),
            parse_objects_v2_page,
            url_encoding,
        )

    def list_versions(
        self,
        bucket: str,
        prefix: str = "",
        url_encoding: bool = False,
        max_keys: Optional[int] = None,
    ) -> list[VersionSummary]:
        """List every version and delete marker under a prefix."""
        return self._paginate(
            "list_object_versions",
            self._base_params(bucket, prefix, url_encoding, max_keys),
            parse_versions_page,
            url_encoding,
        )

    @staticmethod
    def _base_params(
        bucket: str, prefix: str, url_encoding: bool, max_keys: Optional[int]
    ) -> dict[str, Any]:
        if not bucket or not bucket.strip():
            raise ValidationError("bucket may not be blank")
        if max_keys is not None and max_keys <= 0:
            raise ValidationError(f"max_keys must be positive, got: {max_keys}")

        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix or ""}
        if max_keys is not None:
            params["MaxKeys"] = max_keys
        if url_encoding:
            params["EncodingType"] = URL_ENCODING
        return params

    def _paginate(
        self,
        operation: str,
        params: dict[str, Any],
        parse_page: PageParser,
        url_encoding: bool,
    ) -> list:
        results: list = []
        request = dict(params)
        cursor: Optional[dict[str, str]] = None
        pages = 0

        while True:
            page = parse_page(self.client_manager.call(operation, **request), url_encoding)
            pages += 1
            results.extend(page.items)

            if not page.is_truncated or not page.next_request:
                break
            if page.next_request == cursor:
                raise ConsistencyViolation(
                    f"{operation} returned the same cursor twice: {cursor}"
                )
            cursor = page.next_request
            request = {**params, **cursor}

        logger.info(
            "Listing completed",
            operation=operation,
            bucket=params["Bucket"],
            prefix=params["Prefix"],
            pages=pages,
            item_count=len(results),
        )
        return results

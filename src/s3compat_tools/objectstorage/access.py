"""Single-object reads, writes, copies and deletes."""

import re
from typing import Any, Dict, Optional

from botocore.response import StreamingBody

from s3compat_tools.core import get_logger
from s3compat_tools.core.exceptions import ConsistencyViolation
from s3compat_tools.objectstorage.clients import S3ClientManager
from s3compat_tools.objectstorage.models import (
    ByteRange,
    ObjectLocator,
    ObjectMetadata,
    WriteRequest,
    WriteResult,
)

logger = get_logger(__name__)

_CONTENT_RANGE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)")

# Headers carried over when a copy replays the source metadata
_REPLAYED_HEADERS = (
    "CacheControl",
    "ContentDisposition",
    "ContentEncoding",
    "ContentLanguage",
    "ContentType",
    "Expires",
)


def _locator_params(locator: ObjectLocator) -> Dict[str, Any]:
    params: Dict[str, Any] = {"Bucket": locator.bucket, "Key": locator.key}
    if locator.version_id is not None:
        params["VersionId"] = locator.version_id
    return params


def _total_length(content_range: Optional[str]) -> Optional[int]:
    if not content_range:
        return None
    match = _CONTENT_RANGE.match(content_range)
    if match is None or match.group(3) == "*":
        return None
    return int(match.group(3))


class ObjectAccess:
    """Reads and writes individual objects through the client manager."""

    def __init__(self, client_manager: S3ClientManager):
        self.client_manager = client_manager

    def read_object(
        self,
        locator: ObjectLocator,
        byte_range: Optional[ByteRange] = None,
        timeout: Optional[float] = None,
    ) -> tuple[ObjectMetadata, StreamingBody]:
        """Fetch an object, or an inclusive byte range of it.

        Args:
            locator: Object (and optionally version) to read
            byte_range: Inclusive range to read, whole object when None
            timeout: Execution timeout in seconds

        Returns:
            Tuple of (metadata, body stream). The caller closes the stream.

        Raises:
            ConsistencyViolation: If the provider returned a different number
                of bytes than the range asks for
        """
        params = _locator_params(locator)
        if byte_range is not None:
            params["Range"] = byte_range.header

        response = self.client_manager.call("get_object", timeout=timeout, **params)
        metadata = ObjectMetadata.from_response(response)
        body = response["Body"]

        if byte_range is not None:
            expected = byte_range.expected_length(
                _total_length(response.get("ContentRange"))
            )
            if expected is not None and metadata.content_length != expected:
                body.close()
                raise ConsistencyViolation(
                    f"Range {byte_range.header} of '{locator.key}' returned "
                    f"{metadata.content_length} bytes, expected {expected}"
                )

        logger.debug(
            "Object read",
            bucket=locator.bucket,
            key=locator.key,
            content_length=metadata.content_length,
        )
        return metadata, body

    def read_object_metadata(self, locator: ObjectLocator) -> ObjectMetadata:
        """Fetch object metadata without its content."""
        response = self.client_manager.call("head_object", **_locator_params(locator))
        metadata = ObjectMetadata.from_response(response)
        if locator.version_id is not None and metadata.version_id != locator.version_id:
            raise ConsistencyViolation(
                f"Requested version '{locator.version_id}' of '{locator.key}' but "
                f"provider reported '{metadata.version_id}'"
            )
        return metadata

    def write_object(self, request: WriteRequest) -> WriteResult:
        """Upload an object and verify the provider serves what was written.

        The upload is followed by a metadata read of the version the provider
        reported. On unversioned buckets both version ids are None and the
        check passes.

        Raises:
            ValidationError: If the content source re-uses a stream
            ConsistencyViolation: If the read-back version id differs
        """
        params: Dict[str, Any] = {
            "Bucket": request.bucket,
            "Key": request.key,
            "ContentLength": request.content_length,
        }
        if request.additional_user_metadata:
            params["Metadata"] = dict(request.additional_user_metadata)

        stream = request.open_stream()
        try:
            response = self.client_manager.call(
                "put_object", timeout=request.timeout, Body=stream, **params
            )
        finally:
            stream.close()

        result = WriteResult(
            version_id=response.get("VersionId"), etag=response.get("ETag")
        )

        observed = self.read_object_metadata(
            ObjectLocator(
                bucket=request.bucket, key=request.key, version_id=result.version_id
            )
        )
        if result.version_id is not None and observed.version_id != result.version_id:
            raise ConsistencyViolation(
                f"Version id mismatch on read after write of '{request.key}': "
                f"wrote {result.version_id}, read {observed.version_id}"
            )

        logger.info(
            "Object written",
            bucket=request.bucket,
            key=request.key,
            content_length=observed.content_length,
            version_id=result.version_id,
        )
        return result

    def copy_object(
        self,
        source: ObjectLocator,
        dest: ObjectLocator,
        metadata: Optional[ObjectMetadata] = None,
    ) -> WriteResult:
        """Server-side copy.

        When ``metadata`` is given, its provider-opaque headers and user
        metadata are replayed onto the destination instead of the source's.
        """
        copy_source: Dict[str, str] = {"Bucket": source.bucket, "Key": source.key}
        if source.version_id is not None:
            copy_source["VersionId"] = source.version_id

        params: Dict[str, Any] = {
            "Bucket": dest.bucket,
            "Key": dest.key,
            "CopySource": copy_source,
        }
        if metadata is not None:
            params["MetadataDirective"] = "REPLACE"
            params["Metadata"] = dict(metadata.user_metadata)
            opaque = metadata.provider_opaque_metadata
            for header in _REPLAYED_HEADERS:
                if opaque.get(header) is not None:
                    params[header] = opaque[header]

        response = self.client_manager.call("copy_object", **params)
        copy_result = response.get("CopyObjectResult") or {}
        logger.info(
            "Object copied",
            source_bucket=source.bucket,
            source_key=source.key,
            source_version_id=source.version_id,
            dest_bucket=dest.bucket,
            dest_key=dest.key,
        )
        return WriteResult(
            version_id=response.get("VersionId"), etag=copy_result.get("ETag")
        )

    def delete_object(self, locator: ObjectLocator) -> None:
        """Delete one object, or one version of it."""
        self.client_manager.call("delete_object", **_locator_params(locator))
        logger.debug(
            "Object deleted",
            bucket=locator.bucket,
            key=locator.key,
            version_id=locator.version_id,
        )

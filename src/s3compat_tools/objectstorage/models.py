"""Value objects exchanged with the storage client.

Requests are frozen pydantic models validated at construction; anything
malformed raises ``ValidationError`` before a network call is made.
Results are frozen dataclasses built from provider responses and never
mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import IO, Any, Callable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from pydantic import ValidationError as PydanticValidationError

from s3compat_tools.core.exceptions import ValidationError

DEFAULT_PRESIGNED_URL_LIFETIME = 3600

ContentSource = Callable[[], IO[bytes]]


def _require_not_blank(value: str, name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} may not be blank")
    return value


class RequestModel(BaseModel):
    """Base for immutable request values.

    Pydantic errors are re-raised as the package ``ValidationError`` so
    callers handle a single error taxonomy.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {type(self).__name__}: {e}") from e


class ObjectLocator(RequestModel):
    """Identifies exactly one object, or one version of it."""

    bucket: str = Field(..., description="Bucket name")
    key: str = Field(..., description="Object key")
    version_id: Optional[str] = Field(None, description="Specific object version")

    @field_validator("bucket")
    @classmethod
    def _bucket_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "bucket")

    @field_validator("key")
    @classmethod
    def _key_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "key")


class ByteRange(RequestModel):
    """Inclusive byte range. ``end=None`` reads to the end of the object."""

    start: int = Field(..., ge=0)
    end: Optional[int] = Field(None, ge=0)

    def model_post_init(self, __context: Any) -> None:
        if self.end is not None and self.end < self.start:
            raise ValidationError(
                f"Range end ({self.end}) must not be before start ({self.start})"
            )

    @property
    def header(self) -> str:
        end = "" if self.end is None else str(self.end)
        return f"bytes={self.start}-{end}"

    def expected_length(self, total_length: Optional[int]) -> Optional[int]:
        """Number of bytes the provider should return for this range."""
        if total_length is None:
            return None if self.end is None else self.end - self.start + 1
        last = total_length - 1 if self.end is None else min(self.end, total_length - 1)
        return max(last - self.start + 1, 0)


class WriteRequest(RequestModel):
    """A single-object upload.

    ``content_source`` must return a brand new stream on every call: the
    transport re-reads content from the beginning on retry. The stream
    obtained while validating the request is kept so a factory that hands
    back the same instance twice is caught before the upload starts.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    bucket: str
    key: str
    content_source: ContentSource
    content_length: int = Field(..., ge=0)
    timeout: Optional[float] = Field(None, ge=0, description="Execution timeout (s)")
    additional_user_metadata: Optional[dict[str, str]] = None

    _first_stream: Optional[IO[bytes]] = PrivateAttr(default=None)

    @field_validator("bucket")
    @classmethod
    def _bucket_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "bucket")

    @field_validator("key")
    @classmethod
    def _key_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "key")

    @field_validator("additional_user_metadata")
    @classmethod
    def _metadata_keys_not_blank(
        cls, v: Optional[dict[str, str]]
    ) -> Optional[dict[str, str]]:
        if v:
            for name in v:
                _require_not_blank(name, "metadata key")
        return v

    def model_post_init(self, __context: Any) -> None:
        stream = self.content_source()
        if stream is None:
            raise ValidationError("Content source returned no stream")
        stream.close()
        self._first_stream = stream

    def open_stream(self) -> IO[bytes]:
        """Get a fresh stream of the content to upload."""
        stream = self.content_source()
        if stream is None:
            raise ValidationError("Content source returned no stream")
        if stream is self._first_stream:
            raise ValidationError(
                f"Content source for '{self.key}' re-used a stream instance; "
                "it must return a new stream on every call"
            )
        return stream


class DeleteSpec(RequestModel):
    """Delete one object, or one specific version of it."""

    key: str
    version_id: Optional[str] = None

    @field_validator("key")
    @classmethod
    def _key_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "key")

    def to_s3_identifier(self) -> dict[str, str]:
        identifier = {"Key": self.key}
        if self.version_id is not None:
            identifier["VersionId"] = self.version_id
        return identifier


class PresignedUrlSpec(RequestModel):
    """Parameters a presigned URL is bound to.

    A negative lifetime means "use the default"; zero is accepted and yields
    a URL that is already expired.
    """

    bucket: str
    key: str
    method: Literal["GET", "PUT", "HEAD", "DELETE"] = "GET"
    lifetime: int = Field(DEFAULT_PRESIGNED_URL_LIFETIME, description="Seconds")
    content_type: Optional[str] = None
    response_content_encoding: Optional[str] = None

    @field_validator("bucket")
    @classmethod
    def _bucket_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "bucket")

    @field_validator("key")
    @classmethod
    def _key_not_blank(cls, v: str) -> str:
        return _require_not_blank(v, "key")

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("lifetime")
    @classmethod
    def _default_lifetime(cls, v: int) -> int:
        return DEFAULT_PRESIGNED_URL_LIFETIME if v < 0 else v


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata of a stored object as reported by the provider.

    Attributes:
        content_length: Size of the object in bytes
        etag: Entity tag assigned by the provider
        version_id: Version id, None when the bucket is not versioned
        last_modified: Time of the last modification
        user_metadata: User metadata, keys lower-cased and sorted
        provider_opaque_metadata: The full provider response, replayed
            verbatim into copy requests
    """

    content_length: int
    etag: Optional[str]
    version_id: Optional[str]
    last_modified: Optional[datetime]
    user_metadata: Mapping[str, str] = field(default_factory=dict)
    provider_opaque_metadata: Mapping[str, Any] = field(
        default_factory=dict, repr=False, compare=False
    )

    @classmethod
    def from_response(cls, response: Mapping[str, Any]) -> "ObjectMetadata":
        """Build from a head_object / get_object response."""
        user_metadata = {
            name.lower(): value
            for name, value in sorted(
                (response.get("Metadata") or {}).items(), key=lambda kv: kv[0].lower()
            )
        }
        opaque = {
            name: value
            for name, value in response.items()
            if name not in ("Body", "ResponseMetadata")
        }
        return cls(
            content_length=response.get("ContentLength", 0),
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
            last_modified=response.get("LastModified"),
            user_metadata=MappingProxyType(user_metadata),
            provider_opaque_metadata=MappingProxyType(opaque),
        )

    def get_user_metadata(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive user metadata lookup."""
        return self.user_metadata.get(name.lower(), default)


@dataclass(frozen=True)
class WriteResult:
    """What the provider reported for a completed upload."""

    version_id: Optional[str]
    etag: Optional[str]


@dataclass(frozen=True)
class ObjectSummary:
    """One row of a flat listing."""

    key: str
    size: int
    etag: Optional[str]
    last_modified: Optional[datetime]

    @classmethod
    def from_listing_entry(cls, entry: Mapping[str, Any], key: str) -> "ObjectSummary":
        return cls(
            key=key,
            size=entry.get("Size", 0),
            etag=entry.get("ETag"),
            last_modified=entry.get("LastModified"),
        )


@dataclass(frozen=True)
class VersionSummary:
    """One row of a version listing (object version or delete marker)."""

    key: str
    version_id: Optional[str]
    size: int
    etag: Optional[str]
    last_modified: Optional[datetime]
    is_latest: bool
    is_delete_marker: bool

    @classmethod
    def from_listing_entry(
        cls, entry: Mapping[str, Any], key: str, is_delete_marker: bool
    ) -> "VersionSummary":
        return cls(
            key=key,
            version_id=entry.get("VersionId"),
            size=entry.get("Size", 0),
            etag=entry.get("ETag"),
            last_modified=entry.get("LastModified"),
            is_latest=bool(entry.get("IsLatest", False)),
            is_delete_marker=is_delete_marker,
        )

    def to_delete_spec(self) -> DeleteSpec:
        return DeleteSpec(key=self.key, version_id=self.version_id)

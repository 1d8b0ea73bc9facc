"""Exception hierarchy for s3compat-tools."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional


class S3CompatError(Exception):
    """Base exception for all s3compat-tools errors."""

    pass


class ValidationError(S3CompatError):
    """Raised locally, before any network call, for malformed requests."""

    pass


class TransportError(S3CompatError):
    """Raised when the network layer fails (connection, DNS, TLS, ...)."""

    pass


class TransportTimeoutError(TransportError):
    """Raised when a call exceeds its execution timeout. Never retried."""

    pass


class ProviderError(S3CompatError):
    """A well-formed error response returned by the storage endpoint."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.request_id = request_id
        self.details = dict(details or {})

    def __str__(self) -> str:
        return (
            f"{self.message} (status={self.status_code}, code={self.error_code}, "
            f"request_id={self.request_id})"
        )


class RegionMismatchError(ProviderError):
    """Provider rejected the call because the client targets the wrong region.

    Only raised when the error carries the correct region, so the region
    resolver can reconfigure the client and retry.
    """

    @property
    def correct_region(self) -> str:
        return self.details["Region"]


class ConsistencyViolation(S3CompatError):
    """The provider did not report back what the client just wrote."""

    pass


@dataclass(frozen=True)
class DeleteFailure:
    """One key that a delete request could not remove."""

    key: str
    version_id: Optional[str]
    code: Optional[str]
    message: Optional[str]


class PartialDeleteFailure(S3CompatError):
    """Some keys were deleted, some were not."""

    def __init__(self, message: str, deleted_count: int, failures: list[DeleteFailure]):
        super().__init__(message)
        self.deleted_count = deleted_count
        self.failures = failures

    @property
    def failed_keys(self) -> list[str]:
        return [failure.key for failure in self.failures]

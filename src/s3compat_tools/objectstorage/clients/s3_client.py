"""S3 client configuration and the signed-HTTP transport handle.

The S3ClientManager owns the boto3 client used by every storage component.
It is the only place that talks to botocore directly: each call goes through
``S3ClientManager.call`` which translates botocore failures into the package
error taxonomy, so nothing above this layer handles vendor exceptions.

Authentication Methods Supported:
    1. Explicit credentials (access_key_id, secret_access_key)
    2. AWS CLI profiles (aws_profile)
    3. IAM roles / environment variables (no explicit credentials)
    4. Temporary credentials (session_token)
    5. Anonymous, unsigned requests (anonymous=True)

S3-Compatible Services:
    The endpoint under test is given as endpoint_url. Requests are signed
    with SigV4 and the addressing style is configurable, since providers
    differ in their support for virtual-hosted buckets.
"""

from collections import OrderedDict
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import boto3
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ParamValidationError,
    ReadTimeoutError,
)
from pydantic import BaseModel, ConfigDict, Field

from s3compat_tools.core import get_logger
from s3compat_tools.core.config import Settings
from s3compat_tools.core.exceptions import (
    ProviderError,
    RegionMismatchError,
    TransportError,
    TransportTimeoutError,
    ValidationError,
)

logger = get_logger(__name__)

BUCKET_REGION_HEADER = "x-amz-bucket-region"

# Timed client variants kept per manager, least recently used evicted first
MAX_TIMEOUT_CLIENTS = 8


def _disable_region_redirect(context: Dict[str, Any], **kwargs: Any) -> None:
    """Stop botocore from silently re-signing wrong-region requests.

    botocore retries a wrong-region error in the region named by the
    provider unless the request is already marked as redirected. Marking
    every request lets the error reach ``S3ClientManager.call`` as a
    ``RegionMismatchError``, so only the region resolver corrects regions.
    """
    redirect_ctx = context.setdefault("s3_redirect", {})
    redirect_ctx["redirected"] = True


class S3ClientConfig(BaseModel):
    """Configuration for one S3 client connection.

    Example:
        # Explicit credentials against a MinIO endpoint
        config = S3ClientConfig(
            endpoint_url="http://localhost:9000",
            region_name="us-east-1",
            access_key_id="minioadmin",
            secret_access_key="minioadmin",
        )

        # AWS profile, region left to the SDK default chain
        config = S3ClientConfig(aws_profile="my-profile")
    """

    model_config = ConfigDict(extra="forbid")

    access_key_id: Optional[str] = Field(None, description="Access key ID")
    secret_access_key: Optional[str] = Field(None, description="Secret access key")
    session_token: Optional[str] = Field(
        None, description="Session token for temporary credentials"
    )
    region_name: Optional[str] = Field(
        None, description="Region name, None lets the SDK pick its default"
    )
    endpoint_url: Optional[str] = Field(
        None, description="Custom S3 endpoint URL for S3-compatible services"
    )
    aws_profile: Optional[str] = Field(
        None, description="AWS CLI profile name to use for credentials"
    )
    anonymous: bool = Field(False, description="Send unsigned requests")
    addressing_style: str = Field("path", description="path, virtual or auto")
    max_error_retry: int = Field(5, ge=0, description="Transport-level retries")
    connect_timeout: float = Field(10.0, gt=0, description="Seconds")
    read_timeout: float = Field(20.0, gt=0, description="Seconds")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "S3ClientConfig":
        """Build a client configuration from environment-driven settings."""
        values: Dict[str, Any] = {
            "access_key_id": settings.access_key_id,
            "secret_access_key": settings.secret_access_key,
            "session_token": settings.session_token,
            "region_name": settings.region_name,
            "endpoint_url": settings.endpoint_url,
            "aws_profile": settings.aws_profile,
            "addressing_style": settings.addressing_style,
            "max_error_retry": settings.max_error_retry,
            "connect_timeout": settings.connect_timeout,
            "read_timeout": settings.read_timeout,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class S3ClientManager:
    """Owns the boto3 client and translates its failures.

    Not safe for concurrent ``set_region`` calls alongside in-flight calls on
    the same instance; use one manager per region for concurrent work.
    """

    def __init__(self, config: S3ClientConfig):
        """Initialize S3 client manager.

        Args:
            config: S3 client configuration
        """
        self.config = config
        self._client = None
        self._timeout_clients: "OrderedDict[float, Any]" = OrderedDict()
        logger.info(
            "S3 client manager initialized",
            region=config.region_name,
            endpoint=config.endpoint_url,
        )

    @property
    def client(self):
        """Get or create S3 client instance."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    @property
    def region_name(self) -> Optional[str]:
        """Effective region of the client."""
        if self.config.region_name:
            return self.config.region_name
        return self.client.meta.region_name

    def set_region(self, region: str) -> None:
        """Point subsequent calls at another region.

        Calls already holding the previous client complete against it.
        """
        if not region or not region.strip():
            raise ValidationError("Region may not be blank")
        self.config = self.config.model_copy(update={"region_name": region})
        self._client = None
        self._timeout_clients = OrderedDict()
        logger.info("S3 client region changed", region=region)

    def _client_config(self, timeout: Optional[float] = None) -> Config:
        kwargs: Dict[str, Any] = {
            "s3": {"addressing_style": self.config.addressing_style},
        }
        if self.config.anonymous:
            kwargs["signature_version"] = UNSIGNED
        else:
            kwargs["signature_version"] = "s3v4"

        if timeout is None:
            kwargs.update(
                connect_timeout=self.config.connect_timeout,
                read_timeout=self.config.read_timeout,
                retries={
                    "total_max_attempts": self.config.max_error_retry + 1,
                    "mode": "standard",
                },
            )
        else:
            # A timed-out call is terminal, so a single attempt
            kwargs.update(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"total_max_attempts": 1, "mode": "standard"},
            )
        return Config(**kwargs)

    def _create_client(self, timeout: Optional[float] = None):
        """Create boto3 S3 client with the configured settings."""
        kwargs: Dict[str, Any] = {"config": self._client_config(timeout)}

        if self.config.region_name:
            kwargs["region_name"] = self.config.region_name

        if self.config.endpoint_url:
            kwargs["endpoint_url"] = self.config.endpoint_url

        if self.config.aws_profile:
            session = boto3.Session(profile_name=self.config.aws_profile)
            client = session.client("s3", **kwargs)  # type: ignore
            logger.info(
                "S3 client created with profile", profile=self.config.aws_profile
            )
        else:
            if self.config.access_key_id and self.config.secret_access_key:
                kwargs.update(
                    {
                        "aws_access_key_id": self.config.access_key_id,
                        "aws_secret_access_key": self.config.secret_access_key,
                    }
                )
                if self.config.session_token:
                    kwargs["aws_session_token"] = self.config.session_token
                logger.info("S3 client created with explicit credentials")
            elif self.config.anonymous:
                logger.info("S3 client created for unsigned requests")
            else:
                logger.info("S3 client created with default credential chain")

            client = boto3.client("s3", **kwargs)  # type: ignore

        client.meta.events.register_last(
            "before-parameter-build.s3", _disable_region_redirect
        )
        return client

    def _client_with_timeout(self, timeout: float):
        client = self._timeout_clients.get(timeout)
        if client is not None:
            self._timeout_clients.move_to_end(timeout)
            return client

        client = self._create_client(timeout)
        self._timeout_clients[timeout] = client
        while len(self._timeout_clients) > MAX_TIMEOUT_CLIENTS:
            self._timeout_clients.popitem(last=False)
        return client

    def call(self, operation: str, timeout: Optional[float] = None, **params: Any) -> Any:
        """Invoke one client operation, translating failures.

        Args:
            operation: boto3 client method name, e.g. "head_object"
            timeout: Execution timeout in seconds for this call only; None or 0
                uses the client defaults
            **params: Request parameters passed to the client method

        Returns:
            The parsed boto3 response

        Raises:
            ValidationError: If botocore rejects the parameters locally
            TransportTimeoutError: If the call exceeded its timeout
            TransportError: On any other transport failure
            RegionMismatchError: If the provider points at another region
            ProviderError: On any other error response
        """
        client = self._client_with_timeout(timeout) if timeout else self.client
        try:
            return getattr(client, operation)(**params)
        except ParamValidationError as e:
            raise ValidationError(f"Invalid parameters for {operation}: {e}") from e
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            logger.warning("S3 call timed out", operation=operation, error=str(e))
            raise TransportTimeoutError(f"{operation} timed out: {e}") from e
        except ClientError as e:
            error = self.translate_client_error(e)
            logger.warning(
                "S3 call failed",
                operation=operation,
                status_code=error.status_code,
                error_code=error.error_code,
                request_id=error.request_id,
            )
            raise error from e
        except BotoCoreError as e:
            logger.warning("S3 transport failure", operation=operation, error=str(e))
            raise TransportError(f"{operation} failed: {e}") from e

    def translate_client_error(self, exc: ClientError) -> ProviderError:
        """Convert a botocore ClientError into a ProviderError."""
        response = exc.response or {}
        error = dict(response.get("Error") or {})
        meta = response.get("ResponseMetadata") or {}
        headers = meta.get("HTTPHeaders") or {}

        code = error.pop("Code", None)
        message = error.pop("Message", None) or str(exc)
        details = dict(error)
        if "Region" not in details and headers.get(BUCKET_REGION_HEADER):
            details["Region"] = headers[BUCKET_REGION_HEADER]

        status_code = meta.get("HTTPStatusCode")
        if status_code is None and code and code.isdigit():
            status_code = int(code)

        request_id = meta.get("RequestId") or error.get("RequestId")
        correct_region = details.get("Region")
        error_cls = ProviderError
        if correct_region and correct_region != self.region_name:
            error_cls = RegionMismatchError

        return error_cls(
            message,
            status_code=status_code,
            error_code=code,
            request_id=request_id,
            details=details,
        )

    @staticmethod
    def parse_s3_path(s3_path: str) -> tuple[str, str]:
        """Parse S3 path into bucket and key/prefix components.

        Args:
            s3_path: S3 path in format s3://bucket/prefix or s3://bucket

        Returns:
            Tuple of (bucket_name, prefix)

        Raises:
            ValidationError: If path format is invalid
        """
        if not s3_path.startswith("s3://"):
            raise ValidationError(f"S3 path must start with 's3://': {s3_path}")

        parsed = urlparse(s3_path)
        bucket = parsed.netloc
        prefix = parsed.path.lstrip("/")

        if not bucket:
            raise ValidationError(f"Invalid S3 path, missing bucket: {s3_path}")

        logger.debug("S3 path parsed", bucket=bucket, prefix=prefix)
        return bucket, prefix

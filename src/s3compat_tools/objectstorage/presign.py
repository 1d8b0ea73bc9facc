"""Presigned URL generation.

Signing is local: no request is sent and the endpoint alone enforces the
expiration when the URL is used.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from s3compat_tools.core import get_logger
from s3compat_tools.core.exceptions import ValidationError
from s3compat_tools.objectstorage.clients import S3ClientManager
from s3compat_tools.objectstorage.models import PresignedUrlSpec

logger = get_logger(__name__)

_CLIENT_METHODS = {
    "GET": "get_object",
    "PUT": "put_object",
    "HEAD": "head_object",
    "DELETE": "delete_object",
}


class PresignedUrlIssuer:
    """Builds time-bounded URLs bound to bucket, key and HTTP method."""

    def __init__(self, client_manager: S3ClientManager):
        self.client_manager = client_manager

    @staticmethod
    def _params(spec: PresignedUrlSpec) -> Dict[str, Any]:
        params: Dict[str, Any] = {"Bucket": spec.bucket, "Key": spec.key}
        if spec.content_type:
            # Uploads sign the request content type; reads override the
            # content type of the response instead.
            if spec.method == "PUT":
                params["ContentType"] = spec.content_type
            elif spec.method in ("GET", "HEAD"):
                params["ResponseContentType"] = spec.content_type
            else:
                raise ValidationError(
                    f"content_type is not supported for {spec.method} URLs"
                )
        if spec.response_content_encoding:
            if spec.method not in ("GET", "HEAD"):
                raise ValidationError(
                    f"response_content_encoding is not supported for {spec.method} URLs"
                )
            params["ResponseContentEncoding"] = spec.response_content_encoding
        return params

    def generate(self, spec: PresignedUrlSpec) -> str:
        """Sign a URL for ``spec``.

        Returns:
            The presigned URL
        """
        expiration = datetime.now(timezone.utc) + timedelta(seconds=spec.lifetime)
        url = self.client_manager.call(
            "generate_presigned_url",
            ClientMethod=_CLIENT_METHODS[spec.method],
            Params=self._params(spec),
            ExpiresIn=spec.lifetime,
            HttpMethod=spec.method,
        )
        logger.info(
            "Presigned URL generated",
            bucket=spec.bucket,
            key=spec.key,
            method=spec.method,
            expires_at=expiration.isoformat(),
        )
        return url

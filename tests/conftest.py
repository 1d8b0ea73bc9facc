"""Test configuration and fixtures for s3compat-tools."""

import io
import re
import threading
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

import boto3
import pytest
from moto import mock_aws

from s3compat_tools.objectstorage import S3ClientConfig, S3CompatStorageClient
from s3compat_tools.objectstorage.models import WriteRequest

TEST_REGION = "us-east-1"
TEST_BUCKET = "test-bucket"
VERSIONED_BUCKET = "versioned-bucket"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Keep boto3 away from real credentials and config files."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "test_key")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "test_secret")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def s3_backend(aws_credentials):
    """Mocked S3 with one plain and one versioned bucket."""
    with mock_aws():
        s3 = boto3.client("s3", region_name=TEST_REGION)
        s3.create_bucket(Bucket=TEST_BUCKET)
        s3.create_bucket(Bucket=VERSIONED_BUCKET)
        s3.put_bucket_versioning(
            Bucket=VERSIONED_BUCKET,
            VersioningConfiguration={"Status": "Enabled"},
        )
        yield s3


@pytest.fixture
def client_config():
    """Client configuration pointing at the mocked region."""
    return S3ClientConfig(
        access_key_id="test_key",
        secret_access_key="test_secret",
        region_name=TEST_REGION,
    )


@pytest.fixture
def storage_client(s3_backend, client_config):
    """Storage client talking to the mocked backend."""
    return S3CompatStorageClient(client_config)


def make_write_request(bucket: str, key: str, payload: bytes, **kwargs) -> WriteRequest:
    """WriteRequest whose content source hands out a fresh stream every call."""
    return WriteRequest(
        bucket=bucket,
        key=key,
        content_source=lambda: io.BytesIO(payload),
        content_length=len(payload),
        **kwargs,
    )


ENDPOINT_BUCKET_REGION = "eu-west-2"

_CREDENTIAL_SCOPE = re.compile(r"Credential=[^/]+/\d{8}/([^/]+)/")

_ERROR_XML = (
    "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
    "<Error><Code>{code}</Code><Message>{message}</Message>{extra}"
    "<RequestId>req-1</RequestId></Error>"
)

_LOCATION_XML = (
    "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
    "<LocationConstraint xmlns=\"http://s3.amazonaws.com/doc/2006-03-01/\">"
    "{region}</LocationConstraint>"
)


class RegionBoundHandler(BaseHTTPRequestHandler):
    """Minimal S3 endpoint serving one bucket from a single region.

    Header-signed requests are rejected with AuthorizationHeaderMalformed
    unless signed for the bucket region. Presigned requests are rejected
    once the signed lifetime has elapsed.
    """

    def log_message(self, format, *args):
        pass

    def do_GET(self):
        self._handle()

    def do_HEAD(self):
        self._handle()

    def _respond(self, status, body=b"", headers=None):
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _handle(self):
        query = parse_qs(urlsplit(self.path).query)
        if "X-Amz-Signature" in query:
            self._handle_presigned(query)
        else:
            self._handle_signed()

    def _handle_presigned(self, query):
        signed_at = datetime.strptime(
            query["X-Amz-Date"][0], "%Y%m%dT%H%M%SZ"
        ).replace(tzinfo=timezone.utc)
        lifetime = timedelta(seconds=int(query["X-Amz-Expires"][0]))
        if datetime.now(timezone.utc) > signed_at + lifetime:
            body = _ERROR_XML.format(
                code="AccessDenied", message="Request has expired", extra=""
            )
            self._respond(403, body.encode(), {"Content-Type": "application/xml"})
            return
        self._respond(200, b"hello", {"Content-Type": "text/plain"})

    def _handle_signed(self):
        region = self.server.bucket_region
        match = _CREDENTIAL_SCOPE.search(self.headers.get("Authorization", ""))
        signed_region = match.group(1) if match else None
        self.server.signed_regions.append(signed_region)

        if signed_region != region:
            body = _ERROR_XML.format(
                code="AuthorizationHeaderMalformed",
                message=f"the region '{signed_region}' is wrong; expecting '{region}'",
                extra=f"<Region>{region}</Region>",
            )
            self._respond(
                400,
                body.encode(),
                {"Content-Type": "application/xml", "x-amz-bucket-region": region},
            )
            return

        body = _LOCATION_XML.format(region=region)
        self._respond(200, body.encode(), {"Content-Type": "application/xml"})


@pytest.fixture
def http_endpoint(aws_credentials, monkeypatch):
    """Local HTTP endpoint bound to ENDPOINT_BUCKET_REGION.

    The server records the region every header-signed request was signed for
    in ``signed_regions``; ``url`` is its endpoint URL.
    """
    monkeypatch.setenv("NO_PROXY", "127.0.0.1")
    monkeypatch.setenv("no_proxy", "127.0.0.1")

    server = ThreadingHTTPServer(("127.0.0.1", 0), RegionBoundHandler)
    server.daemon_threads = True
    server.bucket_region = ENDPOINT_BUCKET_REGION
    server.signed_regions = []
    server.url = f"http://127.0.0.1:{server.server_address[1]}"

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


def endpoint_config(endpoint, region: str) -> S3ClientConfig:
    """Client configuration signing for ``region`` against ``endpoint``."""
    return S3ClientConfig(
        endpoint_url=endpoint.url,
        region_name=region,
        access_key_id="test_key",
        secret_access_key="test_secret",
        max_error_retry=0,
    )

"""Command-line interface for s3compat-tools.

This module exposes the storage client over a CLI so an endpoint can be
exercised by hand or from scripts.

Commands:
    - location: Resolve the region of a bucket
    - head: Show object metadata
    - get: Download an object or a byte range of it
    - put: Upload a local file (verified by reading it back)
    - list: List objects or versions under a prefix
    - delete: Delete every object under a prefix
    - presign: Generate a presigned URL
    - perf: Measure operation latencies

Connection options are global and default to the S3COMPAT_* environment
variables, e.g. ``s3compat --endpoint-url http://localhost:9000 list s3://b/p``.
"""

import sys
from pathlib import Path
from typing import Annotated, Optional

import typer

from . import __version__
from .core import settings
from .objectstorage import (
    ByteRange,
    ObjectLocator,
    PresignedUrlSpec,
    S3ClientConfig,
    S3ClientManager,
    S3CompatStorageClient,
)
from .perf.measurement import DEFAULT_TIMES, PerfMeasurement, parse_operations

app = typer.Typer(
    name="s3compat",
    help="Exercise and certify S3-compatible object storage endpoints.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        typer.echo(f"s3compat-tools {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    endpoint_url: Annotated[
        Optional[str], typer.Option("--endpoint-url", help="S3 endpoint URL")
    ] = None,
    region_name: Annotated[
        Optional[str], typer.Option("--region", help="Region of the client")
    ] = None,
    access_key_id: Annotated[
        Optional[str], typer.Option("--access-key-id", help="Access key ID")
    ] = None,
    secret_access_key: Annotated[
        Optional[str], typer.Option("--secret-access-key", help="Secret access key")
    ] = None,
    session_token: Annotated[
        Optional[str], typer.Option("--session-token", help="Session token")
    ] = None,
    aws_profile: Annotated[
        Optional[str], typer.Option("--aws-profile", help="AWS CLI profile name")
    ] = None,
    anonymous: Annotated[
        bool, typer.Option("--anonymous", help="Send unsigned requests")
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version."
        ),
    ] = None,
) -> None:
    """
    s3compat: exercise an S3-compatible endpoint through a verified client.
    """
    ctx.obj = S3ClientConfig.from_settings(
        settings,
        endpoint_url=endpoint_url,
        region_name=region_name,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=session_token,
        aws_profile=aws_profile,
        anonymous=anonymous or None,
    )


def _client(ctx: typer.Context) -> S3CompatStorageClient:
    return S3CompatStorageClient(ctx.obj)


def _parse_range(value: Optional[str]) -> Optional[ByteRange]:
    """Parse "start-end" or "start-" into a ByteRange."""
    if not value:
        return None
    start, _, end = value.partition("-")
    return ByteRange(start=int(start), end=int(end) if end else None)


def _parse_metadata(values: Optional[list[str]]) -> Optional[dict[str, str]]:
    if not values:
        return None
    metadata = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep:
            raise typer.BadParameter(f"Metadata must be NAME=VALUE, got: {item}")
        metadata[name] = value
    return metadata


@app.command("location")
def location_cmd(
    ctx: typer.Context,
    bucket: Annotated[str, typer.Argument(help="Bucket name")],
) -> None:
    """
    Resolve the region of a bucket.

    Example:
        s3compat --region us-west-2 location my-bucket
    """
    try:
        client = _client(ctx)
        region = client.get_bucket_location(bucket)
        typer.echo(f"Bucket: {bucket}")
        typer.echo(f"Region: {region}")
        typer.echo(f"Client region: {client.region_name}")
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("head")
def head_cmd(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Object path s3://bucket/key")],
    version_id: Annotated[
        Optional[str], typer.Option("--version-id", help="Specific object version")
    ] = None,
) -> None:
    """
    Show object metadata.
    """
    try:
        bucket, key = S3ClientManager.parse_s3_path(path)
        metadata = _client(ctx).read_object_metadata(
            ObjectLocator(bucket=bucket, key=key, version_id=version_id)
        )
        typer.echo(f"Content length: {metadata.content_length:,} bytes")
        typer.echo(f"ETag: {metadata.etag}")
        typer.echo(f"Version id: {metadata.version_id}")
        typer.echo(f"Last modified: {metadata.last_modified}")
        for name, value in metadata.user_metadata.items():
            typer.echo(f"  {name}: {value}")
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("get")
def get_cmd(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Object path s3://bucket/key")],
    output: Annotated[
        Optional[Path], typer.Option("--output", "-o", help="File to write to")
    ] = None,
    byte_range: Annotated[
        Optional[str],
        typer.Option("--range", help="Inclusive byte range, e.g. 0-8 or 100-"),
    ] = None,
    version_id: Annotated[
        Optional[str], typer.Option("--version-id", help="Specific object version")
    ] = None,
    timeout: Annotated[
        Optional[float], typer.Option("--timeout", help="Execution timeout (s)")
    ] = None,
) -> None:
    """
    Download an object, or a byte range of it, to a file or stdout.
    """
    try:
        bucket, key = S3ClientManager.parse_s3_path(path)
        metadata, body = _client(ctx).read_object(
            ObjectLocator(bucket=bucket, key=key, version_id=version_id),
            _parse_range(byte_range),
            timeout=timeout,
        )
        try:
            if output is None:
                for chunk in body.iter_chunks():
                    sys.stdout.buffer.write(chunk)
            else:
                with open(output, "wb") as fh:
                    for chunk in body.iter_chunks():
                        fh.write(chunk)
                typer.echo(f"Wrote {metadata.content_length:,} bytes to {output}")
        finally:
            body.close()
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("put")
def put_cmd(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="Local file to upload", exists=True)],
    prefix: Annotated[str, typer.Argument(help="Target prefix s3://bucket/prefix")],
    metadata: Annotated[
        Optional[list[str]],
        typer.Option("--metadata", "-m", help="User metadata NAME=VALUE"),
    ] = None,
    timeout: Annotated[
        Optional[float], typer.Option("--timeout", help="Execution timeout (s)")
    ] = None,
) -> None:
    """
    Upload a local file to <prefix>/<file name> and verify it.
    """
    try:
        bucket, key_prefix = S3ClientManager.parse_s3_path(prefix)
        result = _client(ctx).put_file(
            bucket,
            key_prefix,
            file,
            timeout=timeout,
            metadata=_parse_metadata(metadata),
        )
        typer.echo(f"✓ Uploaded {file} (etag {result.etag}, version {result.version_id})")
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Prefix path s3://bucket/prefix")],
    v2: Annotated[
        bool, typer.Option("--v2/--v1", help="Use list-v2 continuation tokens")
    ] = True,
    versions: Annotated[
        bool, typer.Option("--versions", help="List object versions")
    ] = False,
    max_keys: Annotated[
        Optional[int], typer.Option("--max-keys", help="Page size hint")
    ] = None,
    url_encoding: Annotated[
        bool, typer.Option("--url-encoding", help="Request URL-encoded keys")
    ] = False,
) -> None:
    """
    List every object (or version) under a prefix.
    """
    try:
        bucket, prefix = S3ClientManager.parse_s3_path(path)
        client = _client(ctx)
        if versions:
            summaries = client.list_versions(bucket, prefix, url_encoding, max_keys)
            typer.echo(f"Found {len(summaries)} versions:")
            for version in summaries:
                marker = " (delete marker)" if version.is_delete_marker else ""
                latest = " [latest]" if version.is_latest else ""
                typer.echo(
                    f"  {version.key} {version.version_id} "
                    f"{version.size:,} bytes{latest}{marker}"
                )
            return
        if v2:
            objects = client.list_objects_v2(bucket, prefix, max_keys, url_encoding)
        else:
            objects = client.list_objects(bucket, prefix, url_encoding, max_keys)
        typer.echo(f"Found {len(objects)} objects:")
        for summary in objects:
            typer.echo(f"  s3://{bucket}/{summary.key} {summary.size:,} bytes")
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("delete")
def delete_cmd(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Prefix path s3://bucket/prefix")],
) -> None:
    """
    Delete every object under a prefix.
    """
    try:
        bucket, prefix = S3ClientManager.parse_s3_path(path)
        deleted = _client(ctx).delete_prefix(bucket, prefix)
        typer.echo(f"Deleted {deleted} objects under {path}")
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("presign")
def presign_cmd(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Object path s3://bucket/key")],
    method: Annotated[str, typer.Option("--method", help="HTTP method")] = "GET",
    lifetime: Annotated[
        int, typer.Option("--lifetime", help="Lifetime in seconds, <0 for default")
    ] = -1,
    content_type: Annotated[
        Optional[str], typer.Option("--content-type", help="Bound content type")
    ] = None,
    response_content_encoding: Annotated[
        Optional[str],
        typer.Option("--response-content-encoding", help="Response encoding override"),
    ] = None,
) -> None:
    """
    Generate a presigned URL without contacting the endpoint.
    """
    try:
        bucket, key = S3ClientManager.parse_s3_path(path)
        url = _client(ctx).generate_presigned_url(
            PresignedUrlSpec(
                bucket=bucket,
                key=key,
                method=method,
                lifetime=lifetime,
                content_type=content_type,
                response_content_encoding=response_content_encoding,
            )
        )
        typer.echo(url)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("perf")
def perf_cmd(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Scratch prefix s3://bucket/prefix")],
    operations: Annotated[
        Optional[str],
        typer.Option("--apis", "-a", help="Operations to measure, e.g. getObject,putObject"),
    ] = None,
    times: Annotated[
        int, typer.Option("--times", "-t", help="How many times to run each operation")
    ] = DEFAULT_TIMES,
) -> None:
    """
    Measure operation latencies under a scratch prefix.

    Stats are appended to S3COMPAT_STATS_FILE when it is set.
    """
    try:
        bucket, prefix = S3ClientManager.parse_s3_path(path)
        harness = PerfMeasurement(_client(ctx), bucket, prefix)
        selected = parse_operations(operations) if operations else None
        for summary in harness.run(selected, times).values():
            typer.echo(
                f"{summary.operation.value}: runs={summary.runs} "
                f"failures={summary.failures} mean={summary.mean_ms:.1f}ms "
                f"min={summary.min_ms:.1f}ms max={summary.max_ms:.1f}ms"
            )
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()

"""Core utilities and shared components for s3compat-tools."""

from .config import settings
from .exceptions import S3CompatError, ValidationError
from .observability import get_logger

__all__ = ["settings", "S3CompatError", "ValidationError", "get_logger"]

"""Configuration management for s3compat-tools."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_service_name: str = "s3compat-tools"

    # Endpoint under test
    endpoint_url: Optional[str] = None
    region_name: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    aws_profile: Optional[str] = None
    addressing_style: str = "path"

    # Transport tuning
    max_error_retry: int = 5
    connect_timeout: float = 10.0
    read_timeout: float = 20.0

    stats_file: Optional[str] = None

    model_config = {
        "env_prefix": "S3COMPAT_",
        "case_sensitive": False,
    }


settings = Settings()

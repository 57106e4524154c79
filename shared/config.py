"""Shared configuration utilities."""

import os
from pathlib import Path
from typing import Optional


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    """Get environment variable with optional default and required validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set")
    return value


def get_database_url() -> str:
    """Get the document database URL from environment."""
    return get_env(
        "DATABASE_URL",
        "sqlite:///lovely_documents.db",
        required=False
    )


def get_aws_config() -> dict:
    """Get AWS configuration from environment."""
    return {
        "region": get_env("AWS_REGION", "us-east-1"),
        "s3_bucket": get_env("AWS_S3_BUCKET", "lovelyapp"),
        "access_key_id": get_env("AWS_ACCESS_KEY_ID"),
        "secret_access_key": get_env("AWS_SECRET_ACCESS_KEY"),
        "signed_url_expiration": int(get_env("SIGNED_URL_EXPIRATION", "3600")),
        "download_timeout": float(get_env("DOWNLOAD_TIMEOUT", "30")),
    }


def get_cache_config() -> dict:
    """Get in-memory image cache limits from environment."""
    return {
        "capacity": int(get_env("IMAGE_CACHE_CAPACITY", "50")),
        "ttl_seconds": float(get_env("IMAGE_CACHE_TTL_SECONDS", "3600")),
    }


def get_storage_paths() -> dict:
    """Get local directories for snapshots and the widget shared container."""
    base = Path(get_env("LOVELY_DATA_DIR", str(Path.home() / ".lovely")))
    return {
        "snapshot_dir": Path(get_env("SNAPSHOT_DIR", str(base / "snapshots"))),
        "widget_dir": Path(get_env("WIDGET_CONTAINER_DIR", str(base / "group.lovely.app"))),
    }


def get_widget_config() -> dict:
    """Get widget reload signalling configuration from environment."""
    return {
        "reload_enabled": get_env("ENABLE_WIDGET_RELOAD", "true").lower() == "true",
        "reload_webhook": get_env("WIDGET_RELOAD_WEBHOOK_URL"),
    }

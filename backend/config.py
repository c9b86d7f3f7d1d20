"""
Configuration and settings for the question bank backend.

Settings come from the environment (and `.env`). When running in AWS they are
overlaid with a JSON secret from AWS Secrets Manager.
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigError

logger = logging.getLogger(__name__)

# Secret keys and the settings they populate.
SECRET_KEY_MAP = {
    "AWS_REGION": "aws_region",
    "AWS_ACCESS_KEY_ID": "aws_access_key_id",
    "AWS_SECRET_ACCESS_KEY": "aws_secret_access_key",
    "S3_BUCKET_NAME": "s3_bucket_name",
    "MONGODB_URI": "mongodb_uri",
    "MONGODB_DATABASE": "mongodb_database",
    "MONGODB_COLLECTION": "mongodb_collection",
    "FRONTEND_URL": "frontend_url",
    "NODE_ENV": "environment",
}

REQUIRED_SETTINGS = {
    "AWS_REGION": "aws_region",
    "AWS_ACCESS_KEY_ID": "aws_access_key_id",
    "AWS_SECRET_ACCESS_KEY": "aws_secret_access_key",
    "S3_BUCKET_NAME": "s3_bucket_name",
    "MONGODB_URI": "mongodb_uri",
}


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4000)
    environment: str = Field(default="development")
    frontend_url: str = Field(default="http://localhost:5173")

    # S3
    aws_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    s3_bucket_name: Optional[str] = Field(default=None)

    # MongoDB
    mongodb_uri: Optional[str] = Field(default=None)
    mongodb_database: str = Field(default="question_bank")
    mongodb_collection: str = Field(default="questions")

    # AWS Secrets Manager
    use_secrets_manager: bool = Field(default=False)
    aws_secret_name: str = Field(default="question-bank/secrets")
    secrets_region: str = Field(default="ap-southeast-2")
    secrets_source: str = Field(default="Local .env")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    image_upload_workers: int = Field(default=1, ge=1)
    ensure_indexes_on_startup: bool = Field(default=False)


def is_running_in_aws(settings: Settings) -> bool:
    return (
        settings.environment == "production"
        or bool(os.environ.get("AWS_EXECUTION_ENV"))
        or settings.use_secrets_manager
    )


def load_secrets(secret_name: str, region: str) -> dict:
    """Fetches and decodes a JSON secret from AWS Secrets Manager."""
    client = boto3.client("secretsmanager", region_name=region)
    response = client.get_secret_value(SecretId=secret_name)
    secret_string = response.get("SecretString")
    if not secret_string:
        raise ConfigError("Secret value is empty")
    return json.loads(secret_string)


def apply_secrets(settings: Settings, secrets: dict) -> Settings:
    overrides = {
        field_name: secrets[key]
        for key, field_name in SECRET_KEY_MAP.items()
        if secrets.get(key)
    }
    return settings.model_copy(
        update={**overrides, "secrets_source": "AWS Secrets Manager"}
    )


def load_settings() -> Settings:
    """
    Builds settings from the environment, overlaying AWS Secrets Manager
    values when running in AWS. Falls back to the environment alone if the
    secret cannot be read.
    """
    settings = Settings()
    if not is_running_in_aws(settings):
        logger.info("Loading settings from environment (local development)")
        return settings

    logger.info(
        "Loading secrets from AWS Secrets Manager (%s in %s)",
        settings.aws_secret_name,
        settings.secrets_region,
    )
    try:
        secrets = load_secrets(settings.aws_secret_name, settings.secrets_region)
    except (BotoCoreError, ClientError, ConfigError, ValueError) as exc:
        logger.warning(
            "Failed to load secrets from AWS Secrets Manager, falling back to environment: %s",
            exc,
        )
        return settings
    return apply_secrets(settings, secrets)


def missing_required_settings(settings: Settings) -> list[str]:
    return [
        key
        for key, field_name in REQUIRED_SETTINGS.items()
        if not getattr(settings, field_name)
    ]


def validate_settings(settings: Settings) -> None:
    missing = missing_required_settings(settings)
    if missing:
        raise ConfigError(f"Missing required secrets: {', '.join(missing)}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return load_settings()

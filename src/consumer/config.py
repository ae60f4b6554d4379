"""
Archiver Configuration Module

Configuration for the Kafka consumer and the S3 archive bucket.
Loads settings from environment variables with Pydantic validation.

CONFIGURATION SOURCES (priority order):
1. Environment variables (highest priority)
2. .env file (loaded by python-dotenv)
3. Default values (fallback)
"""

from typing import Any, Dict, Literal, Optional

from botocore.config import Config as BotoConfig
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if present (local development)
load_dotenv()


class ArchiverConfig(BaseSettings):
    """
    Chargeback archiver configuration with validation.

    Includes Kafka consumer settings and S3 archive settings. Broker address,
    consumer group, topic and bucket are all overridable; topic and bucket
    default to "chargebacks".
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === KAFKA CONSUMER SETTINGS ===
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Kafka broker addresses",
    )

    kafka_topic_chargebacks: str = Field(
        default="chargebacks",
        description="Kafka topic to consume chargeback events from",
    )

    consumer_group_id: str = Field(
        default="chargeback-archiver",
        description="Consumer group ID for partition assignment",
    )

    consumer_client_id: str = Field(
        default="chargeback-archiver",
        description="Consumer client identifier",
    )

    consumer_auto_offset_reset: Literal["earliest", "latest"] = Field(
        default="earliest",
        description="Where to start consuming when the group has no committed offset",
    )

    enable_auto_commit: bool = Field(
        default=False,
        description="Auto-commit offsets (False = manual commit after archive)",
    )

    poll_timeout_seconds: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="How long a single poll blocks waiting for a record",
    )

    consumer_workers: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Consumer threads in this process (one Kafka client each)",
    )

    # === S3 ARCHIVE SETTINGS ===
    s3_bucket_name: str = Field(
        default="chargebacks",
        description="Bucket the archived events are written to",
    )

    s3_region: str = Field(
        default="us-east-1",
        description="AWS region of the archive bucket",
    )

    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom S3 endpoint (MinIO, LocalStack); None for AWS",
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        description="Static access key; None uses the default credential chain",
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        description="Static secret key; None uses the default credential chain",
    )

    s3_connect_timeout: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Seconds to wait for a connection to the object store",
    )

    s3_read_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Seconds to wait for the object store to acknowledge a put",
    )

    s3_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per put inside the AWS SDK before the write fails",
    )

    s3_create_bucket: bool = Field(
        default=False,
        description="Create the bucket at startup if it does not exist (local dev)",
    )

    archive_fallback_id: str = Field(
        default="unknown",
        min_length=1,
        description="Filename stem for events without a chargeback_id",
    )

    # === LOGGING ===
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    log_format: str = Field(
        default="json",
        description="Log output format (json or text)",
    )

    def get_kafka_config(self) -> dict:
        """Get Kafka consumer configuration dictionary."""
        return {
            "bootstrap.servers": self.kafka_bootstrap_servers,
            "group.id": self.consumer_group_id,
            "client.id": self.consumer_client_id,
            "auto.offset.reset": self.consumer_auto_offset_reset,
            "enable.auto.commit": self.enable_auto_commit,
            # offsets are stored explicitly by the commit call
            "enable.auto.offset.store": False,
        }

    def get_s3_client_kwargs(self) -> Dict[str, Any]:
        """Get keyword arguments for boto3.client("s3", ...)."""
        kwargs: Dict[str, Any] = {
            "region_name": self.s3_region,
            "config": BotoConfig(
                connect_timeout=self.s3_connect_timeout,
                read_timeout=self.s3_read_timeout,
                retries={"max_attempts": self.s3_max_attempts, "mode": "standard"},
            ),
        }
        if self.s3_endpoint_url:
            kwargs["endpoint_url"] = self.s3_endpoint_url
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return kwargs


def load_config() -> ArchiverConfig:
    """Load and validate archiver configuration."""
    return ArchiverConfig()

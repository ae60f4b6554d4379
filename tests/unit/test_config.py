"""
Unit Tests for ArchiverConfig

Tests Pydantic configuration validation: defaults, overrides, constraints,
environment loading and the client configuration helpers.
"""

import pytest
from pydantic import ValidationError

from src.consumer.config import ArchiverConfig, load_config

ENV_VARS = [
    "KAFKA_BOOTSTRAP_SERVERS",
    "KAFKA_TOPIC_CHARGEBACKS",
    "CONSUMER_GROUP_ID",
    "S3_BUCKET_NAME",
    "S3_ENDPOINT_URL",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
def test_config_defaults():
    """Test ArchiverConfig default values."""
    config = ArchiverConfig()

    # Kafka defaults
    assert config.kafka_bootstrap_servers == "localhost:9092"
    assert config.kafka_topic_chargebacks == "chargebacks"
    assert config.consumer_group_id == "chargeback-archiver"
    assert config.consumer_auto_offset_reset == "earliest"
    assert config.enable_auto_commit is False
    assert config.consumer_workers == 1

    # S3 defaults
    assert config.s3_bucket_name == "chargebacks"
    assert config.s3_endpoint_url is None
    assert config.s3_region == "us-east-1"
    assert config.s3_create_bucket is False
    assert config.archive_fallback_id == "unknown"

    # Logging defaults
    assert config.log_level == "INFO"
    assert config.log_format == "json"


@pytest.mark.unit
def test_config_custom_values():
    config = ArchiverConfig(
        kafka_bootstrap_servers="kafka:29092",
        kafka_topic_chargebacks="cb-events",
        consumer_group_id="archiver-b",
        s3_bucket_name="cb-archive",
        s3_endpoint_url="http://minio:9000",
        consumer_workers=3,
    )

    assert config.kafka_bootstrap_servers == "kafka:29092"
    assert config.kafka_topic_chargebacks == "cb-events"
    assert config.consumer_group_id == "archiver-b"
    assert config.s3_bucket_name == "cb-archive"
    assert config.s3_endpoint_url == "http://minio:9000"
    assert config.consumer_workers == 3


@pytest.mark.unit
def test_config_from_env(monkeypatch):
    """Test loading ArchiverConfig from environment variables."""
    monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:29092")
    monkeypatch.setenv("KAFKA_TOPIC_CHARGEBACKS", "env-chargebacks")
    monkeypatch.setenv("CONSUMER_GROUP_ID", "env-group")
    monkeypatch.setenv("S3_BUCKET_NAME", "env-bucket")
    monkeypatch.setenv("S3_READ_TIMEOUT", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = load_config()

    assert config.kafka_bootstrap_servers == "kafka:29092"
    assert config.kafka_topic_chargebacks == "env-chargebacks"
    assert config.consumer_group_id == "env-group"
    assert config.s3_bucket_name == "env-bucket"
    assert config.s3_read_timeout == 2.5
    assert config.log_level == "DEBUG"


@pytest.mark.unit
@pytest.mark.parametrize(
    "field,value",
    [
        ("consumer_workers", 0),
        ("consumer_workers", 100),
        ("s3_max_attempts", 0),
        ("s3_connect_timeout", 0),
        ("s3_read_timeout", -1),
        ("poll_timeout_seconds", 0),
        ("consumer_auto_offset_reset", "middle"),
        ("archive_fallback_id", ""),
    ],
)
def test_config_validation(field, value):
    with pytest.raises(ValidationError) as exc_info:
        ArchiverConfig(**{field: value})

    assert field in str(exc_info.value)


@pytest.mark.unit
def test_get_kafka_config():
    config = ArchiverConfig(
        kafka_bootstrap_servers="localhost:9092",
        consumer_group_id="test-group",
        consumer_client_id="test-consumer",
    )

    kafka_config = config.get_kafka_config()

    assert kafka_config["bootstrap.servers"] == "localhost:9092"
    assert kafka_config["group.id"] == "test-group"
    assert kafka_config["client.id"] == "test-consumer"
    assert kafka_config["auto.offset.reset"] == "earliest"
    assert kafka_config["enable.auto.commit"] is False


@pytest.mark.unit
def test_s3_kwargs_without_endpoint_use_default_chain():
    kwargs = ArchiverConfig().get_s3_client_kwargs()

    assert "endpoint_url" not in kwargs
    assert "aws_access_key_id" not in kwargs


@pytest.mark.unit
def test_s3_kwargs_with_endpoint_and_keys():
    config = ArchiverConfig(
        s3_endpoint_url="http://localhost:9000",
        aws_access_key_id="minio",
        aws_secret_access_key="minio123",
    )

    kwargs = config.get_s3_client_kwargs()

    assert kwargs["endpoint_url"] == "http://localhost:9000"
    assert kwargs["aws_access_key_id"] == "minio"
    assert kwargs["aws_secret_access_key"] == "minio123"


@pytest.mark.unit
@pytest.mark.parametrize("log_format", ["json", "text"])
def test_valid_log_formats(log_format):
    assert ArchiverConfig(log_format=log_format).log_format == log_format

"""
Pytest Configuration and Shared Fixtures

Shared fixtures for testing the chargeback archiver.

Unit tests use in-memory fakes:
- FakeMessage stands in for confluent_kafka.Message
- A MagicMock stands in for the Kafka consumer client
- botocore's Stubber stands in for S3

Integration tests use testcontainers to run a real Kafka broker and a real
S3-compatible store (MinIO).

FIXTURE SCOPES:
- session: Containers (started once, shared across all tests)
- function: Configs, clients and sample data (fresh for each test)
"""

import json
import uuid
from typing import Generator, Optional
from unittest.mock import MagicMock

import boto3
import pytest
from confluent_kafka import TopicPartition
from confluent_kafka.admin import AdminClient, NewTopic
from faker import Faker
from testcontainers.kafka import KafkaContainer
from testcontainers.minio import MinioContainer

from src.consumer.config import ArchiverConfig

# ==============================================================================
# FAKE KAFKA PRIMITIVES
# ==============================================================================


class FakeMessage:
    """Minimal stand-in for confluent_kafka.Message."""

    def __init__(
        self,
        value: Optional[bytes],
        offset: int = 0,
        partition: int = 0,
        topic: str = "chargebacks",
        key: Optional[bytes] = None,
        error=None,
    ):
        self._value = value
        self._offset = offset
        self._partition = partition
        self._topic = topic
        self._key = key
        self._error = error

    def value(self):
        return self._value

    def key(self):
        return self._key

    def offset(self):
        return self._offset

    def partition(self):
        return self._partition

    def topic(self):
        return self._topic

    def error(self):
        return self._error


@pytest.fixture
def kafka_client():
    """
    MagicMock Kafka consumer client.

    commit() echoes back the offsets it was given (no per-partition errors),
    like a successful synchronous commit.
    """
    client = MagicMock()
    client.commit.side_effect = lambda offsets=None, asynchronous=True: offsets
    client.poll.return_value = None
    return client


def committed_offsets(client) -> list:
    """(topic, partition, offset) for every commit the fake client received, in order."""
    result = []
    for call in client.commit.call_args_list:
        for tp in call.kwargs["offsets"]:
            result.append((tp.topic, tp.partition, tp.offset))
    return result


def seeks(client) -> list:
    """(topic, partition, offset) for every seek the fake client received, in order."""
    result = []
    for call in client.seek.call_args_list:
        tp: TopicPartition = call.args[0]
        result.append((tp.topic, tp.partition, tp.offset))
    return result


# ==============================================================================
# CONFIG AND SAMPLE DATA
# ==============================================================================


@pytest.fixture
def archiver_config():
    """Config for unit tests (no real broker or store is contacted)."""
    return ArchiverConfig(
        kafka_bootstrap_servers="localhost:9092",
        kafka_topic_chargebacks="chargebacks",
        consumer_group_id="test-archiver",
        s3_bucket_name="test-chargebacks",
        s3_region="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        poll_timeout_seconds=0.1,
    )


@pytest.fixture
def sample_chargeback_data():
    """A complete, valid chargeback wire payload as a dict."""
    return {
        "transaction_id": "TXN-20240315-0001",
        "chargeback_id": "CB123",
        "amount": "125.50",
        "currency": "USD",
        "merchant_id": "MERCH-001",
        "reason_code": "4837",
        "timestamp": "2024-03-15T10:30:00",
        "customer_id": "CUST-001",
        "card_last_four": "4242",
        "status": "OPEN",
    }


@pytest.fixture
def sample_payload(sample_chargeback_data) -> bytes:
    return json.dumps(sample_chargeback_data).encode("utf-8")


@pytest.fixture
def chargeback_factory():
    """Generates realistic chargeback payloads (reproducible via seed)."""
    fake = Faker()
    Faker.seed(42)

    def _make(**overrides) -> dict:
        data = {
            "transaction_id": f"TXN-{fake.unique.random_number(digits=10, fix_len=True)}",
            "chargeback_id": f"CB-{fake.unique.random_number(digits=8, fix_len=True)}",
            "amount": str(fake.pydecimal(left_digits=4, right_digits=2, positive=True)),
            "currency": fake.random_element(["USD", "EUR", "GBP"]),
            "merchant_id": f"MERCH-{fake.random_number(digits=4, fix_len=True)}",
            "reason_code": fake.random_element(["4837", "4853", "4863", "10.4", "13.1"]),
            "timestamp": fake.date_time_between("-30d", "now").isoformat(timespec="seconds"),
            "customer_id": f"CUST-{fake.random_number(digits=5, fix_len=True)}",
            "card_last_four": fake.credit_card_number()[-4:],
            "status": fake.random_element(["OPEN", "UNDER_REVIEW", "WON", "LOST"]),
        }
        data.update(overrides)
        return data

    return _make


# ==============================================================================
# CONTAINER FIXTURES
# ==============================================================================


@pytest.fixture(scope="session")
def kafka_container() -> Generator[KafkaContainer, None, None]:
    """Kafka testcontainer for the entire test session."""
    with KafkaContainer() as kafka:
        kafka.get_bootstrap_server()
        yield kafka


@pytest.fixture(scope="session")
def minio_container() -> Generator[MinioContainer, None, None]:
    """MinIO (S3-compatible) testcontainer for the entire test session."""
    with MinioContainer() as minio:
        yield minio


@pytest.fixture
def kafka_topic(kafka_container) -> str:
    """A fresh 3-partition topic per test, so tests never see each other's records."""
    topic = f"chargebacks-{uuid.uuid4().hex[:8]}"
    admin = AdminClient({"bootstrap.servers": kafka_container.get_bootstrap_server()})
    futures = admin.create_topics([NewTopic(topic, num_partitions=3, replication_factor=1)])
    futures[topic].result(timeout=30)
    return topic


@pytest.fixture
def s3_bucket(minio_container) -> str:
    """A fresh bucket per test."""
    bucket = f"chargebacks-{uuid.uuid4().hex[:8]}"
    s3_client_for(minio_container).create_bucket(Bucket=bucket)
    return bucket


def s3_client_for(minio_container):
    minio_config = minio_container.get_config()
    return boto3.client(
        "s3",
        endpoint_url=f"http://{minio_config['endpoint']}",
        aws_access_key_id=minio_config["access_key"],
        aws_secret_access_key=minio_config["secret_key"],
        region_name="us-east-1",
    )


@pytest.fixture
def s3_client(minio_container):
    """boto3 client pointed at the MinIO container (for verifying archived objects)."""
    return s3_client_for(minio_container)


@pytest.fixture
def integration_config(kafka_container, minio_container, kafka_topic, s3_bucket):
    """ArchiverConfig pointing at the test containers."""
    minio_config = minio_container.get_config()
    return ArchiverConfig(
        kafka_bootstrap_servers=kafka_container.get_bootstrap_server(),
        kafka_topic_chargebacks=kafka_topic,
        consumer_group_id=f"test-archiver-{uuid.uuid4().hex[:8]}",
        s3_bucket_name=s3_bucket,
        s3_endpoint_url=f"http://{minio_config['endpoint']}",
        s3_region="us-east-1",
        aws_access_key_id=minio_config["access_key"],
        aws_secret_access_key=minio_config["secret_key"],
        s3_read_timeout=5.0,
    )


# ==============================================================================
# TEST ENVIRONMENT CONFIGURATION
# ==============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires containers)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 5 seconds)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")

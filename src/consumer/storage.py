"""
S3 Archive Writer

This module persists decoded chargeback events as JSON objects in an
S3-compatible bucket (AWS S3, MinIO, LocalStack).

WHY ONE OBJECT PER EVENT?
- Immutable archive: objects are written once and never updated
- Hive-style keys (year=/month=/day=/hour=) let batch engines prune by time
- No coordination needed between consumer workers

WRITE PATTERN:
1. Capture the write-time clock once
2. Generate the archive key (timestamp or write time, random suffix)
3. Serialize the event to canonical JSON
4. put_object with Content-Type application/json (synchronous)
5. Any botocore failure → ArchiveWriteError (the caller does not acknowledge)

TIMEOUTS AND RETRIES:
- Bounded connect/read timeouts via botocore Config
- The SDK's own attempts are the only retries at this layer; a put that still
  fails is surfaced to the consumption loop, which relies on redelivery
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.consumer.config import ArchiverConfig
from src.consumer.faults import ArchiveWriteError
from src.consumer.keys import ArchiveKeyGenerator, utc_now
from src.consumer.models import ChargebackEvent

CONTENT_TYPE = "application/json"


class ArchiveWriter:
    """
    Writes chargeback events to the archive bucket.

    Attributes:
        config: Archiver configuration
        bucket: Target bucket name
        s3: boto3 S3 client
        key_generator: Builds the object key for each event
        clock: Write-time clock, read once per write
    """

    def __init__(
        self,
        config: ArchiverConfig,
        s3_client: Optional[Any] = None,
        key_generator: Optional[ArchiveKeyGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.bucket = config.s3_bucket_name
        self.logger = logging.getLogger(__name__)
        self.clock = clock or utc_now
        self.key_generator = key_generator or ArchiveKeyGenerator(
            fallback_id=config.archive_fallback_id,
            clock=self.clock,
        )
        self.s3 = s3_client if s3_client is not None else self._create_client()

        self.logger.info(
            "Archive writer initialized",
            extra={
                "bucket": self.bucket,
                "endpoint_url": config.s3_endpoint_url or "aws",
                "region": config.s3_region,
            },
        )

    def _create_client(self) -> Any:
        """Create the boto3 S3 client with bounded timeouts."""
        return boto3.client("s3", **self.config.get_s3_client_kwargs())

    def write(self, event: ChargebackEvent) -> str:
        """
        Archive one event.

        Args:
            event: Decoded chargeback event

        Returns:
            Object key the event was written under

        Raises:
            ArchiveWriteError: If the object store did not accept the put
        """
        now = self.clock()
        key = self.key_generator.generate(event, now=now)
        body = event.to_archive_json().encode("utf-8")

        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as e:
            self.logger.error(
                "Failed to write chargeback to archive",
                extra={
                    "chargeback_id": event.chargeback_id,
                    "bucket": self.bucket,
                    "key": key,
                    "error": str(e),
                },
            )
            raise ArchiveWriteError(
                f"Failed to write chargeback {event.chargeback_id} to s3://{self.bucket}/{key}",
                chargeback_id=event.chargeback_id,
                key=key,
            ) from e

        self.logger.debug(
            "Chargeback written to archive",
            extra={"chargeback_id": event.chargeback_id, "key": key, "bytes": len(body)},
        )
        return key

    def check_health(self) -> bool:
        """
        Check that the archive bucket is reachable.

        Returns:
            True if head_bucket succeeds, False otherwise
        """
        try:
            self.s3.head_bucket(Bucket=self.bucket)
            self.logger.debug("Archive health check passed")
            return True
        except (ClientError, BotoCoreError) as e:
            self.logger.error(
                "Archive health check failed",
                exc_info=True,
                extra={"bucket": self.bucket, "error": str(e)},
            )
            return False

    def ensure_bucket(self) -> None:
        """Create the archive bucket if it does not exist."""
        try:
            self.s3.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in ("404", "NoSuchBucket", "NotFound"):
                raise

        params: dict = {"Bucket": self.bucket}
        if self.config.s3_region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.config.s3_region}
        self.s3.create_bucket(**params)
        self.logger.info("Created archive bucket", extra={"bucket": self.bucket})

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self.logger.info("Closing archive writer")
        close = getattr(self.s3, "close", None)
        if close is not None:
            close()


# ==============================================================================
# STORAGE INITIALIZATION
# ==============================================================================


def init_storage(config: ArchiverConfig) -> ArchiveWriter:
    """
    Initialize the archive writer and verify bucket access.

    Args:
        config: Archiver configuration

    Returns:
        ArchiveWriter instance

    Raises:
        RuntimeError: If the archive bucket is not reachable
    """
    logger = logging.getLogger(__name__)

    writer = ArchiveWriter(config)

    if config.s3_create_bucket:
        try:
            writer.ensure_bucket()
        except (ClientError, BotoCoreError) as e:
            writer.close()
            raise RuntimeError(f"Could not create archive bucket {config.s3_bucket_name}") from e

    if not writer.check_health():
        writer.close()
        raise RuntimeError(f"Archive bucket {config.s3_bucket_name} is not reachable")

    logger.info("Archive storage initialized", extra={"bucket": config.s3_bucket_name})
    return writer

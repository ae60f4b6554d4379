"""
Kafka Chargeback Consumer Implementation

This module implements the Kafka consumer that reads chargeback events from
the 'chargebacks' topic and archives each one as a JSON object in S3.

KAFKA CONSUMER ARCHITECTURE:
┌─────────────────────────────────────────────────────────────────────────┐
│  Consumer Lifecycle                                                     │
├─────────────────────────────────────────────────────────────────────────┤
│  1. Subscribe to topic → Join consumer group                            │
│  2. Kafka assigns partitions (rebalancing) → cursors created            │
│  3. Poll for one record (blocking with timeout)                         │
│  4. Decode (JSON bytes → ChargebackEvent, or DECODE fault)              │
│  5. Archive (put_object to S3, synchronous)                             │
│  6. Commit offset + 1 for the record's partition                        │
│  7. On failure: skip undecodable records, rewind on write failures      │
│  8. Graceful shutdown (finish in-flight record, close clients)          │
└─────────────────────────────────────────────────────────────────────────┘

AT-LEAST-ONCE DELIVERY:
- Offset committed only AFTER the object is written
- Crash between write and commit → record redelivered and archived again
  under a different key (random suffix); duplicates are accepted
- Undecodable records are committed and skipped so a poison record can never
  stall its partition

ERROR HANDLING STRATEGY:
1. DECODE fault: log with topic/partition/offset, acknowledge, move on
2. WRITE fault: log with chargeback id, do not acknowledge, rewind partition
3. PROCESSING fault (anything unexpected): same as WRITE, so an unanticipated
   failure never loses a record
4. Fatal Kafka errors (brokers down, auth): stop the consumer
"""

import logging
import time
from typing import List, Optional

from confluent_kafka import Consumer, KafkaError, Message

from src.consumer.config import ArchiverConfig
from src.consumer.faults import (
    ArchiveWriteError,
    Fault,
    FaultKind,
    OffsetOrderError,
    RecordOutcome,
    RecordState,
)
from src.consumer.models import decode_chargeback
from src.consumer.offsets import OffsetController
from src.consumer.storage import ArchiveWriter
from src.shared.logger import RecordLogAdapter

FATAL_KAFKA_ERRORS = (
    KafkaError._ALL_BROKERS_DOWN,
    KafkaError._AUTHENTICATION,
    KafkaError.TOPIC_AUTHORIZATION_FAILED,
    KafkaError.GROUP_AUTHORIZATION_FAILED,
)

# ==============================================================================
# KAFKA CONSUMER
# ==============================================================================


class ChargebackConsumer:
    """
    Kafka consumer that archives chargeback events to S3.

    One instance is one worker: it owns one Kafka client, and therefore the
    partitions the group assigns to that client. Records are resolved one at a
    time, so a partition never has a write racing a commit.

    Attributes:
        config: Archiver configuration
        writer: Archive writer (S3)
        consumer: Confluent Kafka consumer instance
        offsets: Per-partition offset controller
        running: Flag for graceful shutdown
        messages_archived: Records written and acknowledged
        messages_skipped: Undecodable records acknowledged without a write
        messages_failed: Records left unacknowledged for redelivery
    """

    def __init__(
        self,
        config: ArchiverConfig,
        writer: ArchiveWriter,
        consumer: Optional[Consumer] = None,
        name: str = "worker-0",
    ):
        """
        Initialize Kafka consumer.

        Args:
            config: Archiver configuration
            writer: Archive writer for persistence
            consumer: Pre-built Kafka client (tests); created from config if None
            name: Worker name used in log lines
        """
        self.config = config
        self.writer = writer
        self.name = name
        self.logger = logging.getLogger(__name__)

        self.messages_archived = 0
        self.messages_skipped = 0
        self.messages_failed = 0
        self.running = False
        self._closed = False

        self.consumer = consumer if consumer is not None else self._create_consumer()
        self.offsets = OffsetController(self.consumer)

        self.consumer.subscribe(
            [config.kafka_topic_chargebacks],
            on_assign=self.offsets.on_assign,
            on_revoke=self.offsets.on_revoke,
        )

        self.logger.info(
            "Chargeback consumer initialized",
            extra={
                "worker": name,
                "topic": config.kafka_topic_chargebacks,
                "group_id": config.consumer_group_id,
                "bootstrap_servers": config.kafka_bootstrap_servers,
                "bucket": config.s3_bucket_name,
            },
        )

    def _create_consumer(self) -> Consumer:
        """Create Confluent Kafka consumer with manual offset commits."""
        kafka_config = self.config.get_kafka_config()
        kafka_config["client.id"] = f"{self.config.consumer_client_id}-{self.name}"

        self.logger.debug("Creating Kafka consumer", extra={"config": kafka_config})

        return Consumer(kafka_config)

    # ==========================================================================
    # CONSUMER LOOP
    # ==========================================================================

    def start(self) -> None:
        """
        Consume until stop() is called or a fatal Kafka error occurs.

        The record being processed when stop() is called is finished first:
        archived and acknowledged, or left unacknowledged for redelivery.
        """
        self.logger.info("Starting consumer loop...", extra={"worker": self.name})
        self.running = True

        try:
            while self.running:
                self.poll_once()
        except KeyboardInterrupt:
            self.logger.info("Received keyboard interrupt, shutting down...")
        except Exception:
            self.logger.error("Fatal error in consumer loop", exc_info=True)
            raise
        finally:
            self.close()

    def process_messages(self, max_messages: int, timeout: float = 10.0) -> List[RecordOutcome]:
        """
        Resolve up to max_messages records, or stop after timeout seconds.

        Args:
            max_messages: Number of records to resolve
            timeout: Overall time budget in seconds

        Returns:
            Outcomes of the records resolved, in delivery order
        """
        outcomes: List[RecordOutcome] = []
        deadline = time.monotonic() + timeout
        self.running = True

        while self.running and len(outcomes) < max_messages and time.monotonic() < deadline:
            outcome = self.poll_once()
            if outcome is not None:
                outcomes.append(outcome)

        self.running = False
        return outcomes

    def poll_once(self) -> Optional[RecordOutcome]:
        """Poll for one record and resolve it. Returns None if nothing arrived."""
        msg = self.consumer.poll(timeout=self.config.poll_timeout_seconds)

        if msg is None:
            return None

        if msg.error():
            self._handle_kafka_error(msg.error())
            return None

        return self.process_record(msg)

    # ==========================================================================
    # RECORD STATE MACHINE
    # ==========================================================================

    def process_record(self, msg: Message) -> RecordOutcome:
        """
        Drive one record through decode → archive → acknowledge.

        Args:
            msg: Kafka message

        Returns:
            RecordOutcome with the final state:
            - ACKNOWLEDGED: archived and committed
            - SKIPPED: undecodable, committed without a write
            - NOT_ACKED: write or processing fault, partition rewound
        """
        start_time = time.time()
        topic, partition, offset = msg.topic(), msg.partition(), msg.offset()
        record_logger = RecordLogAdapter(
            self.logger, {"topic": topic, "partition": partition, "offset": offset}
        )
        state = RecordState.RECEIVED
        chargeback_id = None

        try:
            decoded = decode_chargeback(msg.value(), topic, partition, offset)

            if not decoded.ok:
                return self._skip(decoded.fault, record_logger)

            event = decoded.event
            chargeback_id = event.chargeback_id
            state = RecordState.DECODED
            record_logger = record_logger.with_chargeback(chargeback_id)

            record_logger.debug(
                "Received chargeback",
                extra={"transaction_id": event.transaction_id},
            )

            key = self.writer.write(event)
            state = RecordState.ARCHIVED

        except ArchiveWriteError as e:
            fault = Fault(
                kind=FaultKind.WRITE,
                topic=topic,
                partition=partition,
                offset=offset,
                reason=str(e),
                chargeback_id=chargeback_id,
                error=e,
            )
            return self._not_acked(fault, record_logger)

        except Exception as e:
            fault = Fault(
                kind=FaultKind.PROCESSING,
                topic=topic,
                partition=partition,
                offset=offset,
                reason=f"unexpected error after {state.value}: {type(e).__name__}: {e}",
                chargeback_id=chargeback_id,
                error=e,
            )
            return self._not_acked(fault, record_logger, exc_info=True)

        if not self._acknowledge(topic, partition, offset, record_logger):
            # Object is in the store; the record will be redelivered and
            # archived again under a new key
            self.messages_failed += 1
            record_logger.warning("Chargeback archived but offset not committed", extra={"key": key})
            return RecordOutcome(RecordState.ARCHIVED, topic, partition, offset, key=key)

        self.messages_archived += 1
        record_logger.info(
            "Chargeback archived",
            extra={
                "key": key,
                "processing_time_ms": round((time.time() - start_time) * 1000, 2),
                "messages_archived": self.messages_archived,
            },
        )
        return RecordOutcome(RecordState.ACKNOWLEDGED, topic, partition, offset, key=key)

    def _skip(self, fault: Fault, record_logger: RecordLogAdapter) -> RecordOutcome:
        """DECODE_FAILED → SKIPPED: log and acknowledge so the partition keeps moving."""
        record_logger.error(
            "Failed to decode chargeback record, skipping", extra=fault.log_context()
        )

        if not self._acknowledge(fault.topic, fault.partition, fault.offset, record_logger):
            return RecordOutcome(
                RecordState.DECODE_FAILED, fault.topic, fault.partition, fault.offset, fault=fault
            )

        self.messages_skipped += 1
        return RecordOutcome(
            RecordState.SKIPPED, fault.topic, fault.partition, fault.offset, fault=fault
        )

    def _acknowledge(
        self, topic: str, partition: int, offset: int, record_logger: RecordLogAdapter
    ) -> bool:
        try:
            return self.offsets.acknowledge(topic, partition, offset)
        except OffsetOrderError:
            blocked_at = self.offsets.cursor(topic, partition).blocked_at
            record_logger.error(
                "Record arrived ahead of an unacknowledged record, rewinding",
                exc_info=True,
                extra={"blocked_at": blocked_at},
            )
            self.offsets.rewind(topic, partition, blocked_at)
            return False

    def _not_acked(
        self, fault: Fault, record_logger: RecordLogAdapter, exc_info: bool = False
    ) -> RecordOutcome:
        """ARCHIVE_FAILED → NOT_ACKED: leave the offset alone and rewind for redelivery."""
        self.messages_failed += 1
        record_logger.error(
            "Failed to archive chargeback, leaving offset uncommitted",
            exc_info=exc_info,
            extra={**fault.log_context(), "messages_failed": self.messages_failed},
        )

        self.offsets.rewind(fault.topic, fault.partition, fault.offset)

        return RecordOutcome(
            RecordState.NOT_ACKED, fault.topic, fault.partition, fault.offset, fault=fault
        )

    # ==========================================================================
    # KAFKA ERRORS AND SHUTDOWN
    # ==========================================================================

    def _handle_kafka_error(self, error: KafkaError) -> None:
        """
        Handle Kafka-specific errors.

        KAFKA ERROR TYPES:
        - _PARTITION_EOF: Reached end of partition (normal, not an error)
        - _ALL_BROKERS_DOWN: No brokers available (fatal)
        - _AUTHENTICATION: Authentication failed (fatal)
        - TOPIC/GROUP_AUTHORIZATION_FAILED: Not authorized (fatal)
        """
        if error.code() == KafkaError._PARTITION_EOF:
            self.logger.debug("Reached end of partition")
            return

        self.logger.error(
            f"Kafka error: {error.str()}",
            extra={
                "worker": self.name,
                "error_code": error.code(),
                "error_name": error.name(),
            },
        )

        if error.code() in FATAL_KAFKA_ERRORS:
            self.logger.critical("Fatal Kafka error, shutting down", extra={"worker": self.name})
            self.stop()

    def stop(self) -> None:
        """
        Signal consumer to stop gracefully.

        The loop finishes the current record, then exits.
        """
        self.logger.info("Stopping consumer...", extra={"worker": self.name})
        self.running = False

    def close(self) -> None:
        """Close the Kafka consumer. Uncommitted records are redelivered to the next owner."""
        if self._closed:
            return
        self._closed = True

        self.logger.info(
            "Consumer shutting down",
            extra={
                "worker": self.name,
                "messages_archived": self.messages_archived,
                "messages_skipped": self.messages_skipped,
                "messages_failed": self.messages_failed,
            },
        )

        try:
            self.consumer.close()
            self.logger.info("Kafka consumer closed", extra={"worker": self.name})
        except Exception:
            self.logger.error("Error closing Kafka consumer", exc_info=True)

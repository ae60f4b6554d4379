"""
Per-Partition Offset Tracking

The offset controller is the only place offsets are committed. It keeps one
cursor per assigned partition and advances a cursor only through a
successful synchronous commit.

OFFSET RULES:
- Commit offset + 1 (the next record to read), never the record's own offset
- Commit only after the record is archived, or after it was skipped as
  undecodable
- A record left unacknowledged blocks its partition: no later offset on that
  partition may be committed until the blocked record is acknowledged
- Partitions are independent; there is no ordering across partitions

REDELIVERY:
Not committing is not enough on its own: the client has already moved its
fetch position past the record. rewind() seeks the partition back to the
failed offset, which also drops any records the client prefetched after it,
so the next poll returns the same record again.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from confluent_kafka import Consumer, KafkaException, TopicPartition

from src.consumer.faults import OffsetOrderError


@dataclass
class PartitionCursor:
    """
    Commit position for one topic partition.

    Attributes:
        topic: Topic name
        partition: Partition number
        committed: Next offset to consume, as last committed by this worker
        blocked_at: Offset of a record left unacknowledged, if any
    """

    topic: str
    partition: int
    committed: Optional[int] = None
    blocked_at: Optional[int] = None

    def check_advance(self, offset: int) -> None:
        """Raise OffsetOrderError if acknowledging offset would break ordering."""
        if self.blocked_at is not None and offset > self.blocked_at:
            raise OffsetOrderError(
                f"{self.topic}[{self.partition}]: cannot acknowledge offset {offset} "
                f"while offset {self.blocked_at} is unacknowledged"
            )
        if self.committed is not None and offset + 1 < self.committed:
            raise OffsetOrderError(
                f"{self.topic}[{self.partition}]: cannot move committed offset "
                f"back from {self.committed} to {offset + 1}"
            )

    def advance(self, offset: int) -> None:
        self.check_advance(offset)
        self.committed = offset + 1
        self.blocked_at = None

    def block(self, offset: int) -> None:
        if self.blocked_at is None or offset < self.blocked_at:
            self.blocked_at = offset


class OffsetController:
    """
    Owns the per-partition cursors of one Kafka consumer.

    Also serves as the rebalance listener: pass on_assign/on_revoke to
    Consumer.subscribe() so cursors follow partition ownership.
    """

    def __init__(self, consumer: Consumer):
        self.consumer = consumer
        self.cursors: Dict[Tuple[str, int], PartitionCursor] = {}
        self.logger = logging.getLogger(__name__)

    def cursor(self, topic: str, partition: int) -> PartitionCursor:
        key = (topic, partition)
        if key not in self.cursors:
            self.cursors[key] = PartitionCursor(topic=topic, partition=partition)
        return self.cursors[key]

    def committed(self, topic: str, partition: int) -> Optional[int]:
        """Next offset to consume on a partition, as committed by this worker."""
        cursor = self.cursors.get((topic, partition))
        return cursor.committed if cursor else None

    def acknowledge(self, topic: str, partition: int, offset: int) -> bool:
        """
        Synchronously commit offset + 1 for a partition.

        Args:
            topic: Topic of the record
            partition: Partition of the record
            offset: Offset of the record that was archived or skipped

        Returns:
            True if the broker accepted the commit, False otherwise. On False
            the cursor is unchanged and the record will be redelivered after
            the next rebalance or restart.

        Raises:
            OffsetOrderError: If an earlier record on the partition is still
                unacknowledged
        """
        cursor = self.cursor(topic, partition)
        cursor.check_advance(offset)

        try:
            results = self.consumer.commit(
                offsets=[TopicPartition(topic, partition, offset + 1)],
                asynchronous=False,
            )
        except KafkaException as e:
            self.logger.error(
                "Offset commit failed",
                extra={"topic": topic, "partition": partition, "offset": offset, "error": str(e)},
            )
            return False

        for result in results or []:
            if result.error is not None:
                self.logger.error(
                    "Offset commit rejected for partition",
                    extra={
                        "topic": topic,
                        "partition": partition,
                        "offset": offset,
                        "error": str(result.error),
                    },
                )
                return False

        cursor.advance(offset)
        self.logger.debug(
            "Offset committed",
            extra={"topic": topic, "partition": partition, "committed": cursor.committed},
        )
        return True

    def rewind(self, topic: str, partition: int, offset: int) -> None:
        """
        Seek a partition back to an unacknowledged record for redelivery.

        Args:
            topic: Topic of the record
            partition: Partition of the record
            offset: Offset of the record to redeliver
        """
        self.cursor(topic, partition).block(offset)
        try:
            self.consumer.seek(TopicPartition(topic, partition, offset))
        except KafkaException as e:
            # the partition was probably revoked; the new owner resumes
            # from the last committed offset anyway
            self.logger.warning(
                "Seek for redelivery failed",
                extra={"topic": topic, "partition": partition, "offset": offset, "error": str(e)},
            )

    # ==========================================================================
    # REBALANCE CALLBACKS
    # ==========================================================================

    def on_assign(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        for tp in partitions:
            self.cursors[(tp.topic, tp.partition)] = PartitionCursor(tp.topic, tp.partition)
        self.logger.info(
            "Partitions assigned",
            extra={"partitions": [f"{tp.topic}[{tp.partition}]" for tp in partitions]},
        )

    def on_revoke(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        for tp in partitions:
            self.cursors.pop((tp.topic, tp.partition), None)
        self.logger.info(
            "Partitions revoked",
            extra={"partitions": [f"{tp.topic}[{tp.partition}]" for tp in partitions]},
        )

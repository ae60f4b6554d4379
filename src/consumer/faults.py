"""
Fault Taxonomy and Record Outcomes

Every record pulled from the chargebacks topic ends in exactly one outcome.
Failures are carried as tagged values instead of being told apart by
exception type, so the consumption loop branches on ``fault.kind``.

FAULT KINDS:
┌────────────┬───────────┬──────────────────────────────────────────────┐
│ Kind       │ Retryable │ Offset handling                              │
├────────────┼───────────┼──────────────────────────────────────────────┤
│ DECODE     │ no        │ acknowledged, record skipped for good        │
│ WRITE      │ yes       │ not acknowledged, redelivered                │
│ PROCESSING │ yes       │ not acknowledged, redelivered                │
└────────────┴───────────┴──────────────────────────────────────────────┘

RECORD STATE MACHINE:
    RECEIVED → DECODED → ARCHIVED → ACKNOWLEDGED
    RECEIVED → DECODE_FAILED → SKIPPED
    DECODED  → ARCHIVE_FAILED → NOT_ACKED
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FaultKind(str, Enum):
    """Classification of a failed record."""

    DECODE = "decode"
    WRITE = "write"
    PROCESSING = "processing"

    @property
    def retryable(self) -> bool:
        # The same bytes never decode differently
        return self is not FaultKind.DECODE


class RecordState(str, Enum):
    """States a record passes through inside the consumption loop."""

    RECEIVED = "received"
    DECODED = "decoded"
    ARCHIVED = "archived"
    ACKNOWLEDGED = "acknowledged"
    DECODE_FAILED = "decode_failed"
    SKIPPED = "skipped"
    ARCHIVE_FAILED = "archive_failed"
    NOT_ACKED = "not_acked"


@dataclass(frozen=True)
class Fault:
    """
    A classified failure plus the record context needed to log it.

    Attributes:
        kind: DECODE, WRITE or PROCESSING
        topic: Kafka topic of the record
        partition: Kafka partition of the record
        offset: Offset of the record within its partition
        reason: Short human-readable description
        chargeback_id: Logical event identity, when the record decoded
        error: Underlying exception, if any
    """

    kind: FaultKind
    topic: Optional[str]
    partition: Optional[int]
    offset: Optional[int]
    reason: str
    chargeback_id: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def log_context(self) -> dict:
        """Fields attached to the log line for this fault."""
        context = {
            "fault": self.kind.value,
            "topic": self.topic,
            "partition": self.partition,
            "offset": self.offset,
            "reason": self.reason,
            "retryable": self.retryable,
        }
        if self.chargeback_id is not None:
            context["chargeback_id"] = self.chargeback_id
        return context


@dataclass(frozen=True)
class RecordOutcome:
    """Final state of one record after the consumption loop resolved it."""

    state: RecordState
    topic: Optional[str]
    partition: Optional[int]
    offset: Optional[int]
    key: Optional[str] = None
    fault: Optional[Fault] = None

    @property
    def acknowledged(self) -> bool:
        return self.state in (RecordState.ACKNOWLEDGED, RecordState.SKIPPED)


class ArchiveWriteError(Exception):
    """
    Raised by the archive writer when a put to the object store fails.

    Network, authorization, timeout and store-side errors all surface as this
    single type. The original botocore error is chained as ``__cause__``.
    """

    def __init__(self, message: str, chargeback_id: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.chargeback_id = chargeback_id
        self.key = key


class OffsetOrderError(Exception):
    """Raised when a partition cursor would move backwards or skip a record."""

"""
Archive Key Generation

Builds the object key an event is archived under. Keys are Hive-style
time partitions so batch engines (Athena, Spark, Trino) can prune by date:

    year=2024/month=03/day=15/hour=10/CB123_1a2b3c4d.json

KEY RULES:
- Date segments come from the event timestamp, or from the write-time clock
  when the event has none
- Aware timestamps are converted to UTC; naive timestamps are taken as UTC.
  An aware timestamp whose UTC instant is out of range keeps its wall-clock value
- The 8-character random suffix keeps redelivered copies of the same
  chargeback from overwriting each other. It is not an idempotency key:
  archive readers must expect duplicate logical records under distinct keys
- A missing or blank chargeback_id is replaced by a fixed placeholder
- Key generation never raises
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from src.consumer.models import ChargebackEvent

DEFAULT_FALLBACK_ID = "unknown"
SUFFIX_LENGTH = 8


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def random_suffix() -> str:
    return uuid.uuid4().hex[:SUFFIX_LENGTH]


class ArchiveKeyGenerator:
    """
    Derives time-partitioned archive keys for chargeback events.

    Attributes:
        fallback_id: Filename stem used when the event has no chargeback_id
        clock: Returns the current time; read at most once per key
        suffix_factory: Returns the random filename suffix
    """

    def __init__(
        self,
        fallback_id: str = DEFAULT_FALLBACK_ID,
        clock: Callable[[], datetime] = utc_now,
        suffix_factory: Callable[[], str] = random_suffix,
    ):
        self.fallback_id = fallback_id or DEFAULT_FALLBACK_ID
        self.clock = clock
        self.suffix_factory = suffix_factory

    def generate(self, event: ChargebackEvent, now: Optional[datetime] = None) -> str:
        """
        Generate the archive key for an event.

        Args:
            event: Decoded chargeback event
            now: Write-time clock reading, captured once by the writer. Read
                from self.clock only if the event has no timestamp and the
                caller supplied none.

        Returns:
            Object key, e.g. "year=2024/month=03/day=15/hour=10/CB123_1a2b3c4d.json"
        """
        moment = event.timestamp
        if moment is None:
            moment = now if now is not None else self.clock()
        moment = self._to_utc(moment)

        filename = f"{self._identity(event)}_{self.suffix_factory()}.json"

        return (
            f"year={moment.year:04d}/month={moment.month:02d}/"
            f"day={moment.day:02d}/hour={moment.hour:02d}/{filename}"
        )

    @staticmethod
    def _to_utc(moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return moment
        try:
            return moment.astimezone(timezone.utc)
        except OverflowError:
            # the UTC instant falls outside year 1..9999; keep the wall-clock value
            return moment.replace(tzinfo=None)

    def _identity(self, event: ChargebackEvent) -> str:
        chargeback_id = (event.chargeback_id or "").strip()
        if not chargeback_id:
            return self.fallback_id
        # an id must never introduce extra key segments
        return chargeback_id.replace("/", "_").replace("\\", "_")

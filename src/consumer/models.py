"""
Chargeback Event Model and Decoder

This module defines the event consumed from the 'chargebacks' Kafka topic and
the decoder that turns raw record bytes into it.

WHY PYDANTIC FOR THE WIRE MODEL?
- Parsing and validation in one step (JSON bytes → typed object)
- Decimal amounts parsed exactly, ISO-8601 timestamps parsed to datetime
- Unknown fields ignored (producers can add fields without breaking us)
- Frozen models: an event is never mutated after it is decoded

DECODE CONTRACT:
- decode_chargeback() is a pure function of the payload bytes
- It never raises: it returns a DecodeResult holding either the event or a
  DECODE fault
- Tombstones (None), empty payloads, invalid UTF-8, malformed or truncated
  JSON, non-object documents and type mismatches are all DECODE faults
"""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from src.consumer.faults import Fault, FaultKind

NUMERIC_STRING = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")

# ==============================================================================
# CHARGEBACK EVENT
# ==============================================================================


class ChargebackEvent(BaseModel):
    """
    A chargeback event as published on the chargebacks topic.

    Every field is optional. chargeback_id should be present for traceability,
    but its absence is handled by the key generator, not rejected here.

    Attributes:
        transaction_id: External transaction reference
        chargeback_id: Logical identity of the archived object
        amount: Disputed amount (arbitrary precision)
        currency: ISO currency code (not validated)
        merchant_id: Merchant the chargeback was raised against
        reason_code: Card network reason code
        timestamp: Event time; the key generator falls back to write time
        customer_id: Cardholder reference
        card_last_four: Last four digits of the card
        status: Chargeback lifecycle status
    """

    # numbers are not coerced to str: "chargeback_id": 123 is a type mismatch
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=False)

    transaction_id: Optional[str] = None
    chargeback_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    merchant_id: Optional[str] = None
    reason_code: Optional[str] = None
    timestamp: Optional[datetime] = None
    customer_id: Optional[str] = None
    card_last_four: Optional[str] = None
    status: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def reject_epoch_timestamp(cls, value):
        """Only ISO-8601 strings are timestamps; Unix epochs are a type mismatch."""
        if isinstance(value, (bool, int, float)) or (
            isinstance(value, str) and NUMERIC_STRING.match(value)
        ):
            raise ValueError("timestamp must be an ISO-8601 string, not a number")
        return value

    def to_archive_json(self) -> str:
        """
        Canonical JSON body written to the archive.

        Field names are the snake_case wire names. Absent fields are written
        as null. amount is written as a decimal string (no float rounding),
        timestamp as an ISO-8601 string.
        """
        return self.model_dump_json()

    def __str__(self) -> str:
        return f"Chargeback {self.chargeback_id} - {self.transaction_id} - {self.amount} {self.currency}"


# ==============================================================================
# DECODER
# ==============================================================================


@dataclass(frozen=True)
class DecodeResult:
    """Either a decoded event or a DECODE fault, never both."""

    event: Optional[ChargebackEvent] = None
    fault: Optional[Fault] = None

    @property
    def ok(self) -> bool:
        return self.event is not None


def decode_chargeback(
    payload: Optional[bytes],
    topic: Optional[str] = None,
    partition: Optional[int] = None,
    offset: Optional[int] = None,
) -> DecodeResult:
    """
    Decode one Kafka record value into a ChargebackEvent.

    Args:
        payload: Raw record value (None for tombstones)
        topic: Topic the record came from (fault context only)
        partition: Partition the record came from (fault context only)
        offset: Offset of the record (fault context only)

    Returns:
        DecodeResult with the event, or with a DECODE fault describing why the
        payload can never be decoded

    Example:
        >>> result = decode_chargeback(b'{"chargeback_id": "CB123"}')
        >>> result.event.chargeback_id
        'CB123'
        >>> decode_chargeback(b"{ not json").fault.kind
        <FaultKind.DECODE: 'decode'>
    """

    def _fault(reason: str, error: Optional[BaseException] = None) -> DecodeResult:
        return DecodeResult(
            fault=Fault(
                kind=FaultKind.DECODE,
                topic=topic,
                partition=partition,
                offset=offset,
                reason=reason,
                error=error,
            )
        )

    if payload is None:
        return _fault("record has no payload")

    if not payload.strip():
        return _fault("record payload is empty")

    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        return _fault("payload is not valid UTF-8", e)

    try:
        event = ChargebackEvent.model_validate_json(text)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        return _fault(f"{location}: {first.get('msg', 'invalid payload')}", e)

    return DecodeResult(event=event)

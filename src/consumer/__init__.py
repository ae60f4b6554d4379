"""
Chargeback Archiver Package

This package implements the Kafka consumer service that:
1. Subscribes to the 'chargebacks' Kafka topic
2. Decodes each record into a ChargebackEvent (skipping poison records)
3. Writes each event as one JSON object to an S3 bucket
4. Commits the record's offset only after the object is written
5. Provides at-least-once delivery (duplicates possible, losses not)

ARCHITECTURE:
┌─────────────┐     ┌──────────────────┐     ┌──────────────────────────┐
│   Kafka     │────▶│  Archiver        │────▶│  S3 bucket               │
│ chargebacks │     │  (N workers)     │     │  year=/month=/day=/hour= │
└─────────────┘     └──────────────────┘     └──────────────────────────┘

OFFSET MANAGEMENT:
1. Poll one record
2. Decode → archive
3. Commit offset + 1 ONLY if archived (or skipped as undecodable)
4. On write failure: no commit, seek back → record redelivered

Package components:
- config.py: Configuration from environment variables
- models.py: ChargebackEvent and the payload decoder
- faults.py: Fault taxonomy and record outcomes
- keys.py: Time-partitioned archive keys
- storage.py: S3 archive writer
- offsets.py: Per-partition offset cursors and commits
- consumer.py: Kafka consumption loop
- main.py: Entry point with CLI and shutdown handling
"""

__version__ = "1.0.0"

from src.consumer.config import ArchiverConfig, load_config

__all__ = [
    "ArchiverConfig",
    "load_config",
]

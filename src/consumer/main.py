"""
Chargeback Archiver Service - Main Entry Point

Command-line interface and main entry point for the Kafka → S3 chargeback
archiver.

USAGE:
    python -m src.consumer.main [options]

OPTIONS:
    --log-level    Logging level (DEBUG, INFO, WARNING, ERROR)
    --log-format   Log format (json or text)
    --workers      Consumer threads (one Kafka client, one set of partitions each)
    --help         Show help message

ENVIRONMENT VARIABLES:
    See src/consumer/config.py for the full list:
    - KAFKA_BOOTSTRAP_SERVERS: Kafka broker addresses
    - KAFKA_TOPIC_CHARGEBACKS: Topic to consume from
    - CONSUMER_GROUP_ID: Consumer group identifier
    - S3_BUCKET_NAME: Archive bucket
    - S3_ENDPOINT_URL: Custom S3 endpoint (MinIO, LocalStack)
    - LOG_LEVEL / LOG_FORMAT: Logging

GRACEFUL SHUTDOWN:
- Handles SIGINT (Ctrl+C) and SIGTERM (Docker stop, Kubernetes)
- Every worker finishes its in-flight record
- Unacknowledged records stay uncommitted and are redelivered later
- Kafka consumers and the S3 client are closed
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List

from pydantic import ValidationError

from src.consumer.config import ArchiverConfig, load_config
from src.consumer.consumer import ChargebackConsumer
from src.consumer.storage import init_storage
from src.shared.logger import setup_logger

# ==============================================================================
# GLOBAL STATE
# ==============================================================================
# Workers must be reachable from the signal handler

workers: List[ChargebackConsumer] = []

# ==============================================================================
# SIGNAL HANDLERS
# ==============================================================================


def signal_handler(signum: int, frame) -> None:
    """Stop every worker after its current record (SIGINT, SIGTERM)."""
    signal_name = signal.Signals(signum).name

    logger = logging.getLogger(__name__)
    logger.info(f"Received {signal_name}, initiating graceful shutdown...")

    for worker in workers:
        worker.stop()


# ==============================================================================
# CLI ARGUMENT PARSING
# ==============================================================================


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Kafka Chargeback Archiver Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start archiver with default settings
  python -m src.consumer.main

  # Start with debug logging and plain text output
  python -m src.consumer.main --log-level DEBUG --log-format text

  # Three consumer threads (useful for a topic with 3+ partitions)
  python -m src.consumer.main --workers 3

Environment Variables:
  KAFKA_BOOTSTRAP_SERVERS    Kafka broker addresses (default: localhost:9092)
  KAFKA_TOPIC_CHARGEBACKS    Topic to consume (default: chargebacks)
  CONSUMER_GROUP_ID          Consumer group (default: chargeback-archiver)
  S3_BUCKET_NAME             Archive bucket (default: chargebacks)
  S3_REGION                  Bucket region (default: us-east-1)
  S3_ENDPOINT_URL            Custom S3 endpoint (default: AWS)
  LOG_LEVEL                  Logging level (default: INFO)
  LOG_FORMAT                 Log format: json or text (default: json)

Signals:
  SIGINT (Ctrl+C)            Graceful shutdown
  SIGTERM (Docker stop)      Graceful shutdown
        """,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL env var)",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Log output format (overrides LOG_FORMAT env var)",
    )

    parser.add_argument(
        "--workers",
        type=int,
        help="Number of consumer threads (overrides CONSUMER_WORKERS env var)",
    )

    return parser.parse_args(argv)


# ==============================================================================
# MAIN FUNCTION
# ==============================================================================


def _run_worker(worker: ChargebackConsumer, failures: List[str]) -> None:
    try:
        worker.start()
    except Exception:
        logging.getLogger(__name__).error(
            "Worker stopped with an error", exc_info=True, extra={"worker": worker.name}
        )
        failures.append(worker.name)


def main(argv=None) -> int:
    """
    Main entry point for the chargeback archiver.

    Returns:
        Exit code (0 = clean shutdown, 1 = startup or fatal error)

    STARTUP SEQUENCE:
    1. Parse CLI arguments
    2. Load configuration from environment
    3. Set up structured logging
    4. Initialize S3 archive writer (verifies bucket access)
    5. Create one Kafka consumer per worker
    6. Register signal handlers
    7. Run workers until shutdown
    """
    args = parse_args(argv)

    try:
        config = load_config()
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    if args.workers is not None:
        overrides["consumer_workers"] = args.workers
    if overrides:
        try:
            config = ArchiverConfig.model_validate({**config.model_dump(), **overrides})
        except ValidationError as e:
            print(f"ERROR: Invalid command-line option: {e}", file=sys.stderr)
            return 1

    logger = setup_logger(
        name=__name__,
        service_name="chargeback-archiver",
        log_level=config.log_level,
        log_format=config.log_format,
    )

    logger.info(
        "Starting Chargeback Archiver Service",
        extra={
            "kafka_bootstrap_servers": config.kafka_bootstrap_servers,
            "kafka_topic": config.kafka_topic_chargebacks,
            "consumer_group": config.consumer_group_id,
            "bucket": config.s3_bucket_name,
            "workers": config.consumer_workers,
            "log_level": config.log_level,
            "log_format": config.log_format,
        },
    )

    try:
        writer = init_storage(config)
    except Exception:
        logger.error("Failed to initialize archive storage", exc_info=True)
        return 1

    try:
        for index in range(config.consumer_workers):
            workers.append(ChargebackConsumer(config, writer, name=f"worker-{index}"))
        logger.info("Kafka consumers created", extra={"workers": len(workers)})
    except Exception:
        logger.error("Failed to create Kafka consumer", exc_info=True)
        for worker in workers:
            worker.close()
        writer.close()
        return 1

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    logger.info("Signal handlers registered (SIGINT, SIGTERM)")

    failures: List[str] = []
    threads = [
        threading.Thread(target=_run_worker, args=(worker, failures), name=worker.name)
        for worker in workers
    ]

    logger.info("Archiver starting, press Ctrl+C to stop...")
    for thread in threads:
        thread.start()

    # join with a timeout so the main thread stays responsive to signals
    while any(thread.is_alive() for thread in threads):
        for thread in threads:
            thread.join(timeout=0.5)
        if failures:
            # one worker died; stop the others so the process can restart cleanly
            for worker in workers:
                worker.stop()

    writer.close()

    if failures:
        logger.error("Archiver stopped after worker failure", extra={"failed_workers": failures})
        return 1

    logger.info("Archiver stopped")
    return 0


# ==============================================================================
# ENTRY POINT
# ==============================================================================

if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
RQ Worker Startup Script
Starts an RQ worker that executes outfit job runs (JOB_DISPATCH_MODE=rq).
Run one process per worker; scale out by starting more of them.

Usage:
    python scripts/run_workers.py                    # Listen on JOB_QUEUE
    python scripts/run_workers.py --burst            # Drain the queue and exit
    python scripts/run_workers.py --check            # Check Redis and exit
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rq import Worker, Queue

from app.core.config import Settings, get_settings
from app.core.redis import RedisManager


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("rq.worker")


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Start an RQ worker for outfit jobs")
    parser.add_argument(
        "--queues", "-q",
        nargs="+",
        default=[settings.JOB_QUEUE],
        help=f"Queue names to listen to (default: {settings.JOB_QUEUE})"
    )
    parser.add_argument("--name", "-n", default=None, help="Worker name")
    parser.add_argument(
        "--burst", "-b",
        action="store_true",
        help="Run in burst mode (exit when queue is empty)"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check Redis connection and exit"
    )
    return parser


def start_worker(redis_manager: RedisManager, queues: List[str], worker_name: Optional[str] = None, burst: bool = False):
    """Run one RQ worker on ``queues`` until stopped (or drained, with ``burst``)."""
    redis_conn = redis_manager.get_connection()

    worker = Worker(
        queues=[Queue(name, connection=redis_conn) for name in queues],
        connection=redis_conn,
        name=worker_name,
        log_job_description=True,
    )

    logger.info(f"Worker {worker_name or 'default'} starting on queues: {queues}")
    worker.work(burst=burst)


def main(argv: Optional[List[str]] = None):
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    redis_manager = RedisManager(settings)

    health = redis_manager.health_check()
    if args.check:
        print(f"Redis Status: {health}")
        sys.exit(0 if health.get("connected") else 1)

    if not health.get("connected"):
        logger.error(f"Cannot connect to Redis at {health.get('url')}: {health.get('error')}")
        sys.exit(1)

    logger.info(f"Redis connected: {health.get('redis_version')}")
    start_worker(redis_manager, args.queues, args.name, args.burst)


if __name__ == "__main__":
    main()

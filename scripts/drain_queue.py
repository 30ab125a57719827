"""Drain the deferred action queue once, or on a fixed interval.

Usage:
    python scripts/drain_queue.py
    python scripts/drain_queue.py --interval 300

Prints ``processed=<n> remaining=<m>`` after every drain. A drain that fails
is logged; in interval mode the loop keeps running, otherwise the exit code
is 1.
"""

from __future__ import annotations

import argparse
import sys
import time
from uuid import uuid4

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from franchise_approval.components import build_components
from franchise_approval.config import get_settings
from franchise_approval.logging_config import configure_logging
from franchise_approval.registrations.queue import DeferredQueueProcessor, DrainReport


def drain_once(processor: DeferredQueueProcessor) -> DrainReport:
    bind_contextvars(trace_id=str(uuid4()))
    try:
        return processor.drain()
    finally:
        unbind_contextvars("trace_id")


def format_report(report: DrainReport) -> str:
    return f"processed={report.processed} remaining={report.remaining}"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Keep running and drain every INTERVAL seconds (default: drain once and exit).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.interval is not None and args.interval <= 0:
        print("--interval must be greater than zero", file=sys.stderr)
        return 2

    configure_logging()
    components = build_components(get_settings())

    while True:
        try:
            report = drain_once(components.processor)
        except Exception:
            structlog.get_logger().exception("drain_failed")
            if args.interval is None:
                return 1
        else:
            print(format_report(report), flush=True)
            if args.interval is None:
                return 0
        try:
            time.sleep(args.interval)
        except KeyboardInterrupt:
            structlog.get_logger().info("drain_loop_stopped")
            return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""Invoke the certificate lifecycle handler locally with a JSON event file."""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from x509_lifecycle.lambda_handlers.dispatcher import handler

# Paths
PROJECT_ROOT = Path(__file__).parent.parent
EVENTS_DIR = PROJECT_ROOT / "events"


class LocalContext:
    """Minimal stand-in for the Lambda context object."""

    log_stream_name = "local"

    def __init__(self, timeout_seconds: float):
        self._deadline = time.monotonic() + timeout_seconds

    def get_remaining_time_in_millis(self) -> int:
        return int((self._deadline - time.monotonic()) * 1000)


def load_event(path: Path, stack_name: str) -> dict:
    """Load an event file, filling in the fields CloudFormation would add."""
    with path.open() as f:
        event = json.load(f)

    event.setdefault("RequestType", "Create")
    event.setdefault(
        "StackId",
        f"arn:aws:cloudformation:us-west-2:123456789012:stack/{stack_name}/local",
    )
    event.setdefault("RequestId", f"local-{int(time.time())}")
    return event


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("event", type=Path, help="Path to a JSON lifecycle event")
    parser.add_argument(
        "--stack-name",
        default="local",
        help="Stack name used for secret naming when the event has no StackId",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Simulated Lambda timeout in seconds (default: no deadline)",
    )
    args = parser.parse_args()

    # AWS_PROFILE, AWS_REGION and handler settings for local runs
    load_dotenv()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    event_path = args.event
    if not event_path.exists() and (EVENTS_DIR / event_path).exists():
        event_path = EVENTS_DIR / event_path

    event = load_event(event_path, args.stack_name)
    context = LocalContext(args.timeout) if args.timeout else None

    result = handler(event, context)
    print(json.dumps(result, indent=2))
    return 0 if result["Status"] == "SUCCESS" else 1


if __name__ == "__main__":
    sys.exit(main())

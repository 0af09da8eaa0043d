"""Delivery of the response envelope to the pre-signed ResponseURL."""

import json
import logging
import time

import httpx

from x509_lifecycle.models import ResponseEnvelope

logger = logging.getLogger(__name__)

# CloudFormation rejects response bodies over 4 KiB
MAX_RESPONSE_BYTES = 4096
TRUNCATION_MARKER = "..."
DEFAULT_TIMEOUT = 30.0
RETRY_DELAY = 1.0


def encode_body(envelope: ResponseEnvelope) -> bytes:
    return json.dumps(envelope.to_payload()).encode("utf-8")


def fit_reason(envelope: ResponseEnvelope) -> ResponseEnvelope:
    """Shorten ``Reason`` until the encoded envelope fits the size limit."""
    excess = len(encode_body(envelope)) - MAX_RESPONSE_BYTES
    if excess <= 0:
        return envelope

    reason = envelope.reason
    while excess > 0 and reason:
        keep = max(len(reason) - excess - len(TRUNCATION_MARKER), 0)
        reason = reason[:keep]
        envelope = envelope.model_copy(update={"reason": reason + TRUNCATION_MARKER})
        excess = len(encode_body(envelope)) - MAX_RESPONSE_BYTES

    return envelope


def send_response(
    response_url: str,
    envelope: ResponseEnvelope,
    max_attempts: int = 3,
    timeout: float = DEFAULT_TIMEOUT,
    deadline: float | None = None,
    sleep=time.sleep,
    clock=time.monotonic,
) -> bool:
    """
    PUT the envelope to the orchestrator.

    The pre-signed URL is signed for an empty Content-Type, so the header is
    sent explicitly empty. With a deadline, each attempt's timeout is capped
    at the time left and no backoff sleep runs past it.

    Args:
        response_url: Pre-signed S3 URL from the event
        envelope: Response to deliver
        max_attempts: Attempts before giving up
        timeout: Request timeout in seconds
        deadline: ``clock()`` value delivery must finish by, or None
        sleep: Delay function (replaced in tests)
        clock: Monotonic time source (replaced in tests)

    Returns:
        True if the orchestrator accepted the response
    """
    body = encode_body(fit_reason(envelope))

    for attempt in range(max_attempts):
        attempt_timeout = timeout
        if deadline is not None:
            remaining = deadline - clock()
            if remaining <= 0:
                logger.error(
                    f"No time left to deliver response for {envelope.logical_id}"
                )
                return False
            attempt_timeout = min(timeout, remaining)

        try:
            response = httpx.put(
                response_url,
                content=body,
                headers={"Content-Type": ""},
                timeout=attempt_timeout,
            )
            response.raise_for_status()
            logger.info(
                f"Delivered {envelope.status} response for {envelope.logical_id} "
                f"(HTTP {response.status_code})"
            )
            return True
        except httpx.InvalidURL as e:
            logger.error(f"Cannot deliver response for {envelope.logical_id}: {e}")
            return False
        except httpx.HTTPError as e:
            if attempt == max_attempts - 1:
                logger.error(
                    f"Giving up delivering response for {envelope.logical_id} "
                    f"after {max_attempts} attempts: {e}"
                )
                break

            delay = RETRY_DELAY * (2**attempt)
            if deadline is not None and clock() + delay >= deadline:
                logger.error(
                    f"Giving up delivering response for {envelope.logical_id}, "
                    f"retry would pass the deadline: {e}"
                )
                break
            logger.warning(f"Response delivery failed ({e}), retrying in {delay}s...")
            sleep(delay)

    return False

"""
Lambda handler for the X.509 certificate custom resources.

Decodes a CloudFormation custom resource event, routes it to the state
machine registered for its resource type and reports the outcome to the
event's ResponseURL. A response is always sent before the Lambda deadline,
even when the state machine is still running.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait

import boto3
from pydantic import ValidationError

from x509_lifecycle.config import Settings, get_settings
from x509_lifecycle.crypto import CryptoProvider
from x509_lifecycle.exceptions import (
    UnsupportedResourceType,
    UserInputError,
    X509LifecycleError,
)
from x509_lifecycle.lambda_handlers.response import send_response
from x509_lifecycle.models import (
    LifecycleEvent,
    RequestType,
    ResourceOutcome,
    ResponseEnvelope,
    ResponseStatus,
)
from x509_lifecycle.resources import (
    RESOURCE_TYPES,
    AcmImportedCertificateResource,
    LifecycleResource,
)
from x509_lifecycle.store import AcmCertificateStore, SecretStore

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TIMEOUT_REASON = "Timed out before completion"
MALFORMED_EVENT_REASON = "Malformed lifecycle event"
MISCONFIGURED_REASON = "Handler misconfigured"
REDACTED = "<redacted>"

# Time kept back after response delivery so the invocation can return
DELIVERY_MARGIN_MS = 500

# Lazy-loaded AWS clients
_clients: dict = {}


def _get_secretsmanager_client(settings: Settings):
    """Get or create Secrets Manager client."""
    if "secretsmanager" not in _clients:
        _clients["secretsmanager"] = boto3.client(
            "secretsmanager", region_name=settings.aws_region
        )
    return _clients["secretsmanager"]


def _get_acm_client(settings: Settings):
    """Get or create ACM client."""
    if "acm" not in _clients:
        _clients["acm"] = boto3.client("acm", region_name=settings.aws_region)
    return _clients["acm"]


def build_resource(resource_type: str, settings: Settings) -> LifecycleResource:
    """
    Instantiate the state machine for a resource type.

    Raises:
        UnsupportedResourceType: If no state machine handles the type
    """
    resource_class = RESOURCE_TYPES.get(resource_type)
    if resource_class is None:
        raise UnsupportedResourceType(f"Unsupported resource type: {resource_type}")

    store = SecretStore(
        kms_key_id=settings.kms_key_id,
        secretsmanager_client=_get_secretsmanager_client(settings),
    )
    crypto = CryptoProvider(
        max_validity_days=settings.max_validity_days,
        passphrase_length=settings.passphrase_length,
        legacy_pkcs12=settings.pkcs12_legacy_encryption,
    )

    if resource_class is AcmImportedCertificateResource:
        acm = AcmCertificateStore(acm_client=_get_acm_client(settings))
        return resource_class(store, crypto, settings, acm=acm)
    return resource_class(store, crypto, settings)


def redact_event(event) -> dict:
    """Copy of the raw event that is safe to log."""
    if not isinstance(event, dict):
        return {"event": repr(event)}
    redacted = dict(event)
    if redacted.get("ResponseURL"):
        redacted["ResponseURL"] = REDACTED
    return redacted


def failure_reason(error: BaseException) -> str:
    """Reason string for a FAILED response; internal details stay in the log."""
    if isinstance(error, UserInputError):
        logger.warning(f"Rejected request: {error}")
        return error.reason
    if isinstance(error, X509LifecycleError):
        logger.error(f"{type(error).__name__}: {error}")
        return error.reason
    logger.error(f"Unexpected error: {error!r}", exc_info=error)
    return f"Internal error ({type(error).__name__})"


def failed_physical_id(event: LifecycleEvent, context) -> str:
    """
    Physical id to report with a FAILED response.

    Update and Delete keep the recorded id so the orchestrator does not see
    a replacement. A failed Create has none yet.
    """
    if event.request_type != RequestType.CREATE and event.physical_id:
        return event.physical_id
    log_stream = getattr(context, "log_stream_name", None)
    return log_stream or event.logical_id


def success_envelope(event: LifecycleEvent, outcome: ResourceOutcome) -> ResponseEnvelope:
    return ResponseEnvelope(
        status=ResponseStatus.SUCCESS,
        physical_id=outcome.physical_id,
        stack_id=event.stack_id,
        request_id=event.request_id,
        logical_id=event.logical_id,
        data=outcome.data,
    )


def failure_envelope(event: LifecycleEvent, reason: str, context) -> ResponseEnvelope:
    return ResponseEnvelope(
        status=ResponseStatus.FAILED,
        reason=reason,
        physical_id=failed_physical_id(event, context),
        stack_id=event.stack_id,
        request_id=event.request_id,
        logical_id=event.logical_id,
    )


def deadline_seconds(context, settings: Settings) -> float | None:
    """Seconds the state machine may run, or None without a Lambda context."""
    if context is None:
        return None
    remaining = context.get_remaining_time_in_millis() - settings.response_timeout_buffer_ms
    return max(remaining, 0) / 1000


def _run(event: LifecycleEvent, settings: Settings) -> ResourceOutcome:
    resource = build_resource(event.resource_type, settings)
    return resource.handle(event)


def process_event(event: LifecycleEvent, context, settings: Settings) -> ResponseEnvelope:
    """
    Run the state machine for one event under the response deadline.

    On expiry the worker is abandoned; a retried event converges because
    every write is idempotent by name and content.
    """
    timeout = deadline_seconds(context, settings)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="x509-lifecycle")
    try:
        future = executor.submit(_run, event, settings)
        done, _ = wait([future], timeout=timeout)
        if not done:
            logger.error(
                f"{event.request_type} {event.logical_id} did not finish within "
                f"{timeout}s, reporting failure"
            )
            return failure_envelope(event, TIMEOUT_REASON, context)

        error = future.exception()
        if error is not None:
            return failure_envelope(event, failure_reason(error), context)
        return success_envelope(event, future.result())
    finally:
        executor.shutdown(wait=False)


def response_deadline(context) -> float | None:
    """``time.monotonic()`` value response delivery must finish by."""
    if context is None:
        return None
    remaining_ms = context.get_remaining_time_in_millis() - DELIVERY_MARGIN_MS
    return time.monotonic() + max(remaining_ms, 0) / 1000


def _unprocessed_envelope(event, context, reason: str) -> ResponseEnvelope:
    """FAILED envelope for an event that never reached a state machine."""
    raw = event if isinstance(event, dict) else {}
    logical_id = str(raw.get("LogicalResourceId") or "")
    physical_id = raw.get("PhysicalResourceId") or getattr(
        context, "log_stream_name", None
    )
    return ResponseEnvelope(
        status=ResponseStatus.FAILED,
        reason=reason,
        physical_id=str(physical_id or logical_id or "unknown"),
        stack_id=str(raw.get("StackId") or ""),
        request_id=str(raw.get("RequestId") or ""),
        logical_id=logical_id,
    )


def _deliver(response_url: str | None, envelope: ResponseEnvelope, context, **kwargs) -> None:
    logger.info(
        f"{envelope.status} {envelope.logical_id} physical_id={envelope.physical_id}"
        + (f" reason={envelope.reason!r}" if envelope.reason else "")
    )
    if response_url:
        send_response(response_url, envelope, deadline=response_deadline(context), **kwargs)
    else:
        logger.info("No ResponseURL in event, returning envelope only")


def handler(event, context):
    """
    Custom resource Lambda handler.

    Event payload: a CloudFormation custom resource request (RequestType,
    ResourceType, LogicalResourceId, PhysicalResourceId, ResourceProperties,
    OldResourceProperties, StackId, RequestId, ResponseURL).

    Returns:
        The response envelope that was sent (or would be sent, for local
        runs without a ResponseURL)
    """
    raw_response_url = event.get("ResponseURL") if isinstance(event, dict) else None

    try:
        settings = get_settings()
        logger.setLevel(settings.log_level.upper())
    except ValueError as e:
        # pydantic's ValidationError is a ValueError, as is an unknown level name
        logger.error(f"{MISCONFIGURED_REASON}: {e}")
        envelope = _unprocessed_envelope(event, context, MISCONFIGURED_REASON)
        _deliver(raw_response_url, envelope, context)
        return envelope.to_payload()

    logger.info(f"Event: {json.dumps(redact_event(event), default=str)}")

    try:
        lifecycle_event = LifecycleEvent.model_validate(event)
    except ValidationError as e:
        logger.error(f"{MALFORMED_EVENT_REASON}: {e}")
        envelope = _unprocessed_envelope(event, context, MALFORMED_EVENT_REASON)
        response_url = raw_response_url
    else:
        envelope = process_event(lifecycle_event, context, settings)
        response_url = lifecycle_event.response_url

    _deliver(response_url, envelope, context, max_attempts=settings.response_max_attempts)
    return envelope.to_payload()

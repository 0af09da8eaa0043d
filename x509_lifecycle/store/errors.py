"""Translate botocore failures into the store error taxonomy."""

from botocore.exceptions import ClientError, ReadTimeoutError
from botocore.exceptions import ConnectionError as BotoConnectionError

from x509_lifecycle.exceptions import (
    AccessDenied,
    SecretNotFound,
    StoreError,
    StoreUnavailable,
)

TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalFailure",
        "InternalServiceError",
        "InternalServiceErrorException",
        "RequestLimitExceeded",
        "RequestTimeout",
        "ServiceUnavailable",
        "ThrottlingException",
        "TooManyRequestsException",
    }
)

ACCESS_DENIED_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "UnrecognizedClientException",
        "KMSAccessDeniedException",
    }
)

NOT_FOUND_ERROR_CODES = frozenset({"ResourceNotFoundException"})


def error_code(error: ClientError) -> str:
    """Extract the AWS error code from a ClientError."""
    return error.response.get("Error", {}).get("Code", "")


def translate_error(error: Exception, resource: str) -> StoreError:
    """
    Map a botocore exception onto StoreUnavailable, AccessDenied or SecretNotFound.

    Args:
        error: Exception raised by a boto3 client call
        resource: Secret name, ARN or certificate ARN for the message

    Returns:
        StoreError subclass to raise from the original exception
    """
    if isinstance(error, ClientError):
        code = error_code(error)
        if code in TRANSIENT_ERROR_CODES:
            return StoreUnavailable(f"Store unavailable for {resource}: {code}")
        if code in ACCESS_DENIED_ERROR_CODES:
            return AccessDenied(f"Access denied to {resource}: {code}")
        if code in NOT_FOUND_ERROR_CODES:
            return SecretNotFound(f"Not found: {resource}")
        return StoreError(f"Store request for {resource} failed: {code}")

    if isinstance(error, BotoConnectionError | ReadTimeoutError):
        return StoreUnavailable(f"Store unreachable for {resource}: {error}")

    return StoreError(f"Store request for {resource} failed: {error}")

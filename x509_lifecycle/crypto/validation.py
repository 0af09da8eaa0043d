"""Validation of certificate requests and certificate chains."""

import logging
import re

from cryptography import x509
from cryptography.exceptions import InvalidSignature

from x509_lifecycle.exceptions import InvalidSubject, InvalidValidityPeriod
from x509_lifecycle.models import DistinguishedName

logger = logging.getLogger(__name__)

# Upper bound for the commonName attribute (RFC 5280 ub-common-name)
MAX_COMMON_NAME_LENGTH = 64

_DNS_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
_DNS_NAME_PATTERN = re.compile(rf"^(?:\*\.)?{_DNS_LABEL}(?:\.{_DNS_LABEL})*$")
_COUNTRY_PATTERN = re.compile(r"^[A-Za-z]{2}$")


def validate_subject(subject: DistinguishedName) -> None:
    """
    Check that a subject can be issued.

    The common name must be a DNS name or a wildcard DNS name.

    Raises:
        InvalidSubject: If any field fails validation
    """
    common_name = subject.common_name
    if not common_name:
        raise InvalidSubject("Common name must not be empty")

    if len(common_name) > MAX_COMMON_NAME_LENGTH:
        raise InvalidSubject(
            f"Common name '{common_name}' exceeds {MAX_COMMON_NAME_LENGTH} characters"
        )

    if not _DNS_NAME_PATTERN.match(common_name):
        raise InvalidSubject(
            f"Common name '{common_name}' is not a valid DNS name or wildcard"
        )

    if subject.country is not None and not _COUNTRY_PATTERN.match(subject.country):
        raise InvalidSubject(
            f"Country '{subject.country}' must be a two-letter country code"
        )


def validate_validity_period(validity_days: int, max_validity_days: int) -> None:
    """
    Check that a validity period is a positive number of days within the ceiling.

    Raises:
        InvalidValidityPeriod: If out of range
    """
    if isinstance(validity_days, bool) or not isinstance(validity_days, int):
        raise InvalidValidityPeriod(
            f"Validity period must be an integer number of days, got {validity_days!r}"
        )
    if validity_days < 1 or validity_days > max_validity_days:
        raise InvalidValidityPeriod(
            f"Validity period must be between 1 and {max_validity_days} days, "
            f"got {validity_days}"
        )


def is_directly_issued_by(
    certificate: x509.Certificate, issuer: x509.Certificate
) -> bool:
    """Check name linkage and signature between a certificate and its issuer."""
    try:
        certificate.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature) as e:
        logger.debug(
            f"{certificate.subject.rfc4514_string()} not issued by "
            f"{issuer.subject.rfc4514_string()}: {e}"
        )
        return False
    return True


def verify_chain(
    certificate: x509.Certificate,
    chain: tuple[x509.Certificate, ...] | list[x509.Certificate],
) -> bool:
    """
    Verify a certificate against its issuer chain.

    ``chain`` is ordered issuer first, root last. An empty chain means the
    certificate must be self-signed and is verified against itself as its
    own trust anchor.

    Returns:
        True if every link is signed by the next and the last link is self-signed
    """
    links = [certificate, *chain]

    for child, parent in zip(links, links[1:], strict=False):
        if child.issuer != parent.subject:
            logger.debug(
                f"Chain break: issuer {child.issuer.rfc4514_string()} != "
                f"subject {parent.subject.rfc4514_string()}"
            )
            return False
        if not is_directly_issued_by(child, parent):
            return False

    anchor = links[-1]
    return anchor.issuer == anchor.subject and is_directly_issued_by(anchor, anchor)

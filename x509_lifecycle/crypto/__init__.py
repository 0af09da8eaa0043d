"""Cryptographic primitives: keys, certificates and PKCS#12 bundles."""

from x509_lifecycle.crypto.encoding import (
    key_matches_certificate,
    load_certificate,
    load_certificate_chain,
    load_issued_certificate,
    load_key_material,
)
from x509_lifecycle.crypto.provider import (
    MIN_PASSPHRASE_LENGTH,
    PASSPHRASE_ALPHABET,
    CryptoProvider,
    build_name,
)
from x509_lifecycle.crypto.validation import (
    validate_subject,
    validate_validity_period,
    verify_chain,
)

__all__ = [
    "CryptoProvider",
    "MIN_PASSPHRASE_LENGTH",
    "PASSPHRASE_ALPHABET",
    "build_name",
    "key_matches_certificate",
    "load_certificate",
    "load_certificate_chain",
    "load_issued_certificate",
    "load_key_material",
    "validate_subject",
    "validate_validity_period",
    "verify_chain",
]

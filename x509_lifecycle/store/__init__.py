"""Persistent stores: Secrets Manager and ACM."""

from x509_lifecycle.store.acm import AcmCertificateStore
from x509_lifecycle.store.errors import translate_error
from x509_lifecycle.store.secret_store import SecretStore

__all__ = [
    "AcmCertificateStore",
    "SecretStore",
    "translate_error",
]

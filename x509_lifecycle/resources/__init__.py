"""Custom resource state machines."""

from x509_lifecycle.resources.acm import AcmImportedCertificateResource
from x509_lifecycle.resources.base import LifecycleResource, SecretWrite
from x509_lifecycle.resources.certificate import CertificateResource
from x509_lifecycle.resources.identity import (
    CertificateIdentity,
    Pkcs12Identity,
    SecretNaming,
)
from x509_lifecycle.resources.pkcs12 import Pkcs12Resource
from x509_lifecycle.resources.retry import RetryPolicy

RESOURCE_TYPES: dict[str, type[LifecycleResource]] = {
    CertificateResource.resource_type: CertificateResource,
    Pkcs12Resource.resource_type: Pkcs12Resource,
    AcmImportedCertificateResource.resource_type: AcmImportedCertificateResource,
}

__all__ = [
    "AcmImportedCertificateResource",
    "CertificateIdentity",
    "CertificateResource",
    "LifecycleResource",
    "Pkcs12Identity",
    "Pkcs12Resource",
    "RESOURCE_TYPES",
    "RetryPolicy",
    "SecretNaming",
    "SecretWrite",
]

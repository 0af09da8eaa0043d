"""Data models for the certificate lifecycle handler."""

from x509_lifecycle.models.certificate import (
    CertificateRequest,
    CertificateSecrets,
    DistinguishedName,
    SecretTag,
    SourceCertificateProperties,
)
from x509_lifecycle.models.events import (
    LifecycleEvent,
    RequestType,
    ResourceOutcome,
    ResponseEnvelope,
    ResponseStatus,
)
from x509_lifecycle.models.material import (
    RSA_2048,
    AlgorithmProfile,
    IssuedCertificate,
    KeyMaterial,
    Pkcs12Bundle,
    SigningContext,
)
from x509_lifecycle.models.secret_ref import SecretRef

__all__ = [  # noqa: RUF022
    # Request models
    "CertificateRequest",
    "CertificateSecrets",
    "DistinguishedName",
    "SecretTag",
    "SourceCertificateProperties",
    # Event models
    "LifecycleEvent",
    "RequestType",
    "ResourceOutcome",
    "ResponseEnvelope",
    "ResponseStatus",
    # Cryptographic material
    "AlgorithmProfile",
    "RSA_2048",
    "KeyMaterial",
    "IssuedCertificate",
    "SigningContext",
    "Pkcs12Bundle",
    # Store references
    "SecretRef",
]

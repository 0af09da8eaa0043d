"""Decode certificate material read back from the secret store."""

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from x509_lifecycle.exceptions import InvalidCertificateMaterial
from x509_lifecycle.models import IssuedCertificate, KeyMaterial


def load_certificate(pem: bytes) -> x509.Certificate:
    """Load a single PEM certificate."""
    try:
        return x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        raise InvalidCertificateMaterial("Secret does not hold a PEM certificate") from e


def load_certificate_chain(pem: bytes) -> tuple[x509.Certificate, ...]:
    """Load a concatenated PEM chain. Empty input yields an empty chain."""
    if not pem.strip():
        return ()
    try:
        return tuple(x509.load_pem_x509_certificates(pem))
    except ValueError as e:
        raise InvalidCertificateMaterial(
            "Secret does not hold a PEM certificate chain"
        ) from e


def load_key_material(pem: bytes, passphrase: str) -> KeyMaterial:
    """Decrypt a PKCS#8 PEM private key."""
    try:
        private_key = serialization.load_pem_private_key(
            pem,
            password=passphrase.encode("utf-8") if passphrase else None,
        )
    except (ValueError, TypeError) as e:
        raise InvalidCertificateMaterial(
            "Private key could not be decrypted with the supplied passphrase"
        ) from e

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise InvalidCertificateMaterial("Only RSA private keys are supported")

    return KeyMaterial(private_key=private_key)


def key_matches_certificate(certificate: x509.Certificate, key: KeyMaterial) -> bool:
    """Check that the certificate's public key belongs to the private key."""
    cert_public = certificate.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key_public = key.public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return cert_public == key_public


def load_issued_certificate(
    cert_pem: bytes,
    key_pem: bytes,
    passphrase: str,
    chain_pem: bytes = b"",
) -> IssuedCertificate:
    """
    Rebuild an issued certificate from its stored secrets.

    Raises:
        InvalidCertificateMaterial: If any part fails to decode or the key
            does not belong to the certificate
    """
    certificate = load_certificate(cert_pem)
    key = load_key_material(key_pem, passphrase)
    if not key_matches_certificate(certificate, key):
        raise InvalidCertificateMaterial(
            f"Private key does not match certificate {certificate.subject.rfc4514_string()}"
        )
    return IssuedCertificate(
        certificate=certificate,
        key=key,
        chain=load_certificate_chain(chain_pem),
    )

"""In-memory cryptographic material.

These hold live ``cryptography`` objects and are never serialized as a
whole; the encoded forms are exposed through properties.
"""

from dataclasses import dataclass, field
from datetime import datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


@dataclass(frozen=True)
class AlgorithmProfile:
    """Fixed key and signature profile used for intra-farm TLS."""

    algorithm: str = "RSA"
    key_size: int = 2048
    public_exponent: int = 65537
    signature_hash: str = "sha256"


RSA_2048 = AlgorithmProfile()


@dataclass(frozen=True)
class KeyMaterial:
    """An asymmetric key pair."""

    private_key: rsa.RSAPrivateKey
    profile: AlgorithmProfile = RSA_2048

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    @property
    def public_key_pem(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def private_key_pem(self, passphrase: str | None = None) -> bytes:
        """Encode the private key as PKCS#8 PEM, encrypted when given a passphrase."""
        if passphrase:
            encryption: serialization.KeySerializationEncryption = (
                serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
            )
        else:
            encryption = serialization.NoEncryption()
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )


@dataclass(frozen=True)
class IssuedCertificate:
    """A signed certificate, the key it binds and its issuer chain.

    ``chain`` excludes the certificate itself and is ordered issuer first,
    root last. It is empty for self-signed certificates.
    """

    certificate: x509.Certificate
    key: KeyMaterial
    chain: tuple[x509.Certificate, ...] = field(default_factory=tuple)

    @property
    def serial_number(self) -> int:
        return self.certificate.serial_number

    @property
    def serial_hex(self) -> str:
        return format(self.certificate.serial_number, "x")

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject

    @property
    def issuer(self) -> x509.Name:
        return self.certificate.issuer

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    @property
    def is_self_signed(self) -> bool:
        return self.certificate.issuer == self.certificate.subject

    @property
    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def chain_pem(self) -> bytes:
        return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in self.chain)


@dataclass(frozen=True)
class SigningContext:
    """An authority able to sign new certificates."""

    certificate: x509.Certificate
    key: KeyMaterial
    chain: tuple[x509.Certificate, ...] = field(default_factory=tuple)

    @classmethod
    def from_issued(cls, issued: IssuedCertificate) -> "SigningContext":
        return cls(certificate=issued.certificate, key=issued.key, chain=issued.chain)

    @property
    def issued_chain(self) -> tuple[x509.Certificate, ...]:
        """Chain carried by certificates this authority signs."""
        return (self.certificate, *self.chain)


@dataclass(frozen=True)
class Pkcs12Bundle:
    """Passphrase-protected PKCS#12 encoding of a certificate and its key."""

    data: bytes
    passphrase: str
    source_serial: int

    @property
    def source_serial_hex(self) -> str:
        return format(self.source_serial, "x")

"""Key generation, certificate issuance and PKCS#12 encoding."""

import logging
import random
import secrets
import string
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from x509_lifecycle.crypto.encoding import key_matches_certificate
from x509_lifecycle.crypto.validation import (
    validate_subject,
    validate_validity_period,
)
from x509_lifecycle.exceptions import CryptoFailure, EncodingFailure
from x509_lifecycle.models import (
    RSA_2048,
    AlgorithmProfile,
    CertificateRequest,
    DistinguishedName,
    IssuedCertificate,
    KeyMaterial,
    Pkcs12Bundle,
    SigningContext,
)

logger = logging.getLogger(__name__)

# RFC 5280 caps serials at 20 octets; 159 bits keeps them positive
SERIAL_NUMBER_BITS = 159
MIN_SERIAL_NUMBER_BITS = 64

MIN_PASSPHRASE_LENGTH = 20
DEFAULT_PASSPHRASE_LENGTH = 32

# Printable characters without quotes, backslash or whitespace
PASSPHRASE_ALPHABET = string.ascii_letters + string.digits + "!#$%&()*+,-./:;<=>?@[]^_{|}~"

_HASH_ALGORITHMS = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def build_name(subject: DistinguishedName) -> x509.Name:
    """Convert a subject model into an X.509 name (C, L, O, OU, CN order)."""
    attributes = []
    if subject.country:
        attributes.append(x509.NameAttribute(NameOID.COUNTRY_NAME, subject.country))
    if subject.locality:
        attributes.append(x509.NameAttribute(NameOID.LOCALITY_NAME, subject.locality))
    if subject.organization:
        attributes.append(
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, subject.organization)
        )
    if subject.organizational_unit:
        attributes.append(
            x509.NameAttribute(
                NameOID.ORGANIZATIONAL_UNIT_NAME, subject.organizational_unit
            )
        )
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, subject.common_name))
    return x509.Name(attributes)


class CryptoProvider:
    """
    Pure cryptographic operations used by the resource state machines.

    The random source used for serial numbers and passphrases is injected
    so tests can supply a seeded ``random.Random``. Production code uses
    ``secrets.SystemRandom``.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        max_validity_days: int = 3650,
        passphrase_length: int = DEFAULT_PASSPHRASE_LENGTH,
        legacy_pkcs12: bool = False,
    ):
        """
        Initialize the provider.

        Args:
            rng: Random source for serials and passphrases
            max_validity_days: Validity ceiling for issued certificates
            passphrase_length: Length of generated passphrases (>= 20)
            legacy_pkcs12: Encode PKCS#12 with PBES1/3DES and a SHA1 MAC
        """
        if passphrase_length < MIN_PASSPHRASE_LENGTH:
            raise ValueError(
                f"Passphrase length must be at least {MIN_PASSPHRASE_LENGTH}"
            )
        self._rng = rng if rng is not None else secrets.SystemRandom()
        self.max_validity_days = max_validity_days
        self.passphrase_length = passphrase_length
        self.legacy_pkcs12 = legacy_pkcs12

    def random_serial_number(self) -> int:
        """Random positive serial number with more than 64 significant bits."""
        try:
            serial = self._rng.getrandbits(SERIAL_NUMBER_BITS)
            while serial.bit_length() <= MIN_SERIAL_NUMBER_BITS:
                serial = self._rng.getrandbits(SERIAL_NUMBER_BITS)
        except (OSError, NotImplementedError) as e:
            raise CryptoFailure("Random source unavailable") from e
        return serial

    def generate_passphrase(self) -> str:
        """Random printable passphrase of the configured length."""
        try:
            return "".join(
                self._rng.choice(PASSPHRASE_ALPHABET)
                for _ in range(self.passphrase_length)
            )
        except (OSError, NotImplementedError) as e:
            raise CryptoFailure("Random source unavailable") from e

    def generate_key_pair(self, profile: AlgorithmProfile = RSA_2048) -> KeyMaterial:
        """
        Generate a fresh key pair for the profile.

        Raises:
            CryptoFailure: If the profile is unsupported or generation fails
        """
        if profile.algorithm != "RSA":
            raise CryptoFailure(f"Unsupported key algorithm: {profile.algorithm}")

        try:
            private_key = rsa.generate_private_key(
                public_exponent=profile.public_exponent,
                key_size=profile.key_size,
            )
        except (OSError, ValueError) as e:
            raise CryptoFailure("Key generation failed") from e

        logger.debug(f"Generated {profile.algorithm}-{profile.key_size} key pair")
        return KeyMaterial(private_key=private_key, profile=profile)

    def issue_certificate(
        self,
        request: CertificateRequest,
        key: KeyMaterial,
        signing_context: SigningContext | None = None,
    ) -> IssuedCertificate:
        """
        Issue a certificate for ``key``.

        Without a signing context the certificate is self-signed and usable
        as a trust anchor. With one, the issuer is the authority's subject,
        the authority's key signs, and the chain is the authority followed
        by the authority's own chain.

        Raises:
            InvalidSubject: If the subject fails validation
            InvalidValidityPeriod: If the validity period is out of range
            CryptoFailure: If signing fails
        """
        validate_subject(request.subject)
        validate_validity_period(request.validity_days, self.max_validity_days)

        subject = build_name(request.subject)
        # Certificates encode whole seconds only
        not_before = datetime.now(UTC).replace(microsecond=0)
        not_after = not_before + timedelta(days=request.validity_days)
        is_ca = request.is_ca

        if signing_context is None:
            issuer_name = subject
            signing_key = key
            chain: tuple[x509.Certificate, ...] = ()
        else:
            issuer_name = signing_context.certificate.subject
            signing_key = signing_context.key
            chain = signing_context.issued_chain

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer_name)
            .public_key(key.public_key)
            .serial_number(self.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=is_ca, path_length=None), critical=True
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=is_ca,
                    crl_sign=is_ca,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage(
                    [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
                ),
                critical=False,
            )
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(request.subject.common_name)]),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(
                    signing_key.public_key
                ),
                critical=False,
            )
        )

        hash_algorithm = _HASH_ALGORITHMS.get(key.profile.signature_hash, hashes.SHA256)
        try:
            certificate = builder.sign(signing_key.private_key, hash_algorithm())
        except (ValueError, TypeError) as e:
            raise CryptoFailure("Certificate signing failed") from e

        logger.info(
            f"Issued certificate serial={format(certificate.serial_number, 'x')} "
            f"subject={subject.rfc4514_string()} "
            f"issuer={issuer_name.rfc4514_string()} "
            f"not_after={not_after.isoformat()}"
        )
        return IssuedCertificate(certificate=certificate, key=key, chain=chain)

    def to_pkcs12(self, certificate: IssuedCertificate, key: KeyMaterial) -> Pkcs12Bundle:
        """
        Bundle a certificate, its chain and its key under a fresh passphrase.

        Raises:
            EncodingFailure: If the key does not belong to the certificate or
                encoding fails
        """
        if not key_matches_certificate(certificate.certificate, key):
            raise EncodingFailure("Private key does not match certificate")

        passphrase = self.generate_passphrase()
        friendly_name = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)

        try:
            data = pkcs12.serialize_key_and_certificates(
                name=str(friendly_name[0].value).encode("utf-8") if friendly_name else None,
                key=key.private_key,
                cert=certificate.certificate,
                cas=list(certificate.chain) or None,
                encryption_algorithm=self._pkcs12_encryption(passphrase),
            )
        except (ValueError, TypeError) as e:
            raise EncodingFailure("PKCS#12 encoding failed") from e

        logger.info(
            f"Encoded PKCS#12 bundle for serial={certificate.serial_hex} "
            f"with {len(certificate.chain)} chain certificate(s)"
        )
        return Pkcs12Bundle(
            data=data,
            passphrase=passphrase,
            source_serial=certificate.serial_number,
        )

    def _pkcs12_encryption(
        self, passphrase: str
    ) -> serialization.KeySerializationEncryption:
        if not self.legacy_pkcs12:
            return serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
        return (
            serialization.PrivateFormat.PKCS12.encryption_builder()
            .kdf_rounds(50000)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())
            .build(passphrase.encode("utf-8"))
        )

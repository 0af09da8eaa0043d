"""Physical identities and secret naming for custom resources."""

import re
from dataclasses import dataclass

# Secret artifacts
ARTIFACT_CERT = "cert"
ARTIFACT_KEY = "key"
ARTIFACT_PASSPHRASE = "passphrase"
ARTIFACT_CHAIN = "chain"
ARTIFACT_PKCS12 = "pkcs12"

CERTIFICATE_ARTIFACTS = (ARTIFACT_CERT, ARTIFACT_KEY, ARTIFACT_PASSPHRASE, ARTIFACT_CHAIN)
PKCS12_ARTIFACTS = (ARTIFACT_PKCS12, ARTIFACT_PASSPHRASE)

# Tags written on every secret
TAG_LOGICAL_ID = "X509LogicalId"
TAG_ARTIFACT = "X509Artifact"
TAG_SERIAL = "X509Serial"

_CERTIFICATE_ID_PATTERN = re.compile(
    r"^(?P<logical_id>.+)-(?P<digest>[0-9a-f]{16})-(?P<serial>[0-9a-f]+)$"
)
_PKCS12_ID_PATTERN = re.compile(
    r"^(?P<logical_id>.+)-(?P<serial>[0-9a-f]+)-g(?P<generation>\d+)$"
)


@dataclass(frozen=True)
class CertificateIdentity:
    """
    Physical identity of a certificate resource.

    Encodes the digest of the identity-affecting properties, so an Update
    can decide between no-op and replacement without reading any secret,
    and the serial of the certificate the identity was reported for.
    """

    logical_id: str
    digest: str
    serial_hex: str

    @property
    def physical_id(self) -> str:
        return f"{self.logical_id}-{self.digest}-{self.serial_hex}"

    @property
    def base_name(self) -> str:
        """Secret name stem shared by every generation of this identity."""
        return f"{self.logical_id}-{self.digest}"

    @classmethod
    def parse(cls, physical_id: str | None) -> "CertificateIdentity | None":
        """Decode a physical id, or None if it was not produced by this resource."""
        match = _CERTIFICATE_ID_PATTERN.match(physical_id or "")
        if not match:
            return None
        return cls(
            logical_id=match["logical_id"],
            digest=match["digest"],
            serial_hex=match["serial"],
        )


@dataclass(frozen=True)
class Pkcs12Identity:
    """Physical identity of a PKCS#12 conversion resource."""

    logical_id: str
    source_serial_hex: str
    generation: int = 0

    @property
    def physical_id(self) -> str:
        return f"{self.logical_id}-{self.source_serial_hex}-g{self.generation}"

    @property
    def base_name(self) -> str:
        return self.physical_id

    def next_generation(self, source_serial_hex: str) -> "Pkcs12Identity":
        """Identity of the replacement bundle for a (possibly new) source."""
        generation = (
            self.generation + 1 if source_serial_hex == self.source_serial_hex else 0
        )
        return Pkcs12Identity(self.logical_id, source_serial_hex, generation)

    @classmethod
    def parse(cls, physical_id: str | None) -> "Pkcs12Identity | None":
        """Decode a physical id, or None if it was not produced by this resource."""
        match = _PKCS12_ID_PATTERN.match(physical_id or "")
        if not match:
            return None
        return cls(
            logical_id=match["logical_id"],
            source_serial_hex=match["serial"],
            generation=int(match["generation"]),
        )


@dataclass(frozen=True)
class SecretNaming:
    """Deterministic secret names: ``<prefix><stack>/<base>-<artifact>``."""

    prefix: str = ""
    stack_name: str = ""

    def name(self, base_name: str, artifact: str) -> str:
        namespace = f"{self.stack_name}/" if self.stack_name else ""
        return f"{self.prefix}{namespace}{base_name}-{artifact}"

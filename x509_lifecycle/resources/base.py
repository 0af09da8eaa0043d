"""Shared behaviour of the custom resource state machines."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from x509_lifecycle.config import Settings
from x509_lifecycle.crypto import (
    CryptoProvider,
    load_certificate,
    load_issued_certificate,
)
from x509_lifecycle.exceptions import StoreError
from x509_lifecycle.models import (
    CertificateSecrets,
    IssuedCertificate,
    LifecycleEvent,
    RequestType,
    ResourceOutcome,
    SecretRef,
    SecretTag,
)
from x509_lifecycle.resources.identity import (
    TAG_ARTIFACT,
    TAG_LOGICAL_ID,
    TAG_SERIAL,
    SecretNaming,
)
from x509_lifecycle.resources.retry import RetryPolicy
from x509_lifecycle.store import SecretStore

logger = logging.getLogger(__name__)


@dataclass
class SecretWrite:
    """A pending write of one artifact."""

    artifact: str
    name: str
    value: bytes | str
    tags: dict[str, str] = field(default_factory=dict)
    description: str = ""


def secret_tags(
    user_tags: list[SecretTag],
    logical_id: str,
    artifact: str,
    serial_hex: str,
) -> dict[str, str]:
    """User tags plus the bookkeeping tags every secret carries."""
    tags = {tag.key: tag.value for tag in user_tags}
    tags.update(
        {
            TAG_LOGICAL_ID: logical_id,
            TAG_ARTIFACT: artifact,
            TAG_SERIAL: serial_hex,
        }
    )
    return tags


def consistent_serial(
    existing: dict[str, SecretRef | None],
    artifacts: tuple[str, ...] | list[str],
) -> str | None:
    """
    Serial shared by a complete set of secrets.

    Returns:
        The common ``X509Serial`` tag when every artifact exists and all
        carry the same serial, otherwise None
    """
    serials = set()
    for artifact in artifacts:
        ref = existing.get(artifact)
        if ref is None:
            return None
        serials.add(ref.tags.get(TAG_SERIAL, ""))

    if len(serials) != 1:
        return None
    serial = serials.pop()
    return serial or None


class LifecycleResource(ABC):
    """
    Base class for a custom resource state machine.

    Subclasses implement ``create``, ``update`` and ``delete``; each call is
    a cold evaluation of the event plus fresh store reads.
    """

    resource_type: str = ""

    def __init__(
        self,
        store: SecretStore,
        crypto: CryptoProvider,
        settings: Settings,
        retry: RetryPolicy | None = None,
    ):
        self.store = store
        self.crypto = crypto
        self.settings = settings
        self.retry = retry or RetryPolicy(
            max_attempts=settings.store_max_attempts,
            base_delay=settings.store_retry_delay,
        )

    def handle(self, event: LifecycleEvent) -> ResourceOutcome:
        """Route a lifecycle event to the matching transition."""
        logger.info(
            f"{event.request_type} {self.resource_type} "
            f"logical_id={event.logical_id} physical_id={event.physical_id}"
        )
        if event.request_type == RequestType.CREATE:
            return self.create(event)
        if event.request_type == RequestType.UPDATE:
            return self.update(event)
        return self.delete(event)

    @abstractmethod
    def create(self, event: LifecycleEvent) -> ResourceOutcome: ...

    @abstractmethod
    def update(self, event: LifecycleEvent) -> ResourceOutcome: ...

    @abstractmethod
    def delete(self, event: LifecycleEvent) -> ResourceOutcome: ...

    def naming(self, event: LifecycleEvent) -> SecretNaming:
        return SecretNaming(
            prefix=self.settings.secret_name_prefix,
            stack_name=event.stack_name,
        )

    def describe_artifacts(
        self,
        naming: SecretNaming,
        base_name: str,
        artifacts: tuple[str, ...] | list[str],
    ) -> dict[str, SecretRef | None]:
        """Current metadata of each artifact's secret (None when absent)."""
        return {
            artifact: self.retry.call(self.store.describe, naming.name(base_name, artifact))
            for artifact in artifacts
        }

    def read_secret(self, secret_id: str) -> bytes:
        return self.retry.call(self.store.get, secret_id)

    def read_certificate_pem(self, secrets: CertificateSecrets) -> bytes:
        return self.read_secret(secrets.cert)

    def read_issued_certificate(self, secrets: CertificateSecrets) -> IssuedCertificate:
        """Load a certificate resource's certificate, key and chain from the store."""
        cert_pem = self.read_certificate_pem(secrets)
        key_pem = self.read_secret(secrets.key)
        passphrase = self.read_secret(secrets.passphrase).decode("utf-8")
        chain_pem = self.read_secret(secrets.cert_chain) if secrets.cert_chain else b""
        return load_issued_certificate(cert_pem, key_pem, passphrase, chain_pem)

    def read_source_serial_hex(self, secrets: CertificateSecrets) -> str:
        """Serial of a certificate resource's certificate, without reading its key."""
        certificate = load_certificate(self.read_certificate_pem(secrets))
        return format(certificate.serial_number, "x")

    def write_secrets(
        self,
        writes: list[SecretWrite],
        existing: dict[str, SecretRef | None],
    ) -> dict[str, SecretRef]:
        """
        Write every artifact or none of the new ones.

        On failure, secrets this attempt created are deleted again. Secrets
        that already existed keep the version just written; a retry
        overwrites it.
        """
        written: dict[str, SecretRef] = {}
        try:
            for write in writes:
                written[write.artifact] = self.retry.call(
                    self.store.put,
                    write.name,
                    write.value,
                    description=write.description,
                    tags=write.tags,
                )
        except Exception:
            self._discard_created(written, existing)
            raise
        return written

    def _discard_created(
        self,
        written: dict[str, SecretRef],
        existing: dict[str, SecretRef | None],
    ) -> None:
        for artifact, ref in written.items():
            if existing.get(artifact) is not None:
                logger.warning(
                    f"Leaving new version of pre-existing secret {ref.name} "
                    "for the next attempt to overwrite"
                )
                continue
            try:
                self.store.delete(ref)
                logger.info(f"Removed partially written secret {ref.name}")
            except StoreError as e:
                logger.warning(f"Could not remove partially written secret {ref.name}: {e}")

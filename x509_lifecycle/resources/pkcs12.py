"""PKCS#12 conversion resource: bundle an existing certificate for servers."""

import logging

from x509_lifecycle.models import (
    LifecycleEvent,
    ResourceOutcome,
    SecretRef,
    SourceCertificateProperties,
)
from x509_lifecycle.resources.base import (
    LifecycleResource,
    SecretWrite,
    consistent_serial,
    secret_tags,
)
from x509_lifecycle.resources.identity import (
    ARTIFACT_PASSPHRASE,
    ARTIFACT_PKCS12,
    PKCS12_ARTIFACTS,
    Pkcs12Identity,
)

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "Custom::X509Pkcs12"


def pkcs12_data(
    refs: dict[str, SecretRef | None],
    identity: Pkcs12Identity,
) -> dict[str, str]:
    """Public attributes returned to the orchestrator."""
    return {
        "pkcs12SecretRef": refs[ARTIFACT_PKCS12].arn,
        "passphraseSecretRef": refs[ARTIFACT_PASSPHRASE].arn,
        "sourceSerialNumber": identity.source_serial_hex,
    }


class Pkcs12Resource(LifecycleResource):
    """
    State machine for ``Custom::X509Pkcs12``.

    A bundle is immutable: every Update writes a new bundle and passphrase
    under a new physical id. The physical id embeds the source certificate's
    serial, so replacing the source certificate replaces the bundle too.
    """

    resource_type = RESOURCE_TYPE

    def create(self, event: LifecycleEvent) -> ResourceOutcome:
        properties = SourceCertificateProperties.from_properties(event.properties)
        serial_hex = self.read_source_serial_hex(properties.source)
        identity = Pkcs12Identity(event.logical_id, serial_hex)
        return self._convert(event, properties, identity)

    def update(self, event: LifecycleEvent) -> ResourceOutcome:
        properties = SourceCertificateProperties.from_properties(event.properties)
        serial_hex = self.read_source_serial_hex(properties.source)

        old = Pkcs12Identity.parse(event.physical_id)
        if old is None or old.logical_id != event.logical_id:
            logger.warning(
                f"No recorded state in physical id {event.physical_id!r}, "
                "creating a fresh bundle"
            )
            identity = Pkcs12Identity(event.logical_id, serial_hex)
        else:
            identity = old.next_generation(serial_hex)
            logger.info(f"Replacing bundle {old.physical_id} with {identity.physical_id}")

        return self._convert(event, properties, identity)

    def delete(self, event: LifecycleEvent) -> ResourceOutcome:
        identity = Pkcs12Identity.parse(event.physical_id)
        if identity is None:
            logger.info(f"Physical id {event.physical_id!r} has no secrets to delete")
            return ResourceOutcome(physical_id=event.physical_id or event.logical_id)

        naming = self.naming(event)
        for artifact in PKCS12_ARTIFACTS:
            self.retry.call(self.store.delete, naming.name(identity.base_name, artifact))

        return ResourceOutcome(physical_id=identity.physical_id)

    def _convert(
        self,
        event: LifecycleEvent,
        properties: SourceCertificateProperties,
        identity: Pkcs12Identity,
    ) -> ResourceOutcome:
        naming = self.naming(event)
        existing = self.describe_artifacts(naming, identity.base_name, PKCS12_ARTIFACTS)

        if consistent_serial(existing, PKCS12_ARTIFACTS) == identity.source_serial_hex:
            logger.info(f"Bundle {identity.physical_id} already complete, reusing")
            return ResourceOutcome(
                physical_id=identity.physical_id,
                data=pkcs12_data(existing, identity),
            )

        source = self.read_issued_certificate(properties.source)
        bundle = self.crypto.to_pkcs12(source, source.key)
        common_name = source.subject.rfc4514_string()

        writes = [
            SecretWrite(
                artifact=ARTIFACT_PASSPHRASE,
                name=naming.name(identity.base_name, ARTIFACT_PASSPHRASE),
                value=bundle.passphrase,
                description=f"PKCS#12 passphrase for {common_name}",
                tags=secret_tags(
                    properties.tags,
                    event.logical_id,
                    ARTIFACT_PASSPHRASE,
                    bundle.source_serial_hex,
                ),
            ),
            SecretWrite(
                artifact=ARTIFACT_PKCS12,
                name=naming.name(identity.base_name, ARTIFACT_PKCS12),
                value=bundle.data,
                description=f"PKCS#12 bundle for {common_name}",
                tags=secret_tags(
                    properties.tags,
                    event.logical_id,
                    ARTIFACT_PKCS12,
                    bundle.source_serial_hex,
                ),
            ),
        ]
        refs = self.write_secrets(writes, existing)

        logger.info(f"Created PKCS#12 bundle {identity.physical_id}")
        return ResourceOutcome(
            physical_id=identity.physical_id,
            data=pkcs12_data(refs, identity),
        )

"""ACM imported certificate resource: expose a generated certificate to load balancers."""

import logging

from x509_lifecycle.config import Settings
from x509_lifecycle.crypto import CryptoProvider
from x509_lifecycle.exceptions import InvalidProperties
from x509_lifecycle.models import (
    LifecycleEvent,
    ResourceOutcome,
    SourceCertificateProperties,
)
from x509_lifecycle.resources.base import LifecycleResource
from x509_lifecycle.resources.identity import TAG_LOGICAL_ID, TAG_SERIAL
from x509_lifecycle.resources.retry import RetryPolicy
from x509_lifecycle.store import AcmCertificateStore, SecretStore

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "Custom::AcmImportedCertificate"


class AcmImportedCertificateResource(LifecycleResource):
    """
    State machine for ``Custom::AcmImportedCertificate``.

    The physical id is the ACM certificate ARN. A changed source is
    re-imported into the same ARN so listeners keep their reference.
    """

    resource_type = RESOURCE_TYPE

    def __init__(
        self,
        store: SecretStore,
        crypto: CryptoProvider,
        settings: Settings,
        retry: RetryPolicy | None = None,
        acm: AcmCertificateStore | None = None,
    ):
        super().__init__(store, crypto, settings, retry)
        self.acm = acm or AcmCertificateStore()

    def create(self, event: LifecycleEvent) -> ResourceOutcome:
        properties = SourceCertificateProperties.from_properties(event.properties)
        return self._import(event, properties)

    def update(self, event: LifecycleEvent) -> ResourceOutcome:
        properties = SourceCertificateProperties.from_properties(event.properties)

        if not self._is_certificate_arn(event.physical_id):
            logger.warning(
                f"No recorded certificate in physical id {event.physical_id!r}, "
                "importing a fresh certificate"
            )
            return self._import(event, properties)

        if event.old_properties is not None:
            try:
                previous = SourceCertificateProperties.from_properties(
                    event.old_properties
                )
            except InvalidProperties:
                previous = None
            if previous is not None and previous.source == properties.source:
                logger.info(f"Source unchanged, keeping {event.physical_id}")
                return ResourceOutcome(
                    physical_id=event.physical_id,
                    data={"certificateArn": event.physical_id},
                )

        return self._import(event, properties, certificate_arn=event.physical_id)

    def delete(self, event: LifecycleEvent) -> ResourceOutcome:
        if not self._is_certificate_arn(event.physical_id):
            logger.info(f"Physical id {event.physical_id!r} has no certificate to delete")
            return ResourceOutcome(physical_id=event.physical_id or event.logical_id)

        self.retry.call(self.acm.delete_certificate, event.physical_id)
        return ResourceOutcome(physical_id=event.physical_id)

    def _import(
        self,
        event: LifecycleEvent,
        properties: SourceCertificateProperties,
        certificate_arn: str | None = None,
    ) -> ResourceOutcome:
        source = self.read_issued_certificate(properties.source)
        tags = {tag.key: tag.value for tag in properties.tags}
        tags.update({TAG_LOGICAL_ID: event.logical_id, TAG_SERIAL: source.serial_hex})

        arn = self.retry.call(
            self.acm.import_certificate,
            source.certificate_pem,
            source.key.private_key_pem(),
            source.chain_pem,
            tags=tags,
            certificate_arn=certificate_arn,
        )
        return ResourceOutcome(physical_id=arn, data={"certificateArn": arn})

    @staticmethod
    def _is_certificate_arn(physical_id: str | None) -> bool:
        return bool(physical_id) and physical_id.startswith("arn:") and ":acm:" in physical_id

"""Certificate resource: key pair, certificate and chain stored as secrets."""

import logging

from cryptography import x509

from x509_lifecycle.crypto import load_certificate, verify_chain
from x509_lifecycle.exceptions import InvalidCertificateMaterial, InvalidProperties
from x509_lifecycle.models import (
    CertificateRequest,
    CertificateSecrets,
    IssuedCertificate,
    LifecycleEvent,
    ResourceOutcome,
    SecretRef,
    SigningContext,
)
from x509_lifecycle.resources.base import (
    LifecycleResource,
    SecretWrite,
    consistent_serial,
    secret_tags,
)
from x509_lifecycle.resources.identity import (
    ARTIFACT_CERT,
    ARTIFACT_CHAIN,
    ARTIFACT_KEY,
    ARTIFACT_PASSPHRASE,
    CERTIFICATE_ARTIFACTS,
    TAG_ARTIFACT,
    TAG_LOGICAL_ID,
    TAG_SERIAL,
    CertificateIdentity,
    SecretNaming,
)

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "Custom::X509Certificate"


def certificate_data(
    refs: dict[str, SecretRef | None],
    certificate: x509.Certificate,
) -> dict[str, str]:
    """Public attributes returned to the orchestrator."""
    chain_ref = refs.get(ARTIFACT_CHAIN)
    return {
        "certSecretRef": refs[ARTIFACT_CERT].arn,
        "keySecretRef": refs[ARTIFACT_KEY].arn,
        "passphraseSecretRef": refs[ARTIFACT_PASSPHRASE].arn,
        "chainSecretRef": chain_ref.arn if chain_ref else "",
        "serialNumber": format(certificate.serial_number, "x"),
        "subject": certificate.subject.rfc4514_string(),
        "issuer": certificate.issuer.rfc4514_string(),
        "notBefore": certificate.not_valid_before_utc.isoformat(),
        "notAfter": certificate.not_valid_after_utc.isoformat(),
    }


class CertificateResource(LifecycleResource):
    """
    State machine for ``Custom::X509Certificate``.

    Create issues a fresh key and certificate (self-signed unless a signing
    certificate is referenced) and stores key, key passphrase, certificate
    and chain as separate secrets. Update is a no-op unless an
    identity-affecting property changed, in which case it creates a
    replacement under a new physical id and leaves the old secrets for the
    orchestrator's follow-up Delete.
    """

    resource_type = RESOURCE_TYPE

    def create(self, event: LifecycleEvent) -> ResourceOutcome:
        request = self._parse_request(event.properties)
        return self._create(event, request)

    def update(self, event: LifecycleEvent) -> ResourceOutcome:
        request = self._parse_request(event.properties)
        old = CertificateIdentity.parse(event.physical_id)

        if old is None or old.logical_id != event.logical_id:
            logger.warning(
                f"No recorded state in physical id {event.physical_id!r}, "
                "creating a fresh certificate"
            )
            return self._create(event, request)

        if old.digest != request.identity_digest:
            self._log_changes(event, request)
            return self._create(event, request)

        naming = self.naming(event)
        artifacts = self._artifacts(request)
        existing = self.describe_artifacts(naming, old.base_name, artifacts)

        if consistent_serial(existing, artifacts) != old.serial_hex:
            logger.warning(
                f"Secrets for {old.physical_id} are missing or superseded, "
                "creating a fresh certificate"
            )
            return self._create(event, request)

        self._retag(event, request, existing, old.serial_hex)
        logger.info(f"No identity-affecting change, keeping {old.physical_id}")
        certificate = load_certificate(self.read_secret(existing[ARTIFACT_CERT].arn))
        return ResourceOutcome(
            physical_id=old.physical_id,
            data=certificate_data(existing, certificate),
        )

    def delete(self, event: LifecycleEvent) -> ResourceOutcome:
        identity = CertificateIdentity.parse(event.physical_id)
        if identity is None:
            logger.info(f"Physical id {event.physical_id!r} has no secrets to delete")
            return ResourceOutcome(physical_id=event.physical_id or event.logical_id)

        naming = self.naming(event)
        existing = self.describe_artifacts(
            naming, identity.base_name, CERTIFICATE_ARTIFACTS
        )
        for artifact, ref in existing.items():
            if ref is None:
                logger.info(f"Secret {artifact} for {identity.physical_id} already absent")
                continue
            if ref.tags.get(TAG_SERIAL) != identity.serial_hex:
                logger.info(
                    f"Secret {ref.name} belongs to serial "
                    f"{ref.tags.get(TAG_SERIAL)}, not deleting"
                )
                continue
            self.retry.call(self.store.delete, ref)

        return ResourceOutcome(physical_id=identity.physical_id)

    def _create(
        self,
        event: LifecycleEvent,
        request: CertificateRequest,
    ) -> ResourceOutcome:
        naming = self.naming(event)
        base_name = f"{event.logical_id}-{request.identity_digest}"
        artifacts = self._artifacts(request)
        existing = self.describe_artifacts(naming, base_name, artifacts)

        serial_hex = consistent_serial(existing, artifacts)
        if serial_hex:
            identity = CertificateIdentity(
                event.logical_id, request.identity_digest, serial_hex
            )
            logger.info(f"Secrets for {identity.physical_id} already complete, reusing")
            certificate = load_certificate(self.read_secret(existing[ARTIFACT_CERT].arn))
            return ResourceOutcome(
                physical_id=identity.physical_id,
                data=certificate_data(existing, certificate),
            )

        signing_context = None
        if request.signing_authority is not None:
            signing_context = self._load_signing_context(request.signing_authority)

        key = self.crypto.generate_key_pair()
        issued = self.crypto.issue_certificate(request, key, signing_context)
        passphrase = self.crypto.generate_passphrase()

        writes = self._writes(event, request, naming, base_name, issued, passphrase)
        refs = self.write_secrets(writes, existing)

        identity = CertificateIdentity(
            event.logical_id, request.identity_digest, issued.serial_hex
        )
        logger.info(f"Created certificate resource {identity.physical_id}")
        return ResourceOutcome(
            physical_id=identity.physical_id,
            data=certificate_data(refs, issued.certificate),
        )

    def _writes(
        self,
        event: LifecycleEvent,
        request: CertificateRequest,
        naming: SecretNaming,
        base_name: str,
        issued: IssuedCertificate,
        passphrase: str,
    ) -> list[SecretWrite]:
        common_name = request.subject.common_name
        values = [
            (
                ARTIFACT_KEY,
                issued.key.private_key_pem(passphrase).decode("ascii"),
                f"Encrypted private key for {common_name}",
            ),
            (
                ARTIFACT_PASSPHRASE,
                passphrase,
                f"Private key passphrase for {common_name}",
            ),
        ]
        if issued.chain:
            values.append(
                (
                    ARTIFACT_CHAIN,
                    issued.chain_pem.decode("ascii"),
                    f"Issuer chain for {common_name}",
                )
            )
        # Certificate last: its presence marks the set as written
        values.append(
            (
                ARTIFACT_CERT,
                issued.certificate_pem.decode("ascii"),
                f"X.509 certificate for {common_name}",
            )
        )

        return [
            SecretWrite(
                artifact=artifact,
                name=naming.name(base_name, artifact),
                value=value,
                description=description,
                tags=secret_tags(request.tags, event.logical_id, artifact, issued.serial_hex),
            )
            for artifact, value, description in values
        ]

    def _load_signing_context(self, secrets: CertificateSecrets) -> SigningContext:
        """
        Load and check the signing authority.

        Raises:
            InvalidCertificateMaterial: If the authority is not a CA or its
                chain does not validate
        """
        authority = self.read_issued_certificate(secrets)
        subject = authority.subject.rfc4514_string()

        try:
            constraints = authority.certificate.extensions.get_extension_for_class(
                x509.BasicConstraints
            ).value
        except x509.ExtensionNotFound:
            constraints = None
        if constraints is None or not constraints.ca:
            raise InvalidCertificateMaterial(
                f"Signing certificate {subject} is not a certificate authority"
            )

        if not verify_chain(authority.certificate, authority.chain):
            raise InvalidCertificateMaterial(
                f"Signing certificate {subject} does not validate against its chain"
            )

        return SigningContext.from_issued(authority)

    def _parse_request(self, properties: dict) -> CertificateRequest:
        return CertificateRequest.from_properties(
            properties, self.settings.default_validity_days
        )

    @staticmethod
    def _artifacts(request: CertificateRequest) -> list[str]:
        artifacts = [ARTIFACT_CERT, ARTIFACT_KEY, ARTIFACT_PASSPHRASE]
        if not request.is_self_signed:
            artifacts.append(ARTIFACT_CHAIN)
        return artifacts

    def _retag(
        self,
        event: LifecycleEvent,
        request: CertificateRequest,
        existing: dict[str, SecretRef | None],
        serial_hex: str,
    ) -> None:
        """Bring the user tags on the kept secrets in line with ``Tags``."""
        bookkeeping = {TAG_LOGICAL_ID, TAG_ARTIFACT, TAG_SERIAL}
        wanted_user_tags = {tag.key: tag.value for tag in request.tags}
        for artifact, ref in existing.items():
            if ref is None:
                continue
            current_user_tags = {
                k: v for k, v in ref.tags.items() if k not in bookkeeping
            }
            if current_user_tags == wanted_user_tags:
                continue
            stale = sorted(current_user_tags.keys() - wanted_user_tags.keys())
            if stale:
                self.retry.call(self.store.untag, ref, stale)
            tags = secret_tags(request.tags, event.logical_id, artifact, serial_hex)
            self.retry.call(self.store.tag, ref, tags)
            logger.info(f"Updated tags on {ref.name}")

    def _log_changes(self, event: LifecycleEvent, request: CertificateRequest) -> None:
        if event.old_properties is None:
            logger.info("Identity-affecting properties changed, replacing certificate")
            return
        try:
            previous = self._parse_request(event.old_properties).identity_fields()
        except InvalidProperties:
            previous = {}
        current = request.identity_fields()
        changed = sorted(
            key
            for key in set(previous) | set(current)
            if previous.get(key) != current.get(key)
        )
        logger.info(f"Identity-affecting properties changed {changed}, replacing certificate")

"""AWS Certificate Manager adapter for importing generated certificates."""

import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from x509_lifecycle.exceptions import StoreUnavailable
from x509_lifecycle.store.errors import error_code, translate_error

logger = logging.getLogger(__name__)


class AcmCertificateStore:
    """Import and delete certificates in ACM."""

    def __init__(self, acm_client=None):
        """
        Initialize the ACM store.

        Args:
            acm_client: Optional boto3 ACM client (for testing)
        """
        self._client = acm_client

    @property
    def client(self):
        """Lazy-load ACM client."""
        if self._client is None:
            self._client = boto3.client("acm")
        return self._client

    def import_certificate(
        self,
        certificate_pem: bytes,
        private_key_pem: bytes,
        chain_pem: bytes = b"",
        tags: dict[str, str] | None = None,
        certificate_arn: str | None = None,
    ) -> str:
        """
        Import a certificate, or re-import into an existing ARN.

        Tags can only be applied on first import.

        Returns:
            ARN of the imported certificate
        """
        request: dict = {
            "Certificate": certificate_pem,
            "PrivateKey": private_key_pem,
        }
        if chain_pem:
            request["CertificateChain"] = chain_pem
        if certificate_arn:
            request["CertificateArn"] = certificate_arn
        elif tags:
            request["Tags"] = [{"Key": k, "Value": v} for k, v in tags.items()]

        resource = certificate_arn or "new ACM certificate"
        try:
            response = self.client.import_certificate(**request)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, resource) from e

        arn = response["CertificateArn"]
        logger.info(f"Imported certificate into ACM: {arn}")
        return arn

    def delete_certificate(self, certificate_arn: str) -> None:
        """
        Delete an ACM certificate. Deleting an absent certificate succeeds.

        Raises:
            StoreUnavailable: While the certificate is still attached to a listener
        """
        try:
            self.client.delete_certificate(CertificateArn=certificate_arn)
            logger.info(f"Deleted ACM certificate {certificate_arn}")
        except ClientError as e:
            code = error_code(e)
            if code == "ResourceNotFoundException":
                logger.info(f"ACM certificate {certificate_arn} already deleted")
                return
            if code == "ResourceInUseException":
                raise StoreUnavailable(
                    f"ACM certificate {certificate_arn} is still in use"
                ) from e
            raise translate_error(e, certificate_arn) from e
        except BotoCoreError as e:
            raise translate_error(e, certificate_arn) from e

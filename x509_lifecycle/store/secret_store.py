"""AWS Secrets Manager adapter for certificate material."""

import hashlib
import logging
import uuid

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from x509_lifecycle.models import SecretRef
from x509_lifecycle.store.errors import error_code, translate_error

logger = logging.getLogger(__name__)

# Namespace for deterministic ClientRequestTokens
_REQUEST_TOKEN_NAMESPACE = uuid.UUID("6f0f3a52-7c1e-4b8e-9d35-2f7f0c6a9b41")


def _request_token(name: str, value: bytes) -> str:
    """Version token derived from name and content, so a repeated write is a no-op."""
    digest = hashlib.sha256(value).hexdigest()
    return str(uuid.uuid5(_REQUEST_TOKEN_NAMESPACE, f"{name}:{digest}"))


def _tag_list(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def _is_pending_deletion(error: ClientError) -> bool:
    message = error.response.get("Error", {}).get("Message", "")
    return error_code(error) == "InvalidRequestException" and (
        "scheduled for deletion" in message or "marked for deletion" in message
    )


class SecretStore:
    """
    Versioned, encrypted blobs addressed by name.

    ``put`` on an existing name adds a new version instead of replacing the
    secret, and ``delete`` succeeds when the secret is already gone. Every
    botocore failure is raised as StoreUnavailable, AccessDenied,
    SecretNotFound or StoreError; retrying is left to the caller.
    """

    def __init__(self, kms_key_id: str = "", secretsmanager_client=None):
        """
        Initialize the secret store.

        Args:
            kms_key_id: Optional KMS key used to encrypt new secrets
            secretsmanager_client: Optional boto3 Secrets Manager client (for testing)
        """
        self.kms_key_id = kms_key_id
        self._client = secretsmanager_client

    @property
    def client(self):
        """Lazy-load Secrets Manager client."""
        if self._client is None:
            self._client = boto3.client("secretsmanager")
        return self._client

    def put(
        self,
        name: str,
        value: bytes | str,
        description: str = "",
        tags: dict[str, str] | None = None,
    ) -> SecretRef:
        """
        Write a secret, creating it or adding a new version.

        Bytes are stored as SecretBinary, strings as SecretString.

        Returns:
            Reference to the written version
        """
        tags = tags or {}
        raw = value if isinstance(value, bytes) else value.encode("utf-8")
        if isinstance(value, bytes):
            payload: dict = {"SecretBinary": value}
        else:
            payload = {"SecretString": value}
        token = _request_token(name, raw)

        create_args = {"Name": name, "ClientRequestToken": token, **payload}
        if description:
            create_args["Description"] = description
        if tags:
            create_args["Tags"] = _tag_list(tags)
        if self.kms_key_id:
            create_args["KmsKeyId"] = self.kms_key_id

        try:
            response = self.client.create_secret(**create_args)
            logger.info(f"Created secret {name}")
            return SecretRef(
                arn=response["ARN"],
                name=response["Name"],
                version_id=response.get("VersionId"),
                tags=tags,
            )
        except ClientError as e:
            if _is_pending_deletion(e):
                self._restore(name)
            elif error_code(e) != "ResourceExistsException":
                raise translate_error(e, name) from e
        except BotoCoreError as e:
            raise translate_error(e, name) from e

        try:
            response = self.client.put_secret_value(
                SecretId=name,
                ClientRequestToken=token,
                **payload,
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, name) from e

        ref = SecretRef(
            arn=response["ARN"],
            name=response["Name"],
            version_id=response.get("VersionId"),
            tags=tags,
        )
        if tags:
            self.tag(ref, tags)
        logger.info(f"Added version {ref.version_id} to existing secret {name}")
        return ref

    def get(self, ref: SecretRef | str) -> bytes:
        """
        Read the current (or referenced) version of a secret.

        Raises:
            SecretNotFound: If the secret does not exist
        """
        secret_id = ref.arn if isinstance(ref, SecretRef) else ref
        request = {"SecretId": secret_id}
        if isinstance(ref, SecretRef) and ref.version_id:
            request["VersionId"] = ref.version_id

        try:
            response = self.client.get_secret_value(**request)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, secret_id) from e

        if "SecretBinary" in response:
            return bytes(response["SecretBinary"])
        return response.get("SecretString", "").encode("utf-8")

    def describe(self, name: str) -> SecretRef | None:
        """
        Look up a secret's metadata without reading its value.

        Returns:
            Reference to the current version, or None if the secret does not
            exist or is scheduled for deletion
        """
        try:
            response = self.client.describe_secret(SecretId=name)
        except ClientError as e:
            if error_code(e) == "ResourceNotFoundException":
                return None
            raise translate_error(e, name) from e
        except BotoCoreError as e:
            raise translate_error(e, name) from e

        if response.get("DeletedDate"):
            return None

        current_version = next(
            (
                version_id
                for version_id, stages in response.get("VersionIdsToStages", {}).items()
                if "AWSCURRENT" in stages
            ),
            None,
        )
        return SecretRef(
            arn=response["ARN"],
            name=response["Name"],
            version_id=current_version,
            tags={t["Key"]: t.get("Value", "") for t in response.get("Tags", [])},
        )

    def delete(self, ref: SecretRef | str) -> None:
        """Delete a secret immediately. Deleting an absent secret succeeds."""
        secret_id = ref.arn if isinstance(ref, SecretRef) else ref
        try:
            self.client.delete_secret(
                SecretId=secret_id,
                ForceDeleteWithoutRecovery=True,
            )
            logger.info(f"Deleted secret {secret_id}")
        except ClientError as e:
            if error_code(e) == "ResourceNotFoundException" or _is_pending_deletion(e):
                logger.info(f"Secret {secret_id} already deleted")
                return
            raise translate_error(e, secret_id) from e
        except BotoCoreError as e:
            raise translate_error(e, secret_id) from e

    def tag(self, ref: SecretRef | str, metadata: dict[str, str]) -> None:
        """Attach tags to a secret."""
        secret_id = ref.arn if isinstance(ref, SecretRef) else ref
        try:
            self.client.tag_resource(SecretId=secret_id, Tags=_tag_list(metadata))
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, secret_id) from e
        logger.debug(f"Tagged secret {secret_id} with {sorted(metadata)}")

    def untag(self, ref: SecretRef | str, keys: list[str]) -> None:
        """Remove tags from a secret."""
        secret_id = ref.arn if isinstance(ref, SecretRef) else ref
        try:
            self.client.untag_resource(SecretId=secret_id, TagKeys=list(keys))
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, secret_id) from e
        logger.debug(f"Removed tags {sorted(keys)} from secret {secret_id}")

    def _restore(self, name: str) -> None:
        """Cancel a pending deletion so the name can take a new version."""
        try:
            self.client.restore_secret(SecretId=name)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, name) from e
        logger.info(f"Restored secret {name} pending deletion")

"""Pytest fixtures for X.509 certificate lifecycle tests."""

import hashlib
import random
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from x509_lifecycle.config import Settings
from x509_lifecycle.crypto import CryptoProvider
from x509_lifecycle.models import LifecycleEvent
from x509_lifecycle.resources import RetryPolicy
from x509_lifecycle.store import AcmCertificateStore, SecretStore

REGION = "us-west-2"
ACCOUNT = "123456789012"
STACK_ID = (
    f"arn:aws:cloudformation:{REGION}:{ACCOUNT}:stack/render-farm/"
    "8f3c1a40-0000-11ef-9c4e-0a1b2c3d4e5f"
)


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    """Build a botocore ClientError as boto3 would raise it."""
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class FakeSecretsManager:
    """In-memory Secrets Manager client covering the calls SecretStore makes."""

    def __init__(self):
        self.secrets: dict[str, dict] = {}
        self.calls: list[str] = []
        self._failures: dict[str, list[ClientError]] = {}

    def fail_next(self, operation: str, code: str, times: int = 1, message: str = ""):
        """Make the next ``times`` calls of ``operation`` raise ``code``."""
        self._failures.setdefault(operation, []).extend(
            client_error(code, operation, message) for _ in range(times)
        )

    def schedule_deletion(self, name: str):
        """Mark a secret as pending deletion, as a non-forced delete would."""
        self.secrets[name]["DeletedDate"] = datetime.now(UTC)

    def value(self, name: str) -> bytes | str:
        """Current value of a secret by name."""
        secret = self.secrets[name]
        payload = secret["Versions"][secret["Current"]]
        return payload.get("SecretBinary", payload.get("SecretString"))

    def _record(self, operation: str):
        self.calls.append(operation)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _arn(self, name: str) -> str:
        suffix = hashlib.sha256(name.encode()).hexdigest()[:6]
        return f"arn:aws:secretsmanager:{REGION}:{ACCOUNT}:secret:{name}-{suffix}"

    def _lookup(self, secret_id: str, operation: str) -> dict:
        for name, secret in self.secrets.items():
            if secret_id in (name, secret["ARN"]):
                return secret
        raise client_error(
            "ResourceNotFoundException",
            operation,
            "Secrets Manager can't find the specified secret.",
        )

    def create_secret(self, **kwargs):
        self._record("CreateSecret")
        name = kwargs["Name"]
        existing = self.secrets.get(name)
        if existing is not None:
            if existing.get("DeletedDate"):
                raise client_error(
                    "InvalidRequestException",
                    "CreateSecret",
                    "You can't create this secret because a secret with this name "
                    "is already scheduled for deletion.",
                )
            raise client_error("ResourceExistsException", "CreateSecret")

        version_id = kwargs["ClientRequestToken"]
        payload = {k: kwargs[k] for k in ("SecretString", "SecretBinary") if k in kwargs}
        self.secrets[name] = {
            "ARN": self._arn(name),
            "Name": name,
            "Description": kwargs.get("Description", ""),
            "KmsKeyId": kwargs.get("KmsKeyId"),
            "Tags": {t["Key"]: t["Value"] for t in kwargs.get("Tags", [])},
            "Versions": {version_id: payload},
            "Current": version_id,
            "DeletedDate": None,
        }
        return {"ARN": self._arn(name), "Name": name, "VersionId": version_id}

    def put_secret_value(self, **kwargs):
        self._record("PutSecretValue")
        secret = self._lookup(kwargs["SecretId"], "PutSecretValue")
        version_id = kwargs["ClientRequestToken"]
        payload = {k: kwargs[k] for k in ("SecretString", "SecretBinary") if k in kwargs}
        if version_id in secret["Versions"] and secret["Versions"][version_id] != payload:
            raise client_error("ResourceExistsException", "PutSecretValue")
        secret["Versions"][version_id] = payload
        secret["Current"] = version_id
        return {"ARN": secret["ARN"], "Name": secret["Name"], "VersionId": version_id}

    def get_secret_value(self, **kwargs):
        self._record("GetSecretValue")
        secret = self._lookup(kwargs["SecretId"], "GetSecretValue")
        if secret.get("DeletedDate"):
            raise client_error(
                "InvalidRequestException",
                "GetSecretValue",
                "You can't perform this operation on the secret because it was "
                "marked for deletion.",
            )
        version_id = kwargs.get("VersionId", secret["Current"])
        return {
            "ARN": secret["ARN"],
            "Name": secret["Name"],
            "VersionId": version_id,
            **secret["Versions"][version_id],
        }

    def describe_secret(self, **kwargs):
        self._record("DescribeSecret")
        secret = self._lookup(kwargs["SecretId"], "DescribeSecret")
        response = {
            "ARN": secret["ARN"],
            "Name": secret["Name"],
            "Tags": [{"Key": k, "Value": v} for k, v in secret["Tags"].items()],
            "VersionIdsToStages": {secret["Current"]: ["AWSCURRENT"]},
        }
        if secret.get("DeletedDate"):
            response["DeletedDate"] = secret["DeletedDate"]
        return response

    def delete_secret(self, **kwargs):
        self._record("DeleteSecret")
        secret = self._lookup(kwargs["SecretId"], "DeleteSecret")
        if kwargs.get("ForceDeleteWithoutRecovery"):
            del self.secrets[secret["Name"]]
        else:
            secret["DeletedDate"] = datetime.now(UTC)
        return {"ARN": secret["ARN"], "Name": secret["Name"]}

    def tag_resource(self, **kwargs):
        self._record("TagResource")
        secret = self._lookup(kwargs["SecretId"], "TagResource")
        secret["Tags"].update({t["Key"]: t["Value"] for t in kwargs["Tags"]})
        return {}

    def untag_resource(self, **kwargs):
        self._record("UntagResource")
        secret = self._lookup(kwargs["SecretId"], "UntagResource")
        for key in kwargs["TagKeys"]:
            secret["Tags"].pop(key, None)
        return {}

    def restore_secret(self, **kwargs):
        self._record("RestoreSecret")
        secret = self._lookup(kwargs["SecretId"], "RestoreSecret")
        secret["DeletedDate"] = None
        return {"ARN": secret["ARN"], "Name": secret["Name"]}


class FakeAcm:
    """In-memory ACM client covering import and delete."""

    def __init__(self):
        self.certificates: dict[str, dict] = {}
        self.in_use: set[str] = set()
        self.calls: list[str] = []
        self._failures: dict[str, list[ClientError]] = {}
        self._counter = 0

    def fail_next(self, operation: str, code: str, times: int = 1):
        self._failures.setdefault(operation, []).extend(
            client_error(code, operation) for _ in range(times)
        )

    def _record(self, operation: str):
        self.calls.append(operation)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def import_certificate(self, **kwargs):
        self._record("ImportCertificate")
        arn = kwargs.get("CertificateArn")
        if arn is None:
            self._counter += 1
            arn = f"arn:aws:acm:{REGION}:{ACCOUNT}:certificate/fake-{self._counter:04d}"
            tags = {t["Key"]: t["Value"] for t in kwargs.get("Tags", [])}
        elif arn not in self.certificates:
            raise client_error("ResourceNotFoundException", "ImportCertificate")
        else:
            tags = self.certificates[arn]["Tags"]

        self.certificates[arn] = {
            "Certificate": kwargs["Certificate"],
            "PrivateKey": kwargs["PrivateKey"],
            "CertificateChain": kwargs.get("CertificateChain", b""),
            "Tags": tags,
        }
        return {"CertificateArn": arn}

    def delete_certificate(self, **kwargs):
        self._record("DeleteCertificate")
        arn = kwargs["CertificateArn"]
        if arn in self.in_use:
            raise client_error("ResourceInUseException", "DeleteCertificate")
        if arn not in self.certificates:
            raise client_error("ResourceNotFoundException", "DeleteCertificate")
        del self.certificates[arn]
        return {}


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, isolated from the environment's .env file."""
    return Settings(_env_file=None, store_retry_delay=0)


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for reproducible serials and passphrases."""
    return random.Random(20240501)


@pytest.fixture
def crypto(rng) -> CryptoProvider:
    return CryptoProvider(rng=rng)


@pytest.fixture
def secretsmanager() -> FakeSecretsManager:
    return FakeSecretsManager()


@pytest.fixture
def store(secretsmanager) -> SecretStore:
    return SecretStore(secretsmanager_client=secretsmanager)


@pytest.fixture
def acm_client() -> FakeAcm:
    return FakeAcm()


@pytest.fixture
def acm_store(acm_client) -> AcmCertificateStore:
    return AcmCertificateStore(acm_client=acm_client)


@pytest.fixture
def retry() -> RetryPolicy:
    """Retry policy that does not sleep."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=MagicMock())


@pytest.fixture
def make_event():
    """Factory for lifecycle events with CloudFormation field names."""

    def _make_event(
        request_type: str,
        resource_type: str,
        logical_id: str,
        properties: dict,
        physical_id: str | None = None,
        old_properties: dict | None = None,
    ) -> LifecycleEvent:
        payload = {
            "RequestType": request_type,
            "ResourceType": resource_type,
            "LogicalResourceId": logical_id,
            "ResourceProperties": {
                "ServiceToken": f"arn:aws:lambda:{REGION}:{ACCOUNT}:function:x509",
                **properties,
            },
            "StackId": STACK_ID,
            "RequestId": "5d3b1f7e-7f3e-4b1a-9a7e-2f0c9e6d1a10",
        }
        if physical_id is not None:
            payload["PhysicalResourceId"] = physical_id
        if old_properties is not None:
            payload["OldResourceProperties"] = old_properties
        return LifecycleEvent.model_validate(payload)

    return _make_event

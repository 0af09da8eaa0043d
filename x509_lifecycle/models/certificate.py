"""Certificate request and resource property models."""

import hashlib
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from x509_lifecycle.exceptions import InvalidProperties


class DistinguishedName(BaseModel):
    """Subject distinguished name of a certificate."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    common_name: str = Field(..., alias="CN", description="Common name (DNS name)")
    organization: str | None = Field(default=None, alias="O")
    organizational_unit: str | None = Field(default=None, alias="OU")
    locality: str | None = Field(default=None, alias="L")
    country: str | None = Field(default=None, alias="C")


class SecretTag(BaseModel):
    """A user-supplied tag applied to every secret a resource writes."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="Key", min_length=1)
    value: str = Field(default="", alias="Value")


class CertificateSecrets(BaseModel):
    """Secret ARNs of a certificate produced by a certificate resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cert: str = Field(..., alias="Cert", min_length=1)
    key: str = Field(..., alias="Key", min_length=1)
    passphrase: str = Field(..., alias="Passphrase", min_length=1)
    cert_chain: str = Field(default="", alias="CertChain")


class CertificateRequest(BaseModel):
    """Declared subject, validity and optional signing authority of a certificate."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject: DistinguishedName = Field(..., alias="Subject")
    validity_days: int = Field(..., alias="ValidFor", description="Validity in days")
    is_authority: bool | None = Field(
        default=None,
        alias="IsAuthority",
        description="Whether the certificate may sign others (defaults to self-signed)",
    )
    signing_authority: CertificateSecrets | None = Field(
        default=None,
        alias="SigningCertificate",
        description="Certificate resource acting as issuer (absent for self-signed)",
    )
    tags: list[SecretTag] = Field(default_factory=list, alias="Tags")

    @classmethod
    def from_properties(
        cls,
        properties: dict[str, Any],
        default_validity_days: int,
    ) -> "CertificateRequest":
        """Parse CloudFormation resource properties into a request."""
        data = dict(properties)
        data.setdefault("ValidFor", default_validity_days)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidProperties(f"Invalid certificate properties: {e}") from e

    @property
    def is_self_signed(self) -> bool:
        """Whether the certificate acts as its own authority."""
        return self.signing_authority is None

    @property
    def is_ca(self) -> bool:
        """Whether the issued certificate carries CA basic constraints."""
        if self.is_authority is None:
            return self.is_self_signed
        return self.is_authority

    def identity_fields(self) -> dict[str, Any]:
        """Properties whose change replaces the certificate."""
        return self.model_dump(
            by_alias=True,
            include={"subject", "validity_days", "is_authority", "signing_authority"},
            exclude_none=True,
        )

    @property
    def identity_digest(self) -> str:
        """Short stable digest of the identity-affecting properties."""
        canonical = json.dumps(self.identity_fields(), sort_keys=True)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


class SourceCertificateProperties(BaseModel):
    """Properties of resources derived from an existing certificate resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source: CertificateSecrets = Field(..., alias="Source")
    tags: list[SecretTag] = Field(default_factory=list, alias="Tags")

    @classmethod
    def from_properties(
        cls, properties: dict[str, Any]
    ) -> "SourceCertificateProperties":
        """Parse CloudFormation resource properties."""
        try:
            return cls.model_validate(properties)
        except ValidationError as e:
            raise InvalidProperties(f"Invalid source certificate properties: {e}") from e

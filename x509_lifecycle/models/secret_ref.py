"""Handle to a blob in the secret store."""

from pydantic import BaseModel, Field


class SecretRef(BaseModel):
    """Opaque reference to a stored secret."""

    arn: str = Field(..., description="Secret ARN")
    name: str = Field(..., description="Secret name")
    version_id: str | None = Field(default=None, description="Version token")
    tags: dict[str, str] = Field(default_factory=dict)

    def __str__(self) -> str:
        return self.arn

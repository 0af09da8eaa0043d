"""Custom resource lifecycle event and response envelope models."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RequestType(StrEnum):
    """Lifecycle event kinds delivered by CloudFormation."""

    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class ResponseStatus(StrEnum):
    """Outcome reported back to CloudFormation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class LifecycleEvent(BaseModel):
    """Inbound custom resource event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    request_type: RequestType = Field(..., alias="RequestType")
    resource_type: str = Field(..., alias="ResourceType")
    logical_id: str = Field(..., alias="LogicalResourceId", min_length=1)
    physical_id: str | None = Field(default=None, alias="PhysicalResourceId")
    properties: dict[str, Any] = Field(default_factory=dict, alias="ResourceProperties")
    old_properties: dict[str, Any] | None = Field(
        default=None, alias="OldResourceProperties"
    )
    stack_id: str = Field(default="", alias="StackId")
    request_id: str = Field(default="", alias="RequestId")
    response_url: str | None = Field(default=None, alias="ResponseURL")

    @property
    def stack_name(self) -> str:
        """Stack name parsed from ``arn:...:stack/<name>/<guid>``."""
        if ":stack/" not in self.stack_id:
            return ""
        return self.stack_id.split(":stack/", 1)[1].split("/", 1)[0]


class ResourceOutcome(BaseModel):
    """Result of a successful state machine transition."""

    physical_id: str
    data: dict[str, str] = Field(default_factory=dict)


class ResponseEnvelope(BaseModel):
    """Outbound response delivered to the event's ResponseURL."""

    model_config = ConfigDict(populate_by_name=True)

    status: ResponseStatus = Field(..., alias="Status")
    reason: str = Field(default="", alias="Reason")
    physical_id: str = Field(..., alias="PhysicalResourceId")
    stack_id: str = Field(default="", alias="StackId")
    request_id: str = Field(default="", alias="RequestId")
    logical_id: str = Field(default="", alias="LogicalResourceId")
    no_echo: bool = Field(default=False, alias="NoEcho")
    data: dict[str, str] = Field(default_factory=dict, alias="Data")

    def to_payload(self) -> dict[str, Any]:
        """Serialize using CloudFormation field names."""
        return self.model_dump(mode="json", by_alias=True)

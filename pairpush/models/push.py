"""Request/response models for the registrar and dispatcher endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NotificationType = Literal["image", "note"]


class DeviceRegisterRequest(BaseModel):
    """Device token registration request.

    Mandatory fields are optional here so that a missing value is
    reported as a 400 by the handler rather than as a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId", description="Owning user identifier")
    token: str | None = Field(None, description="Provider-issued push token")
    device_info: dict[str, Any] | None = Field(
        None,
        alias="deviceInfo",
        description="Free-form device metadata (OS, app version, ...)",
    )


class PushRequest(BaseModel):
    """Push notification dispatch request."""

    model_config = ConfigDict(populate_by_name=True)

    recipient_id: str | None = Field(None, alias="recipientId", description="Recipient user id")
    type: NotificationType | None = Field(None, description="Notification kind: image or note")
    content: str | None = Field(None, description="Note text")
    image_url: str | None = Field(None, alias="imageUrl", description="Shared image URL")
    from_name: str | None = Field(None, alias="fromName", description="Sender display name")
    timestamp: str | None = Field(None, description="Origination time (ISO-8601)")

    @field_validator("content", "image_url", "from_name", "timestamp", mode="before")
    @classmethod
    def coerce_scalars(cls, value: Any) -> Any:
        """Data payload values are strings; JSON numbers and booleans are stringified."""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int | float):
            return str(value)
        return value


class RegisterResponse(BaseModel):
    """Registrar success response."""

    ok: bool = True


class DispatchResponse(BaseModel):
    """Dispatcher success response."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    message: str | None = None
    sent_to: int = Field(..., alias="sentTo", description="Number of device tokens targeted")
    succeeded: int | None = Field(None, description="Deliveries accepted by the provider")
    failed: int | None = Field(None, description="Deliveries that failed")


class DeviceToken(BaseModel):
    """Stored device token record, unique per (user_id, token)."""

    user_id: str
    token: str
    device_info: dict[str, Any] = Field(default_factory=dict)
    updated_at: str  # ISO8601 timestamp


class DeviceTokenFile(BaseModel):
    """On-disk structure of the file token store."""

    devices: list[DeviceToken] = []

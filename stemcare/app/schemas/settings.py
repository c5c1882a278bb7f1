"""System settings schemas."""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class SystemSettingsResponse(BaseModel):
    """General system settings as served to the admin frontend."""

    system_name: str
    system_version: str | None = None
    admin_email: str | None = None
    admin_phone: str | None = None
    system_description: str | None = None
    enable_notifications: bool = True

    model_config = {"populate_by_name": True, "alias_generator": to_camel}


class SystemSettingsUpdate(BaseModel):
    """Schema for updating general settings; only the given fields change."""

    system_name: str | None = Field(default=None, min_length=1, max_length=100)
    admin_email: str | None = Field(default=None, max_length=255)
    admin_phone: str | None = Field(default=None, max_length=50)
    system_description: str | None = Field(default=None, max_length=1000)
    enable_notifications: bool | None = None

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    def changes(self) -> dict:
        """Changed values keyed by their stored (camelCase) setting key."""
        return self.model_dump(by_alias=True, exclude_none=True)

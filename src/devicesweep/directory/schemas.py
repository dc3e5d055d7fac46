"""
Pydantic schemas for Graph device payloads.

Validates raw JSON objects from the /devices endpoint and maps them
onto the Device model.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from devicesweep.directory.models import Device


class GraphDevicePayload(BaseModel):
    """Subset of the Graph device resource used by devicesweep."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    device_id: str | None = Field(default=None, alias="deviceId")
    display_name: str | None = Field(default=None, alias="displayName")
    operating_system: str | None = Field(default=None, alias="operatingSystem")
    operating_system_version: str | None = Field(
        default=None, alias="operatingSystemVersion"
    )
    trust_type: str | None = Field(default=None, alias="trustType")
    account_enabled: bool = Field(default=False, alias="accountEnabled")
    approximate_last_sign_in: datetime | None = Field(
        default=None, alias="approximateLastSignInDateTime"
    )
    # Timestamp exactly as Graph sent it, for export
    last_sign_in_raw: str | None = None

    @model_validator(mode="before")
    @classmethod
    def keep_raw_timestamp(cls, data: Any) -> Any:
        """Copy the sign-in timestamp string before it is parsed."""
        if isinstance(data, dict) and "last_sign_in_raw" not in data:
            raw = data.get(
                "approximateLastSignInDateTime", data.get("approximate_last_sign_in")
            )
            if isinstance(raw, str):
                data = {**data, "last_sign_in_raw": raw}
        return data

    @field_validator("approximate_last_sign_in")
    @classmethod
    def validate_last_sign_in(cls, v: datetime | None) -> datetime | None:
        """Normalize to UTC; timestamps without an offset are UTC."""
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("account_enabled", mode="before")
    @classmethod
    def validate_account_enabled(cls, v: Any) -> Any:
        """Treat a null accountEnabled as disabled."""
        return False if v is None else v

    def to_device(self) -> Device:
        """Convert to the Device model."""
        return Device(
            id=self.id,
            device_id=self.device_id or "",
            display_name=self.display_name or "",
            operating_system=self.operating_system or "",
            operating_system_version=self.operating_system_version or "",
            trust_type=self.trust_type or "",
            account_enabled=self.account_enabled,
            approximate_last_sign_in=self.approximate_last_sign_in,
            last_sign_in_raw=self.last_sign_in_raw,
        )


def device_from_graph(data: dict[str, Any]) -> Device:
    """Validate a Graph JSON object and convert it to a Device."""
    return GraphDevicePayload.model_validate(data).to_device()

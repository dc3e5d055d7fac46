"""
Directory device model.

A read-only view of one Entra ID device object as returned by Graph.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


# Graph property names requested for every listing
DEVICE_SELECT_FIELDS = (
    "id",
    "deviceId",
    "displayName",
    "operatingSystem",
    "operatingSystemVersion",
    "trustType",
    "accountEnabled",
    "approximateLastSignInDateTime",
)


@dataclass(frozen=True)
class Device:
    """Registered directory device."""

    id: str  # Directory object id
    device_id: str  # Device registration id
    display_name: str
    operating_system: str
    operating_system_version: str
    trust_type: str
    account_enabled: bool
    approximate_last_sign_in: datetime | None  # UTC, updated periodically
    last_sign_in_raw: str | None = None  # As returned by the service

    @property
    def label(self) -> str:
        """Name used in console and log messages."""
        return self.display_name or self.device_id or self.id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary of export columns."""
        return {
            "display_name": self.display_name,
            "device_id": self.device_id,
            "id": self.id,
            "operating_system": self.operating_system,
            "operating_system_version": self.operating_system_version,
            "trust_type": self.trust_type,
            "approximate_last_sign_in": self.last_sign_in_raw or "",
            "account_enabled": self.account_enabled,
        }


REPORT_FIELDS = (
    "display_name",
    "device_id",
    "id",
    "operating_system",
    "operating_system_version",
    "trust_type",
    "approximate_last_sign_in",
    "account_enabled",
)

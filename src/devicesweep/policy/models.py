"""
Policy data models.

Defines sweep modes, evaluation actions, run options and the records a
sweep produces.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

from devicesweep.directory.models import Device


class SweepMode(Enum):
    """What a sweep does with in-scope devices."""

    REPORT = "report"
    DISABLE = "disable"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value

    @property
    def mutates(self) -> bool:
        """Check if this mode changes devices."""
        return self is not SweepMode.REPORT

    @property
    def verb(self) -> str:
        return self.value

    @property
    def past_tense(self) -> str:
        return {
            SweepMode.REPORT: "reported",
            SweepMode.DISABLE: "disabled",
            SweepMode.DELETE: "deleted",
        }[self]


class Action(Enum):
    """Classification of a device within a sweep."""

    MUTATE = "mutate"
    AUDIT_ONLY = "audit-only"
    EXCLUDED = "excluded"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SweepOptions:
    """
    Options for one sweep run.

    Immutable once built; every evaluation in a run sees the same values.
    """

    days_back: int = 90
    include_enabled: bool = True
    include_disabled: bool = True
    dry_run: bool = True
    export_folder: Path = Path(".")

    def __post_init__(self) -> None:
        if self.days_back < 0:
            raise ValueError(f"days_back must be >= 0, got {self.days_back}")

    @property
    def is_vacuous(self) -> bool:
        """Check if no device can ever be in scope."""
        return not self.include_enabled and not self.include_disabled


@dataclass(frozen=True)
class Decision:
    """Result of evaluating one device."""

    action: Action
    note: str

    @property
    def should_mutate(self) -> bool:
        return self.action == Action.MUTATE

    @property
    def is_excluded(self) -> bool:
        return self.action == Action.EXCLUDED


@dataclass(frozen=True)
class ResultRecord:
    """One exported row describing what happened to a device."""

    display_name: str
    device_id: str
    id: str
    operating_system: str
    approximate_last_sign_in: str
    account_enabled: bool
    note: str

    @classmethod
    def from_device(cls, device: Device, note: str) -> ResultRecord:
        """Create a record from a device and its decision note."""
        return cls(
            display_name=device.display_name,
            device_id=device.device_id,
            id=device.id,
            operating_system=device.operating_system,
            approximate_last_sign_in=device.last_sign_in_raw or "",
            account_enabled=device.account_enabled,
            note=note,
        )

    @classmethod
    def field_names(cls) -> list[str]:
        """Column names in export order."""
        return [f.name for f in fields(cls)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {name: getattr(self, name) for name in self.field_names()}


@dataclass(frozen=True)
class DeviceOutcome:
    """
    Per-device result of a sweep.

    Either a success carrying the record to export, or a failure carrying
    the error message. Failures are never exported.
    """

    device: Device
    decision: Decision
    record: ResultRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, device: Device, decision: Decision) -> DeviceOutcome:
        return cls(
            device=device,
            decision=decision,
            record=ResultRecord.from_device(device, decision.note),
        )

    @classmethod
    def failure(cls, device: Device, decision: Decision, error: str) -> DeviceOutcome:
        return cls(device=device, decision=decision, error=error)

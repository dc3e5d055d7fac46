"""
Sweep Runner - Connect, Filter, Act, Export.

Ties together the directory client, the stale-device evaluator and the
CSV export to run one report, disable or delete sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from devicesweep.config import DevicesweepConfig
from devicesweep.directory.client import DirectoryClientProtocol, GraphDirectoryClient
from devicesweep.directory.errors import DirectoryError, FatalDirectoryError
from devicesweep.directory.models import Device
from devicesweep.export import export_path, write_devices, write_records
from devicesweep.policy.engine import StaleDeviceEvaluator
from devicesweep.policy.models import (
    Action,
    DeviceOutcome,
    ResultRecord,
    SweepMode,
    SweepOptions,
)


logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """
    Complete result of one sweep.

    Outcomes are kept in retrieval order. Only successful outcomes are
    exported; failures are reported separately.
    """

    mode: SweepMode
    options: SweepOptions
    threshold: str
    filter_predicate: str | None
    query_sent: bool = False
    outcomes: list[DeviceOutcome] = field(default_factory=list)
    export_path: Path | None = None
    statistics: dict[str, Any] = field(default_factory=dict)

    @property
    def records(self) -> list[ResultRecord]:
        """Records of all successfully processed devices."""
        return [o.record for o in self.outcomes if o.ok and o.record is not None]

    @property
    def failures(self) -> list[DeviceOutcome]:
        """Outcomes whose mutation failed."""
        return [o for o in self.outcomes if not o.ok]

    @property
    def devices(self) -> list[Device]:
        """In-scope devices, as exported by a report."""
        return [
            o.device
            for o in self.outcomes
            if o.ok and o.decision.action != Action.EXCLUDED
        ]

    @property
    def identified_count(self) -> int:
        """In-scope devices, counted the same way in every mode."""
        return len(self.devices)

    @property
    def exported_count(self) -> int:
        """Rows written; disable and delete also record excluded devices."""
        if self.mode == SweepMode.REPORT:
            return len(self.devices)
        return len(self.records)

    @property
    def message(self) -> str:
        """One-line result summary."""
        if self.identified_count:
            return f"{self.identified_count} devices identified in {self.export_path}"
        return "No devices found"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "mode": self.mode.value,
            "dry_run": self.options.dry_run if self.mode.mutates else None,
            "threshold": self.threshold,
            "filter": self.filter_predicate,
            "query_sent": self.query_sent,
            "message": self.message,
            "identified": self.identified_count,
            "exported": self.exported_count,
            "export_path": str(self.export_path) if self.export_path else None,
            "failures": [
                {
                    "display_name": o.device.display_name,
                    "id": o.device.id,
                    "error": o.error,
                }
                for o in self.failures
            ],
            "statistics": self.statistics,
        }


class SweepRunner:
    """
    Runs a sweep against the directory.

    The whole listing is read before any device is processed, so a
    failure on a later page aborts the run before anything is changed.
    Devices are then processed one at a time in retrieval order.
    Results are exported once, after the last device; interrupting a run
    loses the records gathered so far.
    """

    def __init__(
        self,
        client: DirectoryClientProtocol | None,
        options: SweepOptions,
        mode: SweepMode = SweepMode.REPORT,
    ) -> None:
        """
        Initialize the runner.

        Args:
            client: Directory client for listing and mutation; may be None
                only when the options exclude every device
            options: Run options
            mode: What to do with in-scope devices
        """
        self.client = client
        self.options = options
        self.mode = mode

    def run(self, now: datetime | None = None) -> SweepReport:
        """
        Run the sweep.

        Args:
            now: Reference instant for the threshold, defaults to now

        Returns:
            SweepReport with outcomes and export location

        Raises:
            FatalDirectoryError: On authentication or authorization failure
            ExportError: If the export file cannot be written
        """
        evaluator = StaleDeviceEvaluator(self.options, self.mode, now)
        predicate = evaluator.filter_predicate
        report = SweepReport(
            mode=self.mode,
            options=self.options,
            threshold=evaluator.threshold,
            filter_predicate=predicate,
        )

        if predicate is None:
            logger.info("Enabled and disabled devices both excluded; nothing to query")
            report.statistics = evaluator.get_statistics()
            return report

        if self.client is None:
            raise ValueError("A directory client is required to query devices")

        # Fail before any per-device work if the session cannot be established
        self.client.authenticate()

        logger.info(
            "Listing devices inactive since %s (%s)", evaluator.threshold, self.mode
        )
        report.query_sent = True
        # Read every page before the first mutation
        devices = list(self.client.list_devices(predicate))
        logger.info("%d devices returned", len(devices))

        for device in devices:
            report.outcomes.append(self._process(device, evaluator))

        report.statistics = evaluator.get_statistics()
        report.statistics["failed"] = len(report.failures)

        if report.exported_count:
            path = export_path(self.options.export_folder, self.mode, now)
            if self.mode == SweepMode.REPORT:
                report.export_path = write_devices(report.devices, path)
            else:
                report.export_path = write_records(report.records, path)
        else:
            logger.info("No devices matched; no export written")

        return report

    def _process(
        self,
        device: Device,
        evaluator: StaleDeviceEvaluator,
    ) -> DeviceOutcome:
        """Evaluate one device and apply its mutation if required."""
        decision = evaluator.evaluate(device)
        if not (self.mode.mutates and decision.should_mutate):
            return DeviceOutcome.success(device, decision)

        try:
            self.client.apply(self.mode, device, simulate=self.options.dry_run)
        except FatalDirectoryError:
            raise
        except DirectoryError as e:
            logger.warning("Failed to %s %s: %s", self.mode.verb, device.label, e.message)
            return DeviceOutcome.failure(device, decision, e.message)

        return DeviceOutcome.success(device, decision)


def create_runner(
    config: DevicesweepConfig,
    mode: SweepMode,
    client: DirectoryClientProtocol | None = None,
    options: SweepOptions | None = None,
) -> SweepRunner:
    """
    Create a runner from configuration.

    Args:
        config: Loaded configuration
        mode: Sweep mode
        client: Optional directory client; built from config if None
        options: Run options; taken from config.sweep if None

    Returns:
        Configured SweepRunner
    """
    if options is None:
        options = config.sweep.to_options()
    # A vacuous run never queries, so it needs no credentials
    if client is None and not options.is_vacuous:
        client = GraphDirectoryClient.from_config(config.graph)
    return SweepRunner(client=client, options=options, mode=mode)

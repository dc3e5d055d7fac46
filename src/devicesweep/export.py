"""
CSV export of sweep results.

Writes result records, or raw devices for reports, to a timestamped file
in the export folder. Existing files are overwritten.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from devicesweep.directory.models import REPORT_FIELDS, Device
from devicesweep.policy.models import ResultRecord, SweepMode


logger = logging.getLogger(__name__)

FILE_PREFIXES = {
    SweepMode.REPORT: "StaleDevices",
    SweepMode.DISABLE: "DisabledStaleDevices",
    SweepMode.DELETE: "DeletedStaleDevices",
}


class ExportError(Exception):
    """Export destination could not be written."""

    pass


def export_path(folder: str | Path, mode: SweepMode, now: datetime | None = None) -> Path:
    """
    Build the timestamped export path for a sweep.

    Args:
        folder: Export folder
        mode: Sweep mode, selects the file prefix
        now: Timestamp to embed, defaults to the local time

    Returns:
        Path such as ``<folder>/StaleDevices_20240601_093000.csv``
    """
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(folder) / f"{FILE_PREFIXES[mode]}_{stamp}.csv"


def _write_rows(
    rows: Iterable[dict[str, Any]],
    fieldnames: Sequence[str],
    path: str | Path,
) -> Path:
    """Write dict rows with a header, creating the folder if needed."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=list(fieldnames))
            writer.writeheader()
            count = 0
            for row in rows:
                writer.writerow(row)
                count += 1
    except OSError as e:
        raise ExportError(f"Cannot write export file {path}: {e}") from e

    logger.info("Exported %d rows to %s", count, path)
    return path


def write_records(records: Sequence[ResultRecord], path: str | Path) -> Path:
    """Write result records to CSV."""
    return _write_rows(
        (record.to_dict() for record in records),
        ResultRecord.field_names(),
        path,
    )


def write_devices(devices: Sequence[Device], path: str | Path) -> Path:
    """Write raw device rows to CSV, as produced by a report."""
    return _write_rows(
        (device.to_dict() for device in devices),
        REPORT_FIELDS,
        path,
    )

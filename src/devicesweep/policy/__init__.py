"""
Stale-device policy.

Decides, for each listed device, whether it is in scope and what a
sweep should do with it.
"""

from devicesweep.policy.engine import (
    StaleDeviceEvaluator,
    build_filter_predicate,
    compute_threshold,
    evaluate,
    threshold_datetime,
)
from devicesweep.policy.models import (
    Action,
    Decision,
    DeviceOutcome,
    ResultRecord,
    SweepMode,
    SweepOptions,
)

__all__ = [
    # Engine
    "StaleDeviceEvaluator",
    "build_filter_predicate",
    "compute_threshold",
    "evaluate",
    "threshold_datetime",
    # Models
    "Action",
    "Decision",
    "DeviceOutcome",
    "ResultRecord",
    "SweepMode",
    "SweepOptions",
]

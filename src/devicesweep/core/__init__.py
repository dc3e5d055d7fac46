"""
devicesweep Core - Sweep Pipeline.

Provides the runner that connects to the directory, evaluates stale
devices, applies mutations and exports the results.
"""

from devicesweep.core.runner import SweepReport, SweepRunner, create_runner

__all__ = [
    "SweepReport",
    "SweepRunner",
    "create_runner",
]

"""
devicesweep - stale Entra ID device cleanup.

Finds directory devices that have not signed in for a configurable
number of days and reports, disables or deletes them, exporting the
outcome to CSV.
"""

__version__ = "0.1.0"
__author__ = "devicesweep Contributors"

from devicesweep.config import DevicesweepConfig, load_config

__all__ = ["DevicesweepConfig", "load_config", "__version__"]

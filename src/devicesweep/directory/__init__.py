"""
Directory access.

Device model, Graph payload schemas and error types. The Graph client
lives in devicesweep.directory.client.
"""

from devicesweep.directory.errors import (
    AuthenticationError,
    DeviceNotFoundError,
    DirectoryError,
    DirectoryRequestError,
    FatalDirectoryError,
    PermissionDeniedError,
)
from devicesweep.directory.models import DEVICE_SELECT_FIELDS, REPORT_FIELDS, Device
from devicesweep.directory.schemas import (
    GraphDevicePayload,
    device_from_graph,
)

__all__ = [
    # Errors
    "AuthenticationError",
    "DeviceNotFoundError",
    "DirectoryError",
    "DirectoryRequestError",
    "FatalDirectoryError",
    "PermissionDeniedError",
    # Models
    "DEVICE_SELECT_FIELDS",
    "REPORT_FIELDS",
    "Device",
    # Schemas
    "GraphDevicePayload",
    "device_from_graph",
]

"""
Directory client errors.

Fatal errors stop a sweep before or during per-device work; all other
directory errors are scoped to the device being processed.
"""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for directory service errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FatalDirectoryError(DirectoryError):
    """Error that makes the whole run unusable."""

    pass


class AuthenticationError(FatalDirectoryError):
    """Token acquisition failed or the token was rejected."""

    pass


class PermissionDeniedError(FatalDirectoryError):
    """Authenticated principal lacks the required role."""

    pass


class DeviceNotFoundError(DirectoryError):
    """Target device object does not exist."""

    pass


class DirectoryRequestError(DirectoryError):
    """Any other failed request, including transport errors."""

    pass

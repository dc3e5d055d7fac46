"""
Pytest configuration and shared fixtures for devicesweep tests.
"""

from __future__ import annotations

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Iterator
from unittest.mock import MagicMock

import jwt
import pytest
import yaml

from devicesweep.directory.errors import DeviceNotFoundError, DirectoryError
from devicesweep.directory.models import DEVICE_SELECT_FIELDS, Device
from devicesweep.policy.models import SweepMode


TEST_SIGNING_KEY = "devicesweep-test-signing-key-0123456789abcdef"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> Path:
    """Create a sample configuration file."""
    config_path = temp_dir / "devicesweep.yaml"
    config_data = {
        "graph": {
            "tenant_id": "contoso.onmicrosoft.com",
            "client_id": "11111111-2222-3333-4444-555555555555",
            "client_secret": "s3cret",
            "timeout": 10,
        },
        "sweep": {
            "days_back": 120,
            "include_disabled": False,
            "export_folder": str(temp_dir / "exports"),
        },
        "logging": {
            "log_level": "debug",
        },
    }
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def graph_device_payload() -> dict[str, Any]:
    """Sample device object as returned by Graph."""
    return {
        "id": "6a59ea83-02bd-468f-a40b-f2c3d1821983",
        "deviceId": "4c299165-6e8f-4b45-a5ba-c5d250a707ff",
        "displayName": "LAPTOP-OLD01",
        "operatingSystem": "Windows",
        "operatingSystemVersion": "10.0.19045.4291",
        "trustType": "AzureAd",
        "accountEnabled": True,
        "approximateLastSignInDateTime": "2024-01-01T08:15:00Z",
    }


@pytest.fixture
def make_device() -> Callable[..., Device]:
    """Factory for Device objects with sensible defaults."""

    def _make(
        object_id: str = "obj-1",
        enabled: bool = True,
        last_sign_in: str | None = "2024-01-01T00:00:00Z",
        name: str | None = None,
    ) -> Device:
        parsed = None
        if last_sign_in is not None:
            parsed = datetime.strptime(last_sign_in, "%Y-%m-%dT%H:%M:%SZ").replace(
                tzinfo=timezone.utc
            )
        return Device(
            id=object_id,
            device_id=f"dev-{object_id}",
            display_name=name or f"HOST-{object_id}",
            operating_system="Windows",
            operating_system_version="10.0.22631",
            trust_type="AzureAd",
            account_enabled=enabled,
            approximate_last_sign_in=parsed,
            last_sign_in_raw=last_sign_in,
        )

    return _make


def make_token(roles: list[str] | None = None) -> str:
    """Build a test access token carrying application roles."""
    claims: dict[str, Any] = {"tid": "contoso", "appid": "app"}
    if roles is not None:
        claims["roles"] = roles
    return jwt.encode(claims, TEST_SIGNING_KEY, algorithm="HS256")


def make_response(status_code: int = 200, body: Any = None) -> MagicMock:
    """Build a mock requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.reason = "Reason"
    if body is None:
        response.json.side_effect = ValueError("No JSON")
        response.text = ""
    else:
        response.json.return_value = body
        response.text = str(body)
    return response


class FakeDirectoryClient:
    """
    In-memory directory used by runner and CLI tests.

    Tracks device state so tests can check that simulated mutations leave
    devices untouched.
    """

    def __init__(
        self,
        devices: list[Device] | None = None,
        errors: dict[str, DirectoryError] | None = None,
        auth_error: DirectoryError | None = None,
    ) -> None:
        self.devices = list(devices or [])
        self.errors = errors or {}
        self.auth_error = auth_error
        self.enabled = {d.id: d.account_enabled for d in self.devices}
        self.deleted: set[str] = set()
        self.list_calls: list[str | None] = []
        self.apply_calls: list[tuple[SweepMode, str, bool]] = []
        self.auth_calls = 0

    def authenticate(self) -> str:
        self.auth_calls += 1
        if self.auth_error is not None:
            raise self.auth_error
        return "token"

    def list_devices(
        self,
        filter_expr: str | None,
        select: tuple[str, ...] = DEVICE_SELECT_FIELDS,
    ) -> Iterator[Device]:
        self.list_calls.append(filter_expr)
        yield from self.devices

    def apply(self, mode: SweepMode, device: Device, simulate: bool = True) -> bool:
        self.apply_calls.append((mode, device.id, simulate))
        if device.id in self.errors:
            raise self.errors[device.id]
        if device.id in self.deleted:
            raise DeviceNotFoundError(f"Device {device.id} not found", status_code=404)
        if simulate:
            return False
        if mode == SweepMode.DISABLE:
            self.enabled[device.id] = False
        else:
            self.deleted.add(device.id)
        return True


@pytest.fixture
def fake_client_factory() -> Callable[..., FakeDirectoryClient]:
    """Factory for in-memory directory clients."""
    return FakeDirectoryClient


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Factory for access tokens carrying application roles."""
    return make_token


@pytest.fixture
def response_factory() -> Callable[..., MagicMock]:
    """Factory for mock HTTP responses."""
    return make_response

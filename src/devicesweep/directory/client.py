"""
Microsoft Graph directory client.

Lists, reads, disables and deletes Entra ID device objects using the
OAuth2 client-credentials flow.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Iterator, Protocol

import jwt
import requests

from devicesweep.directory.errors import (
    AuthenticationError,
    DeviceNotFoundError,
    DirectoryRequestError,
    PermissionDeniedError,
)
from devicesweep.directory.models import DEVICE_SELECT_FIELDS, Device
from devicesweep.directory.schemas import device_from_graph
from devicesweep.policy.models import SweepMode

if TYPE_CHECKING:
    from devicesweep.config import GraphConfig


logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Application roles that allow updating or deleting device objects
WRITE_ROLES = frozenset({"Device.ReadWrite.All", "Directory.ReadWrite.All"})

# Refresh the token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 60


class DirectoryClientProtocol(Protocol):
    """Protocol for directory clients to allow substitution in tests."""

    def authenticate(self) -> str:
        """Acquire (or reuse) an access token."""
        ...

    def list_devices(
        self,
        filter_expr: str | None,
        select: tuple[str, ...] = DEVICE_SELECT_FIELDS,
    ) -> Iterator[Device]:
        """Yield devices matching a server-side filter."""
        ...

    def apply(self, mode: SweepMode, device: Device, simulate: bool = True) -> bool:
        """Disable or delete a device, or simulate doing so."""
        ...


def _error_message(response: requests.Response) -> str:
    """Extract the Graph error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or str(error)
    if isinstance(body, dict) and body.get("error_description"):
        return body["error_description"]
    return str(error or body)


class GraphDirectoryClient:
    """
    Directory client backed by Microsoft Graph v1.0.

    Listing follows @odata.nextLink so callers see a single iterator in
    retrieval order. Mutations go through apply(), which either commits
    the change or, when simulating, performs the same authorization and
    lookup steps without sending the PATCH or DELETE.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        authority: str = "https://login.microsoftonline.com",
        endpoint: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 30.0,
        page_size: int = 999,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            tenant_id: Entra ID tenant id or domain
            client_id: Application (client) id
            client_secret: Client secret value
            authority: Login host
            endpoint: Graph base URL including version
            timeout: Per-request timeout in seconds
            page_size: $top value for listings
            session: Optional pre-built session
        """
        self.tenant_id = tenant_id
        self.client_id = client_id
        self._client_secret = client_secret
        self.authority = authority.rstrip("/")
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()

        self._token: str | None = None
        self._token_expires_at = 0.0
        self._roles: frozenset[str] | None = None

    @classmethod
    def from_config(
        cls,
        config: GraphConfig,
        session: requests.Session | None = None,
    ) -> GraphDirectoryClient:
        """Create a client from Graph configuration."""
        if not config.has_credentials:
            raise AuthenticationError("Graph credentials are not configured")
        return cls(
            tenant_id=config.tenant_id or "",
            client_id=config.client_id or "",
            client_secret=config.client_secret or "",
            authority=config.authority,
            endpoint=config.endpoint,
            timeout=config.timeout,
            page_size=config.page_size,
            session=session,
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def token_url(self) -> str:
        return f"{self.authority}/{self.tenant_id}/oauth2/v2.0/token"

    def authenticate(self) -> str:
        """
        Acquire an access token, reusing the cached one while valid.

        Returns:
            Bearer token string

        Raises:
            AuthenticationError: If the token endpoint rejects the request
        """
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        logger.debug("Requesting Graph token for tenant %s", self.tenant_id)
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "scope": GRAPH_SCOPE,
            "grant_type": "client_credentials",
        }
        try:
            response = self.session.post(self.token_url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if response.status_code >= 400:
            raise AuthenticationError(
                f"Token request rejected: {_error_message(response)}",
                status_code=response.status_code,
            )

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise AuthenticationError("No access token in token response")

        self._token = token
        self._roles = None
        expires_in = float(payload.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(
            expires_in - TOKEN_EXPIRY_MARGIN, 0
        )
        logger.info("Authenticated to Microsoft Graph (tenant %s)", self.tenant_id)
        return token

    def granted_roles(self) -> frozenset[str]:
        """
        Return the application roles carried by the access token.

        The token is only inspected, not verified; Graph verifies it on
        every request.
        """
        token = self.authenticate()
        if self._roles is None:
            try:
                claims = jwt.decode(token, options={"verify_signature": False})
            except jwt.PyJWTError as e:
                raise AuthenticationError(f"Access token is not a readable JWT: {e}") from e
            self._roles = frozenset(claims.get("roles") or ())
        return self._roles

    def require_write_access(self) -> None:
        """
        Ensure the token may modify device objects.

        Raises:
            PermissionDeniedError: If no write-capable role is granted
        """
        roles = self.granted_roles()
        if not roles & WRITE_ROLES:
            raise PermissionDeniedError(
                "Access token lacks Device.ReadWrite.All or "
                "Directory.ReadWrite.All; granted roles: "
                + (", ".join(sorted(roles)) or "none")
            )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Send an authenticated request and map error statuses."""
        request_headers = {"Authorization": f"Bearer {self.authenticate()}"}
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(
                method, url, headers=request_headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise DirectoryRequestError(f"{method} {url} failed: {e}") from e

        status = response.status_code
        if status < 400:
            return response

        message = _error_message(response)
        if status == 401:
            raise AuthenticationError(message, status_code=status)
        if status == 403:
            raise PermissionDeniedError(message, status_code=status)
        if status == 404:
            raise DeviceNotFoundError(message, status_code=status)
        raise DirectoryRequestError(message, status_code=status)

    def list_devices(
        self,
        filter_expr: str | None,
        select: tuple[str, ...] = DEVICE_SELECT_FIELDS,
    ) -> Iterator[Device]:
        """
        Yield devices matching a server-side filter.

        Args:
            filter_expr: OData $filter expression, or None for all devices
            select: Properties to project

        Yields:
            Device objects in retrieval order
        """
        params: dict[str, Any] | None = {
            "$select": ",".join(select),
            "$top": self.page_size,
            "$count": "true",
        }
        if filter_expr:
            params["$filter"] = filter_expr
        # Filtering on approximateLastSignInDateTime is an advanced query
        headers = {"ConsistencyLevel": "eventual"}

        url: str | None = f"{self.endpoint}/devices"
        page = 0
        while url:
            response = self._request("GET", url, headers=headers, params=params)
            body = response.json()
            items = body.get("value", [])
            page += 1
            logger.debug("Page %d: %d devices", page, len(items))
            for item in items:
                yield device_from_graph(item)
            url = body.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None

    def get_device(self, object_id: str) -> Device:
        """Fetch a single device by object id."""
        response = self._request(
            "GET",
            f"{self.endpoint}/devices/{object_id}",
            params={"$select": ",".join(DEVICE_SELECT_FIELDS)},
        )
        return device_from_graph(response.json())

    def disable_device(self, object_id: str) -> None:
        """Set accountEnabled to false on a device."""
        self._request(
            "PATCH",
            f"{self.endpoint}/devices/{object_id}",
            json={"accountEnabled": False},
        )

    def delete_device(self, object_id: str) -> None:
        """Delete a device object."""
        self._request("DELETE", f"{self.endpoint}/devices/{object_id}")

    def apply(self, mode: SweepMode, device: Device, simulate: bool = True) -> bool:
        """
        Disable or delete a device.

        Both committed and simulated calls check the token's roles and
        read the target object, so permission and not-found errors
        surface during a rehearsal. Only committed calls send the change.

        Args:
            mode: DISABLE or DELETE
            device: Target device
            simulate: If True, stop before sending the change

        Returns:
            True if the change was committed, False if simulated

        Raises:
            ValueError: If mode does not mutate
            DirectoryError: On any failed step
        """
        if not mode.mutates:
            raise ValueError(f"Mode {mode.value} does not mutate devices")

        self.require_write_access()
        self.get_device(device.id)

        if simulate:
            logger.info("[dry-run] Would %s %s (%s)", mode.verb, device.label, device.id)
            return False

        if mode == SweepMode.DISABLE:
            self.disable_device(device.id)
        else:
            self.delete_device(device.id)
        logger.info("%s %s (%s)", mode.past_tense.capitalize(), device.label, device.id)
        return True


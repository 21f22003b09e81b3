"""Dead Man's Snitch API client.

Thin, typed wrapper over the REST API at ``api.deadmanssnitch.com``.
Authenticates with HTTP basic auth, the API key as user name.
Every transport or non-2xx failure raises ``MonitorServiceError``;
retrying is left to the controller's requeue.
"""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from dms_integration.errors import MonitorServiceError
from dms_integration.models import Snitch, SnitchSpec

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.deadmanssnitch.com/v1/"


@runtime_checkable
class MonitorClient(Protocol):
    """Protocol for heartbeat monitor clients."""

    def find_by_name(self, name: str) -> list[Snitch]:
        """Return every snitch named exactly *name* (possibly none)."""
        ...

    def create(self, spec: SnitchSpec) -> Snitch:
        """Create a snitch."""
        ...

    def check_in(self, snitch: Snitch) -> None:
        """Send one heartbeat to the snitch's check-in URL."""
        ...

    def delete(self, token: str) -> bool:
        """Delete a snitch by token; ``True`` if the service confirmed it."""
        ...


ClientFactory = Callable[[str], MonitorClient]


class DeadMansSnitchClient:
    """Client for the Dead Man's Snitch v1 API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = timeout
        token = base64.b64encode(f"{api_key}:".encode()).decode("ascii")
        self._auth = f"Basic {token}"

    def list_all(self) -> list[Snitch]:
        data = self._request("GET", "snitches")
        return [self._parse(item) for item in data or []]

    def find_by_name(self, name: str) -> list[Snitch]:
        return [s for s in self.list_all() if s.name == name]

    def create(self, spec: SnitchSpec) -> Snitch:
        logger.info("Creating snitch %s", spec.name)
        data = self._request("POST", "snitches", spec.model_dump())
        return self._parse(data)

    def check_in(self, snitch: Snitch) -> None:
        if not snitch.check_in_url:
            raise MonitorServiceError(f"Snitch {snitch.name} has no check-in URL")
        req = urllib.request.Request(snitch.check_in_url, method="GET")
        self._send(req)

    def delete(self, token: str) -> bool:
        path = "snitches/" + urllib.parse.quote(token, safe="")
        status, _ = self._send(self._build("DELETE", path))
        return status == 204

    # --- Private helpers ---

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        _, body = self._send(self._build(method, path, payload))
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as exc:
            raise MonitorServiceError(f"Invalid JSON from {method} {path}: {exc}") from exc

    def _build(
        self, method: str, path: str, payload: dict[str, Any] | None = None,
    ) -> urllib.request.Request:
        headers = {"Authorization": self._auth, "Accept": "application/json"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        return urllib.request.Request(
            self._base_url + path, data=data, headers=headers, method=method,
        )

    def _send(self, req: urllib.request.Request) -> tuple[int, bytes]:
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                return resp.status, resp.read()
        except urllib.error.HTTPError as e:
            raise MonitorServiceError(
                f"{req.get_method()} {req.full_url} returned {e.code}: {e.reason}",
                status=e.code,
            ) from e
        except (urllib.error.URLError, OSError) as e:
            raise MonitorServiceError(
                f"{req.get_method()} {req.full_url} failed: {e}",
            ) from e

    def _parse(self, data: Any) -> Snitch:
        try:
            return Snitch.model_validate(data)
        except ValidationError as exc:
            raise MonitorServiceError(f"Unexpected snitch payload: {exc}") from exc


def default_client_factory(
    base_url: str = DEFAULT_API_URL, timeout: float = 15.0,
) -> ClientFactory:
    """Return a factory building a DeadMansSnitchClient per API key."""

    def factory(api_key: str) -> MonitorClient:
        return DeadMansSnitchClient(api_key, base_url=base_url, timeout=timeout)

    return factory

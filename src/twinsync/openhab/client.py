"""
Async client for the OpenHAB REST API.

Only the three calls the sync engine needs:

    GET  <base>/rest/items          → list of item dicts
    GET  <base>/rest/items/<name>   → one item dict
    POST <base>/rest/items/<name>   → send a plain-text command

Every failure is mapped onto the engine's error taxonomy so callers never see
raw httpx exceptions: non-2xx → RemoteError, network/timeout → TransportError,
bad JSON → ParseError. No retries.
"""
import base64
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from twinsync.config import get_settings
from twinsync.openhab.errors import ParseError, RemoteError, TransportError

logger = logging.getLogger(__name__)


def build_auth_headers(auth_token: Optional[str]) -> Dict[str, str]:
    """
    Build request headers for an OpenHAB instance.

    A token shaped like "email:password" is a myopenHAB cloud login and is
    sent as HTTP Basic; anything else is an API token sent as Bearer.
    """
    headers = {"Accept": "application/json"}
    if auth_token:
        if ":" in auth_token and "@" in auth_token:
            encoded = base64.b64encode(auth_token.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
        else:
            headers["Authorization"] = f"Bearer {auth_token}"
    return headers


class OpenHABClient:
    """
    Thin async wrapper over one OpenHAB instance.

    Usage:
        async with OpenHABClient(url, token) as client:
            items = await client.list_items()
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: OpenHAB root, e.g. "https://home.example.com".
            auth_token: Bearer token or "email:password".
            timeout: Per-request timeout in seconds. Defaults to settings.
            transport: Custom httpx transport (MockTransport in tests).
        """
        self.base_url = base_url.rstrip("/")
        if timeout is None:
            timeout = get_settings().openhab_timeout_seconds
        self._client = httpx.AsyncClient(
            headers=build_auth_headers(auth_token),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def list_items(self) -> List[Dict[str, Any]]:
        """Fetch every item the instance exposes."""
        payload = await self._get_json("/rest/items")
        if not isinstance(payload, list):
            raise ParseError("Expected a JSON array of items")
        return payload

    async def get_item(self, name: str) -> Dict[str, Any]:
        """Fetch a single item by name."""
        payload = await self._get_json(f"/rest/items/{quote(name, safe='')}")
        if not isinstance(payload, dict):
            raise ParseError(f"Expected a JSON object for item {name}")
        return payload

    async def send_command(self, name: str, command: str) -> None:
        """Send a command (e.g. "ON", "21.5") to an item."""
        response = await self._request(
            "POST",
            f"/rest/items/{quote(name, safe='')}",
            content=str(command).encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        logger.info("Sent command %r to %s (status %s)", command, name, response.status_code)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _get_json(self, path: str) -> Any:
        response = await self._request("GET", path)
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"Malformed JSON from {path}: {exc}")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Timed out contacting OpenHAB: {exc}")
        except httpx.HTTPError as exc:
            raise TransportError(f"Could not reach OpenHAB: {exc}")

        if not response.is_success:
            raise RemoteError(response.status_code)
        return response

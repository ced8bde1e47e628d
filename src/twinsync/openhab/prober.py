"""User-facing "test connection" check for draft OpenHAB settings."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from twinsync.config import get_settings
from twinsync.openhab.client import OpenHABClient
from twinsync.openhab.errors import SyncError
from twinsync.openhab.url_guard import validate_endpoint_url

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    ok: bool
    message: str
    item_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.ok, "message": self.message}
        if self.item_count is not None:
            body["itemCount"] = self.item_count
        return body


async def probe_connection(
    endpoint_url: str,
    auth_token: Optional[str] = None,
    *,
    client_factory=OpenHABClient,
) -> ProbeResult:
    """
    List items once against an unsaved endpoint and report the outcome.

    Never raises: every failure becomes ProbeResult(ok=False, message=...),
    since the result is shown directly to the operator.

    Args:
        endpoint_url: OpenHAB base URL as typed by the operator.
        auth_token: Optional token or "email:password".
        client_factory: Callable building the client (overridable in tests).
    """
    try:
        validate_endpoint_url(
            endpoint_url, allow_private=get_settings().allow_private_endpoints
        )
        async with client_factory(endpoint_url, auth_token) as client:
            items = await client.list_items()
    except SyncError as exc:
        logger.info("Connection test to %s failed: %s", endpoint_url, exc)
        return ProbeResult(ok=False, message=exc.message or "Connection failed")
    except Exception as exc:
        logger.exception("Unexpected error testing connection to %s", endpoint_url)
        return ProbeResult(ok=False, message=str(exc) or "Connection failed")

    count = len(items)
    return ProbeResult(
        ok=True,
        item_count=count,
        message=f"Successfully connected! Found {count} items.",
    )

"""Sending commands to OpenHAB items (e.g. setpoints, switches)."""
import logging

from twinsync.config import get_settings
from twinsync.models.sync import SyncConfig
from twinsync.openhab.client import OpenHABClient
from twinsync.openhab.url_guard import validate_endpoint_url, validate_item_name

logger = logging.getLogger(__name__)


async def send_command(
    config: SyncConfig,
    item_name: str,
    command: str,
    *,
    client_factory=OpenHABClient,
) -> str:
    """
    Forward a command to one item on the configured OpenHAB.

    Returns:
        A confirmation message for display.

    Raises:
        InvalidItemNameError, InvalidEndpointError, or a client error.
    """
    validate_item_name(item_name)
    validate_endpoint_url(
        config.endpoint_url, allow_private=get_settings().allow_private_endpoints
    )
    async with client_factory(config.endpoint_url, config.auth_token) as client:
        await client.send_command(item_name, command)
    return f"Command '{command}' sent to {item_name}"

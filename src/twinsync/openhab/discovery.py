"""Discovery of mappable (numeric) OpenHAB items."""
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from twinsync.config import get_settings
from twinsync.models.sync import SyncConfig
from twinsync.openhab.client import OpenHABClient
from twinsync.openhab.errors import ParseError
from twinsync.openhab.url_guard import validate_endpoint_url

logger = logging.getLogger(__name__)


@dataclass
class DiscoveredItem:
    name: str
    type: str
    label: str
    state: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def filter_sensor_items(
    raw_items: Iterable[Dict], type_prefixes: Iterable[str]
) -> List[DiscoveredItem]:
    """
    Keep only items whose type starts with an allowed prefix.

    Switches, strings, groups etc. are dropped: only scalar, sensor-like
    items can be mapped to a sensor. Items whose name or type is not a string
    are dropped too.

    Raises:
        ParseError: an element of the item list is not a JSON object.
    """
    prefixes = tuple(type_prefixes)
    result = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ParseError(f"Expected item objects, got {type(raw).__name__}")
        item_type = raw.get("type")
        name = raw.get("name")
        if not isinstance(name, str) or not isinstance(item_type, str):
            logger.debug("Skipping malformed item %r", raw)
            continue
        if not name or not item_type.startswith(prefixes):
            continue
        label = raw.get("label")
        state = raw.get("state")
        category = raw.get("category")
        result.append(
            DiscoveredItem(
                name=name,
                type=item_type,
                label=label if isinstance(label, str) and label else name,
                state=state if state is None else str(state),
                category=category if isinstance(category, str) else None,
            )
        )
    return result


async def discover_items(
    config: SyncConfig,
    *,
    type_prefixes: Optional[Iterable[str]] = None,
    client_factory=OpenHABClient,
) -> List[DiscoveredItem]:
    """
    List items on the configured OpenHAB and return the mappable ones.

    All-or-nothing: a failed list call propagates as a SyncError.

    Args:
        config: Persisted SyncConfig.
        type_prefixes: Allow-list override. Defaults to settings.
        client_factory: Callable building the client (overridable in tests).
    """
    settings = get_settings()
    if type_prefixes is None:
        type_prefixes = settings.discovery_type_prefixes

    validate_endpoint_url(config.endpoint_url, allow_private=settings.allow_private_endpoints)
    async with client_factory(config.endpoint_url, config.auth_token) as client:
        raw_items = await client.list_items()

    items = filter_sensor_items(raw_items, type_prefixes)
    logger.info(
        "Fetched %d total items, %d sensor-compatible items",
        len(raw_items), len(items),
    )
    return items

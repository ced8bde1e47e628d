"""Operator-driven mapping of discovered OpenHAB items to sensors."""
import logging
import uuid
from typing import List, Optional

from sqlmodel import Session, select

from twinsync.models.mapping import ItemMapping
from twinsync.models.sensor import Sensor
from twinsync.models.sync import SyncConfig
from twinsync.openhab.discovery import DiscoveredItem
from twinsync.openhab.errors import DuplicateMappingError

logger = logging.getLogger(__name__)


def detect_sensor_type(item_type: str) -> str:
    """Map an OpenHAB item type onto a dashboard sensor type."""
    if "Temperature" in item_type:
        return "temperature"
    if "Pressure" in item_type:
        return "pressure"
    if "Humidity" in item_type:
        return "humidity"
    if "Flow" in item_type:
        return "flow"
    return "temperature"


def map_item(session: Session, config: SyncConfig, item: DiscoveredItem) -> ItemMapping:
    """
    Create a Sensor for a discovered item and link it with a sync-enabled mapping.

    Raises:
        DuplicateMappingError: the item is already mapped for this config.
    """
    existing = session.exec(
        select(ItemMapping)
        .where(ItemMapping.config_id == config.id)
        .where(ItemMapping.external_item_name == item.name)
    ).first()
    if existing:
        raise DuplicateMappingError(item.name)

    sensor = Sensor(
        name=item.label or item.name,
        sensor_type=detect_sensor_type(item.type),
        status="online",
    )
    session.add(sensor)
    session.flush()

    mapping = ItemMapping(
        config_id=config.id,
        sensor_id=sensor.id,
        external_item_name=item.name,
        external_item_type=item.type,
        display_label=item.label,
        sync_enabled=True,
    )
    session.add(mapping)
    session.commit()
    session.refresh(mapping)
    logger.info("Mapped OpenHAB item %s to sensor %s", item.name, sensor.id)
    return mapping


def list_mappings(session: Session, config_id: uuid.UUID) -> List[ItemMapping]:
    return list(
        session.exec(
            select(ItemMapping)
            .where(ItemMapping.config_id == config_id)
            .order_by(ItemMapping.created_at, ItemMapping.id)
        ).all()
    )


def get_mapping(session: Session, config_id: uuid.UUID, mapping_id: uuid.UUID) -> Optional[ItemMapping]:
    mapping = session.get(ItemMapping, mapping_id)
    if mapping is None or mapping.config_id != config_id:
        return None
    return mapping


def set_sync_enabled(session: Session, mapping: ItemMapping, enabled: bool) -> ItemMapping:
    mapping.sync_enabled = enabled
    session.add(mapping)
    session.commit()
    session.refresh(mapping)
    return mapping


def delete_mapping(session: Session, mapping: ItemMapping) -> None:
    """Remove the mapping only; the sensor and its readings are kept."""
    session.delete(mapping)
    session.commit()

"""OpenHAB item → sensor mapping model."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class ItemMapping(SQLModel, table=True):
    """
    Links one OpenHAB item to one internal sensor, plus per-item sync state.

    A mapping may exist without a sensor; sync then updates the raw value but
    writes no reading.
    """

    __table_args__ = (
        UniqueConstraint("config_id", "external_item_name", name="uq_mapping_config_item"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    config_id: uuid.UUID = Field(foreign_key="syncconfig.id", index=True)
    external_item_name: str
    external_item_type: str  # "Number:Temperature", "Number", ...
    display_label: Optional[str] = None
    sensor_id: Optional[uuid.UUID] = Field(default=None, foreign_key="sensor.id")
    sync_enabled: bool = True

    # Last raw state text as returned by OpenHAB, e.g. "23.5 °C"
    last_raw_value: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)

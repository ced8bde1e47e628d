"""Sensor and reading models shared with the dashboard."""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Sensor(SQLModel, table=True):
    """A physical sensor attached to a digital twin."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    sensor_type: str  # "temperature", "pressure", "humidity", "flow"
    status: str = "online"  # "online", "offline", "warning", "critical"

    # Denormalized latest value for dashboards
    last_reading: Optional[float] = None
    last_reading_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)


class SensorReading(SQLModel, table=True):
    """Append-only: one row per ingested value."""

    id: Optional[int] = Field(default=None, primary_key=True)
    sensor_id: uuid.UUID = Field(foreign_key="sensor.id", index=True)
    value: float
    recorded_at: datetime = Field(default_factory=datetime.utcnow, index=True)

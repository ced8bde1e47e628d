"""Shared test fixtures."""
import os

# Keep module-level app creation off the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from twinsync.config import get_settings
from twinsync.models.mapping import ItemMapping
from twinsync.models.sensor import Sensor, SensorReading  # noqa: F401
from twinsync.models.sync import SyncConfig, SyncLog  # noqa: F401


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="sync_config")
def sync_config_fixture(test_session: Session) -> SyncConfig:
    """An enabled config owned by the configured caller."""
    config = SyncConfig(
        user_id=get_settings().user_id,
        endpoint_url="https://openhab.example.com",
        auth_token="oh.token.abc",
        sync_interval_seconds=300,
        enabled=True,
    )
    test_session.add(config)
    test_session.commit()
    test_session.refresh(config)
    return config


@pytest.fixture(name="sensor")
def sensor_fixture(test_session: Session) -> Sensor:
    sensor = Sensor(name="Lobby Temperature", sensor_type="temperature")
    test_session.add(sensor)
    test_session.commit()
    test_session.refresh(sensor)
    return sensor


def add_mapping(session: Session, config: SyncConfig, name: str, **kwargs) -> ItemMapping:
    """Persist an ItemMapping for config; kwargs override defaults."""
    fields = {
        "config_id": config.id,
        "external_item_name": name,
        "external_item_type": "Number:Temperature",
        "sync_enabled": True,
    }
    fields.update(kwargs)
    mapping = ItemMapping(**fields)
    session.add(mapping)
    session.commit()
    session.refresh(mapping)
    return mapping


@pytest.fixture(name="make_mapping")
def make_mapping_fixture(test_session: Session, sync_config: SyncConfig):
    """Factory fixture: make_mapping("Item_Name", sensor_id=..., sync_enabled=...)."""

    def _make(name: str, **kwargs) -> ItemMapping:
        return add_mapping(test_session, sync_config, name, **kwargs)

    return _make

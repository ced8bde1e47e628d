"""
OpenHABSyncService: reconciles mapped OpenHAB items into sensor readings.

Flow for one run of a config:
  1. Load the config; reject if missing or disabled (no log entry)
  2. Acquire the per-config run lock; reject if a run is in flight
  3. Load enabled mappings; reject if there are none (no log entry)
  4. For each mapping: fetch state → parse → insert SensorReading →
     update Sensor.last_reading → update mapping sync state
  5. Update SyncConfig.last_synced_at (even if some items failed)
  6. Write one SyncLog ("success" or "partial")

Per-item isolation: a fetch or insert failure is recorded in the run's error
list and the loop moves on. Sentinel ("NULL"/"UNDEF") and non-numeric states
are skipped silently, they are not errors.

If the config or mapping list cannot be read, the stored endpoint is
rejected, or the client fails outside the per-item loop, the run is logged
as "error" and the exception propagates (unexpected ones as SyncRunError).

Each write is its own Session commit; a crash mid-run can leave a reading
without the matching mapping timestamp.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from twinsync.config import get_settings
from twinsync.models.mapping import ItemMapping
from twinsync.models.sensor import Sensor, SensorReading
from twinsync.models.sync import SyncConfig
from twinsync.openhab.client import OpenHABClient
from twinsync.openhab.errors import (
    InvalidEndpointError,
    InvalidItemNameError,
    NothingToSyncError,
    StoreError,
    SyncError,
    SyncInProgressError,
    SyncRunError,
    SyncNotEnabledError,
)
from twinsync.openhab.state import is_sentinel, parse_numeric_state
from twinsync.openhab.sync_logger import SyncLogger
from twinsync.openhab.url_guard import validate_endpoint_url, validate_item_name

logger = logging.getLogger(__name__)

TRIGGER_MANUAL = "manual"
TRIGGER_AUTOMATIC = "automatic"

# Lock per config id with a run in flight, shared by every service instance
# in this process. Entries are removed when the run ends.
_run_locks: Dict[uuid.UUID, asyncio.Lock] = {}


@dataclass
class SyncResult:
    synced: int
    total: int
    errors: List[str] = field(default_factory=list)

    @property
    def outcome(self) -> str:
        return "partial" if self.errors else "success"

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": True,
            "synced": self.synced,
            "total": self.total,
        }
        if self.errors:
            body["errors"] = list(self.errors)
        return body


@dataclass
class _ItemOutcome:
    synced: bool = False
    error: Optional[str] = None


class OpenHABSyncService:
    """Runs item → sensor reconciliation for one config at a time."""

    def __init__(self, engine, *, client_factory=OpenHABClient, max_concurrency: Optional[int] = None):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            client_factory: Callable (base_url, auth_token) → OpenHABClient.
                Tests pass a factory returning an AsyncMock.
            max_concurrency: Items fetched in parallel. Defaults to settings;
                1 means strictly sequential.
        """
        self.engine = engine
        self.client_factory = client_factory
        if max_concurrency is None:
            max_concurrency = get_settings().sync_max_concurrency
        self.max_concurrency = max(1, max_concurrency)
        self.sync_logger = SyncLogger(engine)

    async def run(self, config_id: uuid.UUID, trigger_kind: str = TRIGGER_MANUAL) -> SyncResult:
        """
        Sync every enabled mapping of one config.

        Args:
            config_id: SyncConfig primary key.
            trigger_kind: "manual" or "automatic"; recorded in the log.

        Returns:
            SyncResult with counts and per-item error strings.

        Raises:
            SyncNotEnabledError: config missing or disabled.
            SyncInProgressError: another run for this config is in flight.
            NothingToSyncError: no mapping has sync enabled.
            StoreError / InvalidEndpointError / SyncRunError: run-level
                failure (logged as "error").
        """
        try:
            config = self._load_config(config_id)
        except StoreError as exc:
            self._record_run_error(config_id, trigger_kind, exc.message)
            raise

        if config is None or not config.enabled:
            raise SyncNotEnabledError()

        lock = _run_locks.setdefault(config.id, asyncio.Lock())
        if lock.locked():
            raise SyncInProgressError()

        try:
            async with lock:
                return await self._run_locked(config, trigger_kind)
        finally:
            # No run ever waits on this lock, so a released one has no waiters
            if not lock.locked():
                _run_locks.pop(config.id, None)

    # ─── Run body ─────────────────────────────────────────────────────────────

    async def _run_locked(self, config: SyncConfig, trigger_kind: str) -> SyncResult:
        try:
            mappings = self._load_enabled_mappings(config.id)
        except StoreError as exc:
            self._record_run_error(config.id, trigger_kind, exc.message)
            raise

        if not mappings:
            raise NothingToSyncError()

        try:
            validate_endpoint_url(
                config.endpoint_url, allow_private=get_settings().allow_private_endpoints
            )
        except InvalidEndpointError as exc:
            self._record_run_error(config.id, trigger_kind, f"Invalid URL: {exc.message}")
            raise

        logger.info(
            "Syncing %d OpenHAB items for config %s (%s)",
            len(mappings), config.id, trigger_kind,
        )

        try:
            async with self.client_factory(config.endpoint_url, config.auth_token) as client:
                outcomes = await self._sync_items(client, mappings)
        except SyncError as exc:
            self._record_run_error(config.id, trigger_kind, exc.message)
            raise
        except Exception as exc:
            logger.exception("Sync run for config %s failed", config.id)
            self._record_run_error(config.id, trigger_kind, str(exc))
            raise SyncRunError(f"Sync failed: {exc}") from exc

        result = SyncResult(
            synced=sum(1 for o in outcomes if o.synced),
            total=len(mappings),
            errors=[o.error for o in outcomes if o.error],
        )

        self._touch_config(config.id)
        self.sync_logger.record(
            config.id,
            trigger_kind=trigger_kind,
            outcome=result.outcome,
            items_synced=result.synced,
            errors=result.errors,
        )
        logger.info(
            "Sync for config %s finished: %s, %d/%d synced, %d errors",
            config.id, result.outcome, result.synced, result.total, len(result.errors),
        )
        return result

    async def _sync_items(self, client, mappings: List[ItemMapping]) -> List[_ItemOutcome]:
        if self.max_concurrency == 1:
            return [await self._sync_item(client, m) for m in mappings]

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(mapping: ItemMapping) -> _ItemOutcome:
            async with semaphore:
                return await self._sync_item(client, mapping)

        # _sync_item never raises, so gather never cancels siblings
        return list(await asyncio.gather(*(bounded(m) for m in mappings)))

    async def _sync_item(self, client, mapping: ItemMapping) -> _ItemOutcome:
        """Fetch, parse and store one item. Never raises."""
        name = mapping.external_item_name
        try:
            validate_item_name(name)
        except InvalidItemNameError as exc:
            logger.warning("Skipping mapping %s: %s", mapping.id, exc.message)
            return _ItemOutcome(error=exc.message)

        try:
            item = await client.get_item(name)
        except SyncError as exc:
            logger.warning("Failed to fetch %s: %s", name, exc.message)
            return _ItemOutcome(error=f"Failed to fetch {name}: {exc.message}")
        except Exception as exc:
            logger.exception("Unexpected error fetching %s", name)
            return _ItemOutcome(error=f"Error syncing {name}: {exc}")

        state = item.get("state")
        if state is not None and not isinstance(state, str):
            state = str(state)
        if is_sentinel(state):
            logger.debug("Item %s has no current value (%r)", name, state)
            return _ItemOutcome()

        value = parse_numeric_state(state)
        if value is None:
            logger.debug("Item %s state %r is not numeric, skipping", name, state)
            return _ItemOutcome()

        now = datetime.utcnow()
        if mapping.sensor_id is not None:
            try:
                self._insert_reading(mapping.sensor_id, value, now)
            except SQLAlchemyError as exc:
                logger.warning("Failed to insert reading for %s: %s", name, exc)
                return _ItemOutcome(error=f"Failed to insert reading for {name}: {exc}")
            self._update_sensor_last_reading(mapping.sensor_id, value, now)

        try:
            self._update_mapping_state(mapping.id, state, now)
        except (SQLAlchemyError, StoreError) as exc:
            logger.warning("Failed to update mapping for %s: %s", name, exc)
            return _ItemOutcome(error=f"Error syncing {name}: {exc}")

        return _ItemOutcome(synced=True)

    # ─── Store helpers ────────────────────────────────────────────────────────

    def _record_run_error(self, config_id: uuid.UUID, trigger_kind: str, message: str) -> None:
        self.sync_logger.record(
            config_id, trigger_kind=trigger_kind, outcome="error", errors=[message]
        )

    def _load_config(self, config_id: uuid.UUID) -> Optional[SyncConfig]:
        try:
            with Session(self.engine) as s:
                return s.get(SyncConfig, config_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not load sync configuration: {exc}")

    def _load_enabled_mappings(self, config_id: uuid.UUID) -> List[ItemMapping]:
        try:
            with Session(self.engine) as s:
                return list(
                    s.exec(
                        select(ItemMapping)
                        .where(ItemMapping.config_id == config_id)
                        .where(ItemMapping.sync_enabled == True)  # noqa: E712
                        .order_by(ItemMapping.created_at, ItemMapping.id)
                    ).all()
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not load mapped items: {exc}")

    def _insert_reading(self, sensor_id: uuid.UUID, value: float, recorded_at: datetime) -> None:
        with Session(self.engine) as s:
            s.add(SensorReading(sensor_id=sensor_id, value=value, recorded_at=recorded_at))
            s.commit()

    def _update_sensor_last_reading(self, sensor_id: uuid.UUID, value: float, at: datetime) -> None:
        """Best-effort: the reading row is already stored."""
        try:
            with Session(self.engine) as s:
                sensor = s.get(Sensor, sensor_id)
                if sensor is None:
                    logger.warning("Sensor %s not found; last_reading not updated", sensor_id)
                    return
                sensor.last_reading = value
                sensor.last_reading_at = at
                s.add(sensor)
                s.commit()
        except SQLAlchemyError:
            logger.exception("Failed to update last_reading for sensor %s", sensor_id)

    def _update_mapping_state(self, mapping_id: uuid.UUID, raw_value: str, at: datetime) -> None:
        with Session(self.engine) as s:
            db_mapping = s.get(ItemMapping, mapping_id)
            if db_mapping is None:
                raise StoreError("mapping was deleted during the run")
            db_mapping.last_raw_value = raw_value
            db_mapping.last_synced_at = at
            s.add(db_mapping)
            s.commit()

    def _touch_config(self, config_id: uuid.UUID) -> None:
        try:
            with Session(self.engine) as s:
                db_config = s.get(SyncConfig, config_id)
                if db_config is None:
                    logger.warning("Config %s was deleted during the run", config_id)
                    return
                db_config.last_synced_at = datetime.utcnow()
                s.add(db_config)
                s.commit()
        except SQLAlchemyError:
            logger.exception("Failed to update last_synced_at for config %s", config_id)


def next_sync_allowed_at(config: SyncConfig) -> Optional[datetime]:
    """
    Earliest time an automatic run may start for this config.

    Automatic triggers are throttled to the configured interval with 10%
    tolerance for scheduler jitter. None means a run is allowed now.
    """
    if config.last_synced_at is None or not config.sync_interval_seconds:
        return None
    return config.last_synced_at + timedelta(seconds=config.sync_interval_seconds * 0.9)

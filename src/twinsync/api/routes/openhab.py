"""OpenHAB integration routes: action endpoint, config, mappings and history."""
import logging
import secrets
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session, select

from twinsync.config import get_settings
from twinsync.db.engine import get_engine, get_session
from twinsync.models.mapping import ItemMapping
from twinsync.models.sync import SyncConfig, SyncLog
from twinsync.openhab import mappings as mapping_ops
from twinsync.openhab.client import OpenHABClient
from twinsync.openhab.commands import send_command
from twinsync.openhab.discovery import DiscoveredItem, discover_items
from twinsync.openhab.errors import (
    DuplicateMappingError,
    PreconditionError,
    SyncError,
    SyncInProgressError,
    SyncNotEnabledError,
)
from twinsync.openhab.prober import probe_connection
from twinsync.openhab.sync_service import (
    TRIGGER_AUTOMATIC,
    TRIGGER_MANUAL,
    OpenHABSyncService,
    next_sync_allowed_at,
)
from twinsync.openhab.url_guard import validate_endpoint_url

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CONFIG_MESSAGE = "No OpenHAB configuration found"


# ─── Schemas ──────────────────────────────────────────────────────────────────

class ActionRequest(BaseModel):
    """Body of POST /openhab/actions. Accepts camelCase or snake_case keys."""

    model_config = ConfigDict(populate_by_name=True)

    action: str
    endpoint_url: Optional[str] = Field(default=None, alias="endpointUrl")
    auth_token: Optional[str] = Field(default=None, alias="authToken")
    config_id: Optional[str] = Field(default=None, alias="configId")
    item_name: Optional[str] = Field(default=None, alias="itemName")
    command: Optional[str] = None


class ConfigUpdate(BaseModel):
    endpoint_url: str
    auth_token: Optional[str] = None
    sync_interval_seconds: int = Field(default=300, ge=1)
    enabled: bool = True


class ConfigResponse(BaseModel):
    id: uuid.UUID
    endpoint_url: str
    has_auth_token: bool
    sync_interval_seconds: int
    enabled: bool
    last_synced_at: Optional[datetime]


class MapItemRequest(BaseModel):
    name: str
    type: str
    label: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None


class MappingUpdate(BaseModel):
    sync_enabled: bool


# ─── Dependencies ─────────────────────────────────────────────────────────────

def get_client_factory():
    """Factory for OpenHAB clients; overridden in tests."""
    return OpenHABClient


def get_sync_service(client_factory=Depends(get_client_factory)) -> OpenHABSyncService:
    return OpenHABSyncService(get_engine(), client_factory=client_factory)


def _caller_config(session: Session) -> Optional[SyncConfig]:
    """The config owned by the calling user (single-tenant: settings.user_id)."""
    return session.exec(
        select(SyncConfig).where(SyncConfig.user_id == get_settings().user_id)
    ).first()


def _require_config(session: Session) -> SyncConfig:
    config = _caller_config(session)
    if config is None:
        raise HTTPException(status_code=400, detail=NO_CONFIG_MESSAGE)
    return config


def _config_response(config: SyncConfig) -> ConfigResponse:
    return ConfigResponse(
        id=config.id,
        endpoint_url=config.endpoint_url,
        has_auth_token=bool(config.auth_token),
        sync_interval_seconds=config.sync_interval_seconds,
        enabled=config.enabled,
        last_synced_at=config.last_synced_at,
    )


# ─── Action endpoint ──────────────────────────────────────────────────────────

@router.post("/actions")
async def dispatch_action(
    request: ActionRequest,
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
    service: OpenHABSyncService = Depends(get_sync_service),
    client_factory=Depends(get_client_factory),
):
    """
    Single entry point used by the dashboard and the scheduler.

    auto-sync is the only action not bound to the caller's own config; it
    authenticates with the shared scheduler token instead.
    """
    if request.action == "auto-sync":
        return await _auto_sync(request, authorization, session, service)
    if request.action == "test-connection":
        return await _test_connection(request, client_factory)
    if request.action == "fetch-items":
        return await _fetch_items(session, client_factory)
    if request.action == "sync-data":
        return await _sync_data(session, service)
    if request.action == "send-command":
        return await _send_command(request, session, client_factory)
    raise HTTPException(status_code=400, detail="Invalid action")


async def _test_connection(request: ActionRequest, client_factory):
    if not request.endpoint_url:
        raise HTTPException(status_code=400, detail="endpointUrl is required")
    result = await probe_connection(
        request.endpoint_url, request.auth_token, client_factory=client_factory
    )
    return result.to_dict()


async def _fetch_items(session: Session, client_factory):
    config = _require_config(session)
    try:
        items = await discover_items(config, client_factory=client_factory)
    except PreconditionError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except SyncError as exc:
        logger.warning("Item discovery failed for config %s: %s", config.id, exc)
        raise HTTPException(status_code=502, detail=exc.message)
    return {"items": [item.to_dict() for item in items]}


async def _sync_data(session: Session, service: OpenHABSyncService):
    config = _caller_config(session)
    if config is None:
        raise HTTPException(status_code=400, detail=SyncNotEnabledError().message)
    return await _run_sync(service, config.id, TRIGGER_MANUAL)


async def _auto_sync(
    request: ActionRequest,
    authorization: Optional[str],
    session: Session,
    service: OpenHABSyncService,
):
    expected = get_settings().auto_sync_token
    if not authorization:
        logger.info("Auto-sync rejected: missing authorization header")
        raise HTTPException(status_code=401, detail="Unauthorized: Missing authorization")
    token = authorization[len("Bearer "):] if authorization.startswith("Bearer ") else authorization
    if not expected or not secrets.compare_digest(token.encode(), expected.encode()):
        logger.info("Auto-sync rejected: invalid token")
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token")

    if not request.config_id:
        raise HTTPException(status_code=400, detail="Missing config_id")
    try:
        config_id = uuid.UUID(request.config_id)
    except ValueError:
        logger.info("Auto-sync rejected: invalid config_id %r", request.config_id)
        raise HTTPException(status_code=400, detail="Invalid config_id format")

    config = session.get(SyncConfig, config_id)
    if config is None or not config.enabled:
        raise HTTPException(status_code=403, detail="Invalid or disabled configuration")

    allowed_at = next_sync_allowed_at(config)
    if allowed_at is not None and datetime.utcnow() < allowed_at:
        logger.info("Auto-sync rate limited for config %s", config_id)
        raise HTTPException(
            status_code=429,
            detail={
                "error": "Rate limited: Sync interval not reached",
                "next_sync_allowed_at": allowed_at.isoformat(),
            },
        )

    return await _run_sync(service, config_id, TRIGGER_AUTOMATIC)


async def _run_sync(service: OpenHABSyncService, config_id: uuid.UUID, trigger_kind: str):
    try:
        result = await service.run(config_id, trigger_kind)
    except SyncInProgressError as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    except PreconditionError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except SyncError as exc:
        logger.error("Sync for config %s failed: %s", config_id, exc)
        raise HTTPException(status_code=500, detail=exc.message)
    return result.to_dict()


async def _send_command(request: ActionRequest, session: Session, client_factory):
    if not request.item_name or request.command is None:
        raise HTTPException(status_code=400, detail="itemName and command are required")
    config = _require_config(session)
    try:
        message = await send_command(
            config, request.item_name, request.command, client_factory=client_factory
        )
    except PreconditionError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except SyncError as exc:
        raise HTTPException(status_code=502, detail=exc.message)
    return {"success": True, "message": message}


# ─── Config ───────────────────────────────────────────────────────────────────

@router.get("/config", response_model=Optional[ConfigResponse])
def read_config(session: Session = Depends(get_session)):
    """Return the caller's config, or null if none has been saved."""
    config = _caller_config(session)
    return _config_response(config) if config else None


@router.put("/config", response_model=ConfigResponse)
def save_config(update: ConfigUpdate, session: Session = Depends(get_session)):
    """Create or update the caller's config."""
    try:
        validate_endpoint_url(
            update.endpoint_url, allow_private=get_settings().allow_private_endpoints
        )
    except PreconditionError as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    config = _caller_config(session)
    if config is None:
        config = SyncConfig(user_id=get_settings().user_id, endpoint_url=update.endpoint_url)
    config.endpoint_url = update.endpoint_url
    config.auth_token = update.auth_token
    config.sync_interval_seconds = update.sync_interval_seconds
    config.enabled = update.enabled
    config.updated_at = datetime.utcnow()
    session.add(config)
    session.commit()
    session.refresh(config)
    return _config_response(config)


# ─── Mappings ─────────────────────────────────────────────────────────────────

@router.get("/mappings", response_model=List[ItemMapping])
def list_mappings(session: Session = Depends(get_session)):
    config = _require_config(session)
    return mapping_ops.list_mappings(session, config.id)


@router.post("/mappings", response_model=ItemMapping, status_code=201)
def create_mapping(request: MapItemRequest, session: Session = Depends(get_session)):
    """Map a discovered item: creates a sensor and a sync-enabled mapping."""
    config = _require_config(session)
    item = DiscoveredItem(
        name=request.name,
        type=request.type,
        label=request.label or request.name,
        state=request.state,
        category=request.category,
    )
    try:
        return mapping_ops.map_item(session, config, item)
    except DuplicateMappingError as exc:
        raise HTTPException(status_code=409, detail=exc.message)


@router.patch("/mappings/{mapping_id}", response_model=ItemMapping)
def update_mapping(
    mapping_id: uuid.UUID,
    update: MappingUpdate,
    session: Session = Depends(get_session),
):
    config = _require_config(session)
    mapping = mapping_ops.get_mapping(session, config.id, mapping_id)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return mapping_ops.set_sync_enabled(session, mapping, update.sync_enabled)


@router.delete("/mappings/{mapping_id}", status_code=204)
def delete_mapping(mapping_id: uuid.UUID, session: Session = Depends(get_session)):
    config = _require_config(session)
    mapping = mapping_ops.get_mapping(session, config.id, mapping_id)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Mapping not found")
    mapping_ops.delete_mapping(session, mapping)
    return Response(status_code=204)


# ─── History ──────────────────────────────────────────────────────────────────

@router.get("/history", response_model=List[SyncLog])
def sync_history(
    limit: int = 20,
    session: Session = Depends(get_session),
    service: OpenHABSyncService = Depends(get_sync_service),
):
    """Most recent sync runs for the caller's config, newest first."""
    config = _require_config(session)
    return service.sync_logger.recent(config.id, limit=limit)

"""Sync configuration and audit log models."""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncConfig(SQLModel, table=True):
    """One OpenHAB connection per tenant/installation."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(index=True)
    endpoint_url: str
    auth_token: Optional[str] = None  # bearer token, or "email:password" for myopenHAB
    sync_interval_seconds: int = Field(default=300, ge=1)
    enabled: bool = True
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SyncLog(SQLModel, table=True):
    """Records each sync run for audit and the sync-history view."""

    id: Optional[int] = Field(default=None, primary_key=True)
    config_id: uuid.UUID = Field(foreign_key="syncconfig.id", index=True)
    trigger_kind: str  # "manual", "automatic"
    outcome: str  # "success", "partial", "error"
    items_synced: int = 0
    error_summary: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

"""Append-only audit log of sync runs."""
import logging
import uuid
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from twinsync.models.sync import SyncLog

logger = logging.getLogger(__name__)


class SyncLogger:
    """Writes one SyncLog row per run. Writes are best-effort."""

    def __init__(self, engine):
        self.engine = engine

    def record(
        self,
        config_id: uuid.UUID,
        *,
        trigger_kind: str,
        outcome: str,
        items_synced: int = 0,
        errors: Optional[Sequence[str]] = None,
    ) -> Optional[SyncLog]:
        """
        Persist the outcome of a run.

        A store failure here is logged and swallowed: the sync itself already
        happened and its result must still reach the caller.

        Returns:
            The persisted SyncLog, or None if the write failed.
        """
        entry = SyncLog(
            config_id=config_id,
            trigger_kind=trigger_kind,
            outcome=outcome,
            items_synced=items_synced,
            error_summary="; ".join(errors) if errors else None,
        )
        try:
            with Session(self.engine) as s:
                s.add(entry)
                s.commit()
                s.refresh(entry)
        except SQLAlchemyError:
            logger.exception(
                "Could not write sync log for config %s (outcome=%s, synced=%d)",
                config_id, outcome, items_synced,
            )
            return None
        return entry

    def recent(self, config_id: uuid.UUID, limit: int = 20) -> List[SyncLog]:
        """Most recent runs for a config, newest first."""
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncLog)
                    .where(SyncLog.config_id == config_id)
                    .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
                    .limit(limit)
                ).all()
            )

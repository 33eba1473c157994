"""Draft persistence adapters.

The session treats persistence as a side effect: a store may fail, and
the failure comes back as a SaveStatus instead of an exception. Two
stores are provided:

  InMemoryDraftStore  process-local dict (default, and what tests use)
  SqlDraftStore       intake_drafts table via SQLAlchemy async
"""

import logging
from datetime import datetime
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from project_intake.config import settings
from project_intake.schemas.intake import IntakeRecord, dump_record, utcnow
from project_intake.services.projection import ProjectSnapshot

logger = logging.getLogger(__name__)


class DraftPayload(BaseModel):
    record: IntakeRecord
    derived_projection: Optional[ProjectSnapshot] = None


class DraftMetadata(BaseModel):
    stage: str
    title: str = ""
    completed: bool = False
    valid_steps: list[int] = Field(default_factory=list)


class StoredDraft(BaseModel):
    """A draft as read back from a store.

    ``record`` is left raw so drafts written by older builds still go
    through the normalizer on the way in.
    """
    record_id: str
    record: dict[str, Any]
    derived_projection: Optional[dict[str, Any]] = None
    metadata: DraftMetadata
    saved_at: datetime = Field(default_factory=utcnow)


class SaveStatus(BaseModel):
    ok: bool
    error: Optional[str] = None
    saved_at: Optional[datetime] = None


class DraftStore(Protocol):
    async def save(self, record_id: str, payload: DraftPayload, metadata: DraftMetadata) -> None:
        ...

    async def load(self, record_id: str) -> StoredDraft | None:
        ...


def _projection_json(payload: DraftPayload) -> dict[str, Any] | None:
    if payload.derived_projection is None:
        return None
    return payload.derived_projection.model_dump(mode="json")


class InMemoryDraftStore:
    def __init__(self):
        self._drafts: dict[str, StoredDraft] = {}

    async def save(self, record_id: str, payload: DraftPayload, metadata: DraftMetadata) -> None:
        self._drafts[record_id] = StoredDraft(
            record_id=record_id,
            record=dump_record(payload.record),
            derived_projection=_projection_json(payload),
            metadata=metadata,
        )

    async def load(self, record_id: str) -> StoredDraft | None:
        return self._drafts.get(record_id)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._drafts

    def __len__(self) -> int:
        return len(self._drafts)


class SqlDraftStore:
    """Upserts one intake_drafts row per record id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(self, record_id: str, payload: DraftPayload, metadata: DraftMetadata) -> None:
        # deferred so the memory backend never builds an engine
        from project_intake.models.intake_draft import IntakeDraft

        async with self._session_factory() as session:
            try:
                draft = await session.get(IntakeDraft, record_id)
                if draft is None:
                    draft = IntakeDraft(record_id=record_id)
                    session.add(draft)
                draft.record = dump_record(payload.record)
                draft.derived_projection = _projection_json(payload)
                draft.stage = metadata.stage
                draft.title = metadata.title[:255]
                draft.completed = metadata.completed
                draft.valid_steps = list(metadata.valid_steps)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def load(self, record_id: str) -> StoredDraft | None:
        from project_intake.models.intake_draft import IntakeDraft

        async with self._session_factory() as session:
            result = await session.execute(
                select(IntakeDraft).where(IntakeDraft.record_id == record_id)
            )
            draft = result.scalar_one_or_none()
            if draft is None:
                return None
            return StoredDraft(
                record_id=draft.record_id,
                record=draft.record or {},
                derived_projection=draft.derived_projection,
                metadata=DraftMetadata(
                    stage=draft.stage,
                    title=draft.title,
                    completed=draft.completed,
                    valid_steps=draft.valid_steps or [],
                ),
                saved_at=draft.updated_at,
            )


# Process-wide store, created on first use
_draft_store: DraftStore | None = None


def get_draft_store() -> DraftStore:
    """FastAPI dependency returning the configured draft store."""
    global _draft_store
    if _draft_store is None:
        if settings.draft_backend == "database":
            from project_intake.database import async_session

            _draft_store = SqlDraftStore(async_session)
        else:
            _draft_store = InMemoryDraftStore()
        logger.info(f"Draft store: {type(_draft_store).__name__}")
    return _draft_store


def reset_draft_store() -> None:
    global _draft_store
    _draft_store = None

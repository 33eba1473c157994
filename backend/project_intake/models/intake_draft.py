"""Persisted intake drafts.

One row per record id. The record is stored in its JSON draft form
(camelCase keys) next to the derived project projection, so a draft
saved by an older build can still be read back through the normalizer.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from project_intake.database import Base


class IntakeDraft(Base):
    __tablename__ = "intake_drafts"

    record_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    record: Mapped[dict] = mapped_column(JSON, default=dict)
    derived_projection: Mapped[dict | None] = mapped_column(JSON, default=None)
    stage: Mapped[str] = mapped_column(String(50), default="intake")
    title: Mapped[str] = mapped_column(String(255), default="")
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    valid_steps: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

"""Pydantic schemas for the intake wizard API.

Request bodies for updates are plain JSON objects merged into the
record, so only creation and migration have dedicated input models.
"""

from typing import Any

from pydantic import BaseModel, Field

from project_intake.schemas.intake import ContextSource
from project_intake.schemas.steps import StepDescriptor
from project_intake.services.completeness import CompletenessResult
from project_intake.services.drafts import SaveStatus
from project_intake.services.projection import ProjectSnapshot


# ── Progress ────────────────────────────────────────────────

class IntakeProgress(BaseModel):
    record_id: str
    current_step: int
    current_step_id: str
    step_count: int
    valid_steps: list[int]
    is_complete: bool
    record: dict[str, Any]
    completeness: CompletenessResult
    # Blocking messages from the last forward move, if it was refused
    violations: list[str] = []
    warnings: list[str] = []
    last_save: SaveStatus | None = None
    project: ProjectSnapshot | None = None


# ── Requests ────────────────────────────────────────────────

class IntakeCreate(BaseModel):
    record_id: str | None = None
    # Any known draft shape; legacy drafts are upgraded on the way in
    draft: dict[str, Any] | None = None


class ContextItemCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=64)
    value: Any
    source: ContextSource = ContextSource.CHAT
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class MigrationRequest(BaseModel):
    draft: Any = None
    legacy_version: int | None = None


# ── Responses ───────────────────────────────────────────────

class StepValidation(BaseModel):
    step_id: str
    valid: bool
    violations: list[str]


class MigrationResponse(BaseModel):
    source_version: int | None
    recovered: bool
    warnings: list[str]
    record: dict[str, Any]
    legacy: dict[str, Any] | None = None


class StepList(BaseModel):
    steps: list[StepDescriptor]


class SuggestionResponse(BaseModel):
    query: str
    suggestions: list[str]

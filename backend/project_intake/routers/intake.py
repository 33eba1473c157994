"""Intake wizard: progressive record capture with save/resume.

Endpoints:
  GET   /api/intake/steps                  → step configuration
  GET   /api/intake/suggestions?q=         → topic / driving question ideas
  POST  /api/intake/migrate                → normalize a posted draft
  POST  /api/intake/                       → start a session (optionally from a draft)
  GET   /api/intake/{id}                   → progress + record
  PATCH /api/intake/{id}                   → merge fields into the record
  POST  /api/intake/{id}/context           → add one progressive context item
  GET   /api/intake/{id}/steps/{step_id}   → validate one step
  GET   /api/intake/{id}/completeness      → three-axis completeness
  POST  /api/intake/{id}/next              → advance (or get the blocking messages)
  POST  /api/intake/{id}/previous          → go back one step
  POST  /api/intake/{id}/goto/{index}      → jump to a visited or valid step

Design:
  - Each request hydrates an IntakeSession from the stored draft, applies
    one operation, and waits for the draft save before answering.
  - A refused forward move is a normal 200 response carrying the
    violation messages, not an error.
  - Type errors in a PATCH body come back as the standard 422 envelope.
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from project_intake.middleware.exceptions import DraftNotFoundError
from project_intake.schemas.intake import dump_record
from project_intake.schemas.steps import get_step_config
from project_intake.schemas.wizard import (
    ContextItemCreate,
    IntakeCreate,
    IntakeProgress,
    MigrationRequest,
    MigrationResponse,
    StepList,
    StepValidation,
    SuggestionResponse,
)
from project_intake.services.completeness import CompletenessResult
from project_intake.services.drafts import DraftStore, get_draft_store
from project_intake.services.normalizer import migrate_with_report, project_legacy
from project_intake.services.session import HandoffEvent, IntakeSession
from project_intake.services.suggestions import suggestions_for
from project_intake.services.validator import validate_step

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _log_handoff(event: HandoffEvent) -> None:
    logger.info(
        f"Intake {event.record_id} completed",
        extra={"record_id": event.record_id, "title": event.project.title},
    )


async def _load_session(record_id: str, store: DraftStore) -> IntakeSession:
    draft = await store.load(record_id)
    if draft is None:
        raise DraftNotFoundError(record_id)
    return IntakeSession.hydrate(record_id, draft, store=store, on_complete=_log_handoff)


async def _make_progress(session: IntakeSession, violations: list[str] | None = None) -> IntakeProgress:
    """Wait for pending saves, then build the response."""
    last_save = await session.flush()
    state = session.navigation
    warnings = list(session.migration.warnings) if session.migration else []
    return IntakeProgress(
        record_id=session.record_id,
        current_step=state.current_step,
        current_step_id=session.current_step.id,
        step_count=state.step_count,
        valid_steps=sorted(state.valid_steps),
        is_complete=state.handed_off,
        record=dump_record(session.record),
        completeness=session.completeness,
        violations=violations or [],
        warnings=warnings,
        last_save=last_save,
        project=session.handoff.project if session.handoff else None,
    )


# ── Static endpoints ─────────────────────────────────────────

@router.get("/steps", response_model=StepList)
async def list_steps():
    return StepList(steps=list(get_step_config()))


@router.get("/suggestions", response_model=SuggestionResponse)
async def get_suggestions(q: str = Query(default="", max_length=500)):
    return SuggestionResponse(query=q, suggestions=suggestions_for(q))


@router.post("/migrate", response_model=MigrationResponse)
async def migrate_draft(body: MigrationRequest):
    """Normalize a draft of any known shape without storing it."""
    report = migrate_with_report(body.draft)
    legacy = None
    if body.legacy_version is not None:
        try:
            legacy = project_legacy(report.record, body.legacy_version)
        except ValueError as e:
            report.warnings.append(str(e))
    return MigrationResponse(
        source_version=report.source_version,
        recovered=report.recovered,
        warnings=report.warnings,
        record=dump_record(report.record),
        legacy=legacy,
    )


# ── Session lifecycle ────────────────────────────────────────

@router.post("/", response_model=IntakeProgress, status_code=status.HTTP_201_CREATED)
async def create_intake(
    body: IntakeCreate,
    store: DraftStore = Depends(get_draft_store),
):
    record_id = body.record_id or str(uuid.uuid4())
    if body.draft is not None:
        session = IntakeSession.hydrate(record_id, body.draft, store=store, on_complete=_log_handoff)
    else:
        session = IntakeSession(record_id, store=store, on_complete=_log_handoff)
    await session.save()
    logger.info(f"Intake session {record_id} started")
    return await _make_progress(session)


@router.get("/{record_id}", response_model=IntakeProgress)
async def get_intake(record_id: str, store: DraftStore = Depends(get_draft_store)):
    session = await _load_session(record_id, store)
    return await _make_progress(session)


@router.patch("/{record_id}", response_model=IntakeProgress)
async def update_intake(
    record_id: str,
    changes: dict[str, Any] = Body(...),
    store: DraftStore = Depends(get_draft_store),
):
    session = await _load_session(record_id, store)
    session.update(changes)
    return await _make_progress(session)


@router.post("/{record_id}/context", response_model=IntakeProgress)
async def add_intake_context(
    record_id: str,
    body: ContextItemCreate,
    store: DraftStore = Depends(get_draft_store),
):
    session = await _load_session(record_id, store)
    session.add_context(body.key, body.value, source=body.source, confidence=body.confidence)
    return await _make_progress(session)


@router.get("/{record_id}/steps/{step_id}", response_model=StepValidation)
async def validate_intake_step(
    record_id: str,
    step_id: str,
    store: DraftStore = Depends(get_draft_store),
):
    session = await _load_session(record_id, store)
    violations = validate_step(step_id, session.record)
    return StepValidation(step_id=step_id, valid=not violations, violations=violations)


@router.get("/{record_id}/completeness", response_model=CompletenessResult)
async def get_completeness(record_id: str, store: DraftStore = Depends(get_draft_store)):
    session = await _load_session(record_id, store)
    return session.completeness


# ── Navigation ───────────────────────────────────────────────

@router.post("/{record_id}/next", response_model=IntakeProgress)
async def next_step(record_id: str, store: DraftStore = Depends(get_draft_store)):
    session = await _load_session(record_id, store)
    violations = session.next()
    return await _make_progress(session, violations)


@router.post("/{record_id}/previous", response_model=IntakeProgress)
async def previous_step(record_id: str, store: DraftStore = Depends(get_draft_store)):
    session = await _load_session(record_id, store)
    session.previous()
    return await _make_progress(session)


@router.post("/{record_id}/goto/{index}", response_model=IntakeProgress)
async def goto_step(record_id: str, index: int, store: DraftStore = Depends(get_draft_store)):
    session = await _load_session(record_id, store)
    session.go_to(index)
    return await _make_progress(session)

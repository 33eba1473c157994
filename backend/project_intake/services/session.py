"""The intake session: single owner of one record and its navigation state.

Everything that changes the record goes through ``IntakeSession.update``,
which replaces the whole record and schedules a draft save. Saving is a
side effect: it runs in the background when an event loop is available
and a failed save never blocks editing or navigation.

The navigation state machine trusts its caller, and the session is that
caller: ``next()`` validates the current step before moving.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional

from pydantic import BaseModel

from project_intake.schemas.intake import (
    SCHEMA_VERSION,
    ContextSource,
    IntakeRecord,
    add_context_item,
    default_record,
    mark_completed,
    update_record,
    utcnow,
)
from project_intake.schemas.steps import StepDescriptor, get_step_config
from project_intake.services import navigation as nav
from project_intake.services.completeness import CompletenessResult, evaluate
from project_intake.services.drafts import (
    DraftMetadata,
    DraftPayload,
    DraftStore,
    SaveStatus,
    StoredDraft,
)
from project_intake.services.normalizer import MigrationReport, migrate_with_report
from project_intake.services.projection import ProjectSnapshot, build_project_snapshot
from project_intake.services.validator import validate_step

logger = logging.getLogger(__name__)


class HandoffEvent(BaseModel):
    record_id: str
    record: IntakeRecord
    project: ProjectSnapshot


class IntakeSession:
    def __init__(
        self,
        record_id: str,
        record: Optional[IntakeRecord] = None,
        *,
        store: Optional[DraftStore] = None,
        on_complete: Optional[Callable[[HandoffEvent], Any]] = None,
        navigation: Optional[nav.NavigationState] = None,
    ):
        self.record_id = record_id
        self.record = record if record is not None else default_record()
        self.store = store
        self.on_complete = on_complete
        self.steps: tuple[StepDescriptor, ...] = get_step_config()
        self.navigation = navigation or nav.initial_state(len(self.steps))
        self.migration: Optional[MigrationReport] = None
        self.handoff: Optional[HandoffEvent] = None
        self.last_save: Optional[SaveStatus] = None
        self._pending: set[asyncio.Task] = set()
        # One save at a time, each writing the record as it stands when it runs
        self._save_lock = asyncio.Lock()

    # ── Construction from a stored draft ────────────────────────

    @classmethod
    def hydrate(
        cls,
        record_id: str,
        draft: StoredDraft | Mapping[str, Any] | None,
        *,
        store: Optional[DraftStore] = None,
        on_complete: Optional[Callable[[HandoffEvent], Any]] = None,
    ) -> "IntakeSession":
        """Rebuild a session from a stored (possibly legacy) draft.

        The record goes through the normalizer. The current step is the
        stored stage, pulled back to the first earlier step that no longer
        validates. Earlier steps and previously valid steps that still
        validate are marked valid.
        """
        stage = None
        raw: Any = draft
        stored_valid: set[int] = set()
        if isinstance(draft, StoredDraft):
            raw = draft.record
            stage = draft.metadata.stage
            stored_valid = set(draft.metadata.valid_steps)

        if raw is None:
            report = MigrationReport(record=default_record(), source_version=SCHEMA_VERSION)
        else:
            report = migrate_with_report(raw)
        completed = report.record.metadata.wizard_completed
        if isinstance(draft, StoredDraft):
            completed = draft.metadata.completed
        session = cls(record_id, report.record, store=store, on_complete=on_complete)
        session.migration = report

        target = 0
        for index, step in enumerate(session.steps):
            if step.id == stage:
                target = index
        valid = set()
        current = target
        for index in range(target):
            if validate_step(session.steps[index].id, session.record):
                current = index
                break
            valid.add(index)
        for index in stored_valid:
            if not 0 <= index < len(session.steps):
                continue
            if not validate_step(session.steps[index].id, session.record):
                valid.add(index)

        session.navigation = nav.NavigationState(
            current_step=current,
            step_count=len(session.steps),
            valid_steps=frozenset(valid),
            handed_off=completed and current == target,
        )
        if session.navigation.handed_off:
            # Already delivered by whichever session completed it
            session.handoff = session._build_handoff()
        return session

    # ── Read-only views ─────────────────────────────────────────

    @property
    def current_step(self) -> StepDescriptor:
        return self.steps[self.navigation.current_step]

    @property
    def completeness(self) -> CompletenessResult:
        return evaluate(self.record)

    @property
    def validation(self) -> list[str]:
        return validate_step(self.current_step.id, self.record)

    @property
    def is_complete(self) -> bool:
        return self.navigation.handed_off

    def project(self) -> ProjectSnapshot:
        return build_project_snapshot(self.record, self.record_id)

    # ── Mutation ────────────────────────────────────────────────

    def update(self, changes: Mapping[str, Any] | BaseModel) -> IntakeRecord:
        """Merge ``changes`` into the record; raises pydantic.ValidationError
        for values of the wrong type and leaves the record untouched."""
        self.record = update_record(self.record, changes)
        self._refresh_validity()
        self._schedule_save()
        return self.record

    def add_context(
        self,
        key: str,
        value: Any,
        *,
        source: ContextSource = ContextSource.CHAT,
        confidence: float = 0.8,
    ) -> IntakeRecord:
        """Grow the progressive context bag; a weaker value never replaces
        a more confident one."""
        updated = add_context_item(
            self.record, key, value, source=source, confidence=confidence
        )
        if updated is self.record:
            return self.record
        self.record = updated
        self._schedule_save()
        return self.record

    def _refresh_validity(self) -> None:
        state = self.navigation
        indices = set(state.valid_steps)
        if not state.handed_off:
            indices.add(state.current_step)
        for index in sorted(indices):
            valid = not validate_step(self.steps[index].id, self.record)
            state = nav.mark_step_valid(state, index, valid)
        self.navigation = state

    # ── Navigation ──────────────────────────────────────────────

    def next(self) -> list[str]:
        """Move forward; returns the blocking violations when it cannot."""
        state = self.navigation
        if state.handed_off:
            return []

        violations = validate_step(self.current_step.id, self.record)
        if not violations and state.is_last:
            # Hand-off needs every step, not just the review screen
            for step in self.steps:
                violations.extend(validate_step(step.id, self.record))
        if violations:
            self.navigation = nav.mark_step_valid(state, state.current_step, False)
            return violations

        state = nav.mark_step_valid(state, state.current_step, True)
        transition = nav.go_to_next(state)
        self.navigation = transition.state
        if transition.handoff:
            self._complete()
        self._schedule_save()
        return []

    def previous(self) -> None:
        self.navigation = nav.go_to_previous(self.navigation)
        self._schedule_save()

    def go_to(self, index: int) -> bool:
        before = self.navigation
        self.navigation = nav.go_to_step(before, index)
        moved = self.navigation != before
        if moved:
            self._schedule_save()
        return moved

    # ── Completion ──────────────────────────────────────────────

    def _build_handoff(self) -> HandoffEvent:
        return HandoffEvent(record_id=self.record_id, record=self.record, project=self.project())

    def _complete(self) -> None:
        self.record = mark_completed(self.record)
        first_time = self.handoff is None
        self.handoff = self._build_handoff()
        logger.info(f"Intake {self.record_id} handed off: {self.handoff.project.title}")
        if first_time and self.on_complete is not None:
            self.on_complete(self.handoff)

    # ── Persistence ─────────────────────────────────────────────

    def _draft_metadata(self) -> DraftMetadata:
        project = self.project()
        return DraftMetadata(
            stage=self.current_step.id,
            title=project.title,
            completed=self.navigation.handed_off,
            valid_steps=sorted(self.navigation.valid_steps),
        )

    async def save(self) -> SaveStatus:
        """Persist the current draft. Never raises.

        Saves are serialized per session, so the store always ends up
        with the latest record even when several were scheduled.
        """
        if self.store is None:
            self.last_save = SaveStatus(ok=False, error="No draft store configured")
            return self.last_save
        async with self._save_lock:
            try:
                payload = DraftPayload(record=self.record, derived_projection=self.project())
                await self.store.save(self.record_id, payload, self._draft_metadata())
            except Exception as e:
                logger.exception(f"Draft save failed for {self.record_id}: {e}")
                status = SaveStatus(ok=False, error=str(e) or type(e).__name__)
            else:
                status = SaveStatus(ok=True, saved_at=utcnow())
            self.last_save = status
        return status

    def _schedule_save(self) -> None:
        if self.store is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: callers save explicitly
            return
        task = loop.create_task(self.save())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> SaveStatus | None:
        """Wait for background saves; returns the latest status."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
        return self.last_save

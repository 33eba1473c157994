"""Downstream project representation built from a finished intake record."""

from typing import Any

from pydantic import BaseModel, Field

from project_intake.schemas.intake import Duration, IntakeRecord, PBLExperience, dump_record
from project_intake.services.completeness import evaluate

TITLE_MAX_LENGTH = 80
UNTITLED = "Untitled Project"
PROJECT_STAGES = ("ideation", "journey", "deliverables")

_DURATION_LABELS = {
    Duration.SHORT: "Short project (1-2 weeks)",
    Duration.MEDIUM: "Medium project (3-6 weeks)",
    Duration.LONG: "Long project (7+ weeks)",
}

_EXPERIENCE_LABELS = {
    PBLExperience.NEW: "New to PBL",
    PBLExperience.SOME: "Some PBL experience",
    PBLExperience.EXPERIENCED: "Experienced with PBL",
}


class ProjectSnapshot(BaseModel):
    record_id: str
    title: str
    primary_subject: str = ""
    current_stage: str = PROJECT_STAGES[0]
    stage_status: dict[str, str] = Field(default_factory=dict)
    context_summary: str = ""
    missing_critical_fields: list[str] = Field(default_factory=list)
    has_minimum_viable_context: bool = False
    record: dict[str, Any] = Field(default_factory=dict)


def project_title(record: IntakeRecord) -> str:
    topic = record.project_topic.strip()
    if not topic:
        return UNTITLED
    if len(topic) <= TITLE_MAX_LENGTH:
        return topic
    return topic[: TITLE_MAX_LENGTH - 3].rstrip() + "..."


def context_summary(record: IntakeRecord) -> str:
    parts = []
    if record.grade_level:
        parts.append(f"Grade {record.grade_level}")
    parts.append(_DURATION_LABELS[record.duration])
    if len(record.subjects) == 1:
        parts.append(f"{record.subjects[0]} focus")
    elif record.subjects:
        parts.append("Interdisciplinary: " + ", ".join(record.subjects))
    parts.append(_EXPERIENCE_LABELS[record.pbl_experience])
    return " • ".join(parts)


def build_project_snapshot(record: IntakeRecord, record_id: str) -> ProjectSnapshot:
    completeness = evaluate(record)
    return ProjectSnapshot(
        record_id=record_id,
        title=project_title(record),
        primary_subject=record.primary_subject,
        stage_status={stage: "not_started" for stage in PROJECT_STAGES},
        context_summary=context_summary(record),
        missing_critical_fields=list(completeness.missing),
        has_minimum_viable_context=completeness.core_complete and bool(record.subjects),
        record=dump_record(record),
    )

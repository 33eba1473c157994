"""Legacy draft normalization.

Drafts saved by earlier versions of the intake flow come in two older
shapes:

  v1  early onboarding form: title, motivation, subject, ageGroup, scope,
      location, materials, createdAt, updatedAt
  v2  streamlined wizard: entryPoint (goal|materials|explore), vision,
      drivingQuestion, subject, gradeLevel, duration, pblExperience,
      specialConsiderations

``migrate`` upgrades any of them (or a current draft) to schema version
3. It is total and idempotent. Fields with a direct mapping carry over
unchanged and are recorded as touched; fields without a legacy
equivalent keep the schema default and stay untouched, so scoring sees
them as unanswered. Input that does not look like any known shape
becomes a fresh default record and the report says so.

``project_legacy`` goes the other way for consumers that still read the
old shape. It is lossy and never a system of record.
"""

import logging
import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from project_intake.schemas.intake import (
    FIELD_NAMES,
    SCHEMA_VERSION,
    ContextSource,
    Duration,
    EntryPoint,
    IntakeRecord,
    Invalid,
    PBLExperience,
    default_record,
    parse_record,
)

logger = logging.getLogger(__name__)

LEGACY_ENTRY_POINTS = {
    "goal": EntryPoint.LEARNING_GOAL,
    "materials": EntryPoint.MATERIALS_FIRST,
    "explore": EntryPoint.EXPLORE,
}

V1_KEYS = ("title", "motivation", "subject", "ageGroup", "scope", "location", "materials",
           "createdAt", "updatedAt")
V2_KEYS = ("entryPoint", "vision", "drivingQuestion", "subject", "gradeLevel", "duration",
           "pblExperience", "specialConsiderations")

_V3_MARKERS = {"projectTopic", "learningGoals", "subjects", "progressiveContext",
               "project_topic", "learning_goals", "progressive_context"}
_V2_MARKERS = {"vision", "drivingQuestion", "pblExperience", "specialConsiderations"}
_VERSION_KEYS = {"schemaVersion", "schema_version"}
_V1_MARKERS = {"title", "motivation", "ageGroup", "scope"}


class MigrationReport(BaseModel):
    record: IntakeRecord
    source_version: int | None = None
    recovered: bool = False
    warnings: list[str] = Field(default_factory=list)

    @property
    def migrated(self) -> bool:
        return self.source_version != SCHEMA_VERSION


# ── Version detection ───────────────────────────────────────

def _coerce_version(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def detect_version(data: Any) -> int | None:
    """Schema version of a draft, or None when it matches no known shape."""
    if isinstance(data, IntakeRecord):
        return SCHEMA_VERSION
    if not isinstance(data, Mapping):
        return None

    explicit = data.get("schemaVersion", data.get("schema_version"))
    if explicit is None and isinstance(data.get("metadata"), Mapping):
        explicit = data["metadata"].get("version")
    version = _coerce_version(explicit)
    if version is not None and version >= 1:
        # Newer-than-known drafts are read as current; never downgraded
        return min(version, SCHEMA_VERSION)

    keys = set(data)
    if keys & _V3_MARKERS:
        return 3
    entry_point = data.get("entryPoint")
    if keys & _V2_MARKERS or (isinstance(entry_point, str) and entry_point in LEGACY_ENTRY_POINTS):
        return 2
    if keys & _V1_MARKERS:
        return 1
    if "subject" in keys:
        return 2
    if any(key in FIELD_NAMES for key in keys - _VERSION_KEYS):
        return 3
    return None


# ── Field sanitizers ────────────────────────────────────────

def _text(data: Mapping, key: str, warnings: list[str]) -> str | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if not isinstance(value, str):
        warnings.append(f"Dropped {key}: expected text, got {type(value).__name__}")
        return None
    return value


def _enum(enum_cls, value: Any, key: str, warnings: list[str]):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        warnings.append(f"Dropped {key}: unknown value {value!r}")
        return None


def _put(target: dict, key: str, value: Any) -> None:
    if value is not None:
        target[key] = value


# ── Upgrades ────────────────────────────────────────────────

def _from_v1(data: Mapping, warnings: list[str]) -> dict[str, Any]:
    upgraded: dict[str, Any] = {}
    _put(upgraded, "projectTopic", _text(data, "title", warnings))
    _put(upgraded, "learningGoals", _text(data, "motivation", warnings))
    subject = _text(data, "subject", warnings)
    if subject is not None:
        upgraded["subjects"] = [subject] if subject.strip() else []
    _put(upgraded, "gradeLevel", _text(data, "ageGroup", warnings))
    duration = _enum(Duration, data.get("scope"), "scope", warnings)
    _put(upgraded, "duration", duration.value if duration else None)
    _put(upgraded, "materials", _text(data, "materials", warnings))

    location = _text(data, "location", warnings)
    if location and location.strip():
        upgraded["progressiveContext"] = {
            "location": {"value": location, "source": ContextSource.WIZARD.value, "confidence": 1.0},
        }

    metadata: dict[str, Any] = {"touchedFields": _touched(upgraded)}
    _put(metadata, "createdAt", data.get("createdAt"))
    _put(metadata, "lastModified", data.get("updatedAt") or data.get("createdAt"))
    upgraded["metadata"] = metadata
    return upgraded


def _from_v2(data: Mapping, warnings: list[str]) -> dict[str, Any]:
    upgraded: dict[str, Any] = {}

    raw_entry = data.get("entryPoint")
    if isinstance(raw_entry, str) and raw_entry in LEGACY_ENTRY_POINTS:
        upgraded["entryPoint"] = LEGACY_ENTRY_POINTS[raw_entry].value
    elif raw_entry in (None, ""):
        # Unanswered in the old wizard; not guessed
        upgraded["entryPoint"] = None
    else:
        entry = _enum(EntryPoint, raw_entry, "entryPoint", warnings)
        upgraded["entryPoint"] = entry.value if entry else None

    _put(upgraded, "learningGoals", _text(data, "vision", warnings))
    _put(upgraded, "drivingQuestion", _text(data, "drivingQuestion", warnings))

    subjects = data.get("subjects")
    if isinstance(subjects, list):
        upgraded["subjects"] = subjects
    else:
        subject = _text(data, "subject", warnings)
        if subject is not None:
            upgraded["subjects"] = [subject] if subject.strip() else []

    _put(upgraded, "gradeLevel", _text(data, "gradeLevel", warnings))
    duration = _enum(Duration, data.get("duration"), "duration", warnings)
    _put(upgraded, "duration", duration.value if duration else None)
    experience = _enum(PBLExperience, data.get("pblExperience"), "pblExperience", warnings)
    _put(upgraded, "pblExperience", experience.value if experience else None)
    _put(upgraded, "specialConsiderations", _text(data, "specialConsiderations", warnings))
    _put(upgraded, "specialRequirements", _text(data, "specialRequirements", warnings))
    _put(upgraded, "materials", _text(data, "materials", warnings))

    metadata: dict[str, Any] = {"touchedFields": _touched(upgraded)}
    old_metadata = data.get("metadata")
    if isinstance(old_metadata, Mapping):
        for key in ("createdAt", "lastModified", "wizardCompleted", "skippedFields"):
            _put(metadata, key, old_metadata.get(key))
    upgraded["metadata"] = metadata
    return upgraded


def _from_v3(data: Mapping, warnings: list[str]) -> dict[str, Any]:
    return dict(data)


_UPGRADES = {1: _from_v1, 2: _from_v2, 3: _from_v3}

_ALIAS_TO_FIELD = {
    "entryPoint": "entry_point",
    "projectTopic": "project_topic",
    "learningGoals": "learning_goals",
    "subjects": "subjects",
    "gradeLevel": "grade_level",
    "duration": "duration",
    "specialRequirements": "special_requirements",
    "pblExperience": "pbl_experience",
    "specialConsiderations": "special_considerations",
    "drivingQuestion": "driving_question",
    "materials": "materials",
    "progressiveContext": "progressive_context",
}


def _touched(upgraded: Mapping[str, Any]) -> list[str]:
    return [
        _ALIAS_TO_FIELD[key] for key in upgraded
        if key in _ALIAS_TO_FIELD and upgraded[key] is not None
    ]


# ── Public API ──────────────────────────────────────────────

def _recover(reason: str, source_version: int | None = None) -> MigrationReport:
    logger.warning(f"Unusable intake draft, starting from a fresh record: {reason}")
    return MigrationReport(
        record=default_record(),
        source_version=source_version,
        recovered=True,
        warnings=[f"Draft could not be read and was replaced with a new record ({reason})"],
    )


def migrate_with_report(data: Any) -> MigrationReport:
    """Upgrade ``data`` to the current schema and explain what happened."""
    if isinstance(data, IntakeRecord):
        return MigrationReport(record=data, source_version=SCHEMA_VERSION)

    version = detect_version(data)
    if version is None:
        kind = type(data).__name__ if not isinstance(data, Mapping) else "unrecognised shape"
        return _recover(f"not an intake draft: {kind}")

    warnings: list[str] = []
    candidate = _UPGRADES[version](data, warnings)
    candidate["schemaVersion"] = SCHEMA_VERSION

    result = parse_record(candidate)
    if isinstance(result, Invalid):
        # Salvage: drop the offending top-level fields and try once more
        bad_fields = set()
        for violation in result.violations:
            top = violation.field.split(".")[0]
            bad_fields.add(FIELD_NAMES.get(top, top))
            warnings.append(f"Dropped {violation.field}: {violation.message}")
        candidate = {
            key: value for key, value in candidate.items()
            if FIELD_NAMES.get(key, key) not in bad_fields
        }
        result = parse_record(candidate)
        if isinstance(result, Invalid):
            return _recover("; ".join(v.message for v in result.violations), version)

    for warning in warnings:
        logger.warning(f"Intake draft v{version}: {warning}")
    return MigrationReport(record=result.record, source_version=version, warnings=warnings)


def migrate(data: Any) -> IntakeRecord:
    """Total, idempotent upgrade to the current schema version."""
    return migrate_with_report(data).record


# ── Legacy projection ───────────────────────────────────────

def _js_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _project_v1(record: IntakeRecord) -> dict[str, Any]:
    location = record.progressive_context.get("location")
    return {
        "title": record.project_topic,
        "motivation": record.learning_goals,
        "subject": record.primary_subject,
        "ageGroup": record.grade_level,
        "scope": record.duration.value,
        "location": location.value if location is not None else "",
        "materials": record.materials,
        "createdAt": _js_timestamp(record.metadata.created_at),
        "updatedAt": _js_timestamp(record.metadata.last_modified),
    }


def _project_v2(record: IntakeRecord) -> dict[str, Any]:
    legacy_entry = {value: key for key, value in LEGACY_ENTRY_POINTS.items()}
    return {
        "entryPoint": legacy_entry.get(record.entry_point, ""),
        "vision": record.learning_goals,
        "drivingQuestion": record.driving_question,
        "subject": record.primary_subject,
        "gradeLevel": record.grade_level,
        "duration": record.duration.value,
        "pblExperience": record.pbl_experience.value,
        "specialConsiderations": record.special_considerations,
    }


_PROJECTIONS = {1: _project_v1, 2: _project_v2}


def project_legacy(record: IntakeRecord, version: int = 2) -> dict[str, Any]:
    """Backward-compatible view of ``record`` in an older shape (lossy)."""
    if version not in _PROJECTIONS:
        raise ValueError(f"No legacy projection for schema version {version}")
    return _PROJECTIONS[version](record)

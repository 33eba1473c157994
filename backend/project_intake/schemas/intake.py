"""Canonical intake record (schema version 3) and its field rules.

Every field has a default so partial drafts parse. Parsing only checks
types and hard bounds (enum membership, confidence in [0, 1], subject
cap). Minimum lengths belong to step validation and completeness
scoring, which both read FIELD_RULES so "what is required" and "what is
checked" cannot drift apart.

JSON keys are camelCase (``entryPoint``, ``projectTopic`` ...) so drafts
written by the web client parse as-is; python code uses snake_case.
"""

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from project_intake.config import settings

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enumerations ────────────────────────────────────────────

class EntryPoint(str, enum.Enum):
    LEARNING_GOAL = "learning_goal"
    MATERIALS_FIRST = "materials_first"
    EXPLORE = "explore"


class Duration(str, enum.Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class PBLExperience(str, enum.Enum):
    NEW = "new"
    SOME = "some"
    EXPERIENCED = "experienced"


class ContextSource(str, enum.Enum):
    WIZARD = "wizard"
    CHAT = "chat"
    INFERRED = "inferred"


class Tier(str, enum.Enum):
    """UI labelling only, never used for gating."""
    CORE = "core"
    SCAFFOLD = "scaffold"
    ASPIRATIONAL = "aspirational"


class Axis(str, enum.Enum):
    """Completeness axis a field is scored on."""
    CORE = "core"
    CONTEXT = "context"
    PROGRESSIVE = "progressive"


# ── Record models ───────────────────────────────────────────

class IntakeModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ContextItem(IntakeModel):
    """One entry of the progressive context bag."""
    value: Any = None
    source: ContextSource = ContextSource.CHAT
    # The UI keeps this within [0.5, 0.95]; the schema only enforces [0, 1].
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    gathered_at: datetime = Field(default_factory=utcnow)


class RecordMetadata(IntakeModel):
    created_at: datetime = Field(default_factory=utcnow)
    last_modified: datetime = Field(default_factory=utcnow)
    wizard_completed: bool = False
    skipped_fields: list[str] = Field(default_factory=list)
    # Fields the user explicitly set, in first-touched order.
    touched_fields: list[str] = Field(default_factory=list)


_TEXT_FIELDS = (
    "project_topic",
    "learning_goals",
    "grade_level",
    "special_requirements",
    "special_considerations",
    "driving_question",
    "materials",
)


def _ordered_unique(values: list[Any]) -> list[str]:
    seen: list[str] = []
    for raw in values:
        if not isinstance(raw, str):
            # Left for pydantic to reject with a proper type error
            return values
        item = raw.strip()
        if item and item not in seen:
            seen.append(item)
    return seen


class IntakeRecord(IntakeModel):
    schema_version: int = SCHEMA_VERSION

    # Core
    entry_point: EntryPoint | None = EntryPoint.LEARNING_GOAL
    project_topic: str = ""
    learning_goals: str = ""

    # Context
    subjects: list[str] = Field(default_factory=list)
    grade_level: str = Field(default_factory=lambda: settings.default_grade_band)
    duration: Duration = Duration.MEDIUM
    special_requirements: str = ""

    # Aspirational
    pbl_experience: PBLExperience = PBLExperience.SOME
    special_considerations: str = ""
    driving_question: str = ""
    materials: str = ""

    # Progressive
    progressive_context: dict[str, ContextItem] = Field(default_factory=dict)

    metadata: RecordMetadata = Field(default_factory=RecordMetadata)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _trim_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("entry_point", mode="before")
    @classmethod
    def _blank_entry_point(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("subjects", mode="before")
    @classmethod
    def _normalize_subjects(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return _ordered_unique(list(value))
        return value

    @field_validator("subjects")
    @classmethod
    def _subject_cap(cls, value: list[str]) -> list[str]:
        if len(value) > settings.max_subjects:
            raise ValueError(f"At most {settings.max_subjects} subjects can be selected")
        return value

    @field_validator("progressive_context", mode="before")
    @classmethod
    def _wrap_context_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            return value
        wrapped: dict[str, Any] = {}
        for key, item in value.items():
            key = str(key).strip()
            if not key:
                continue
            if isinstance(item, ContextItem) or (isinstance(item, Mapping) and "value" in item):
                wrapped[key] = item
            else:
                wrapped[key] = {"value": item}
        return wrapped

    @model_validator(mode="after")
    def _seed_touched_fields(self) -> "IntakeRecord":
        # Built without metadata: every field passed in is an explicit answer
        if "metadata" not in self.model_fields_set:
            self.metadata.touched_fields = [
                name for name in type(self).model_fields
                if name in self.model_fields_set and name != "schema_version"
            ]
        return self

    @computed_field(alias="primarySubject")
    @property
    def primary_subject(self) -> str:
        return self.subjects[0] if self.subjects else ""


# Accept both python names and camelCase aliases on update.
FIELD_NAMES: dict[str, str] = {}
for _name in IntakeRecord.model_fields:
    FIELD_NAMES[_name] = _name
    FIELD_NAMES[to_camel(_name)] = _name


# ── Field rules ─────────────────────────────────────────────

class RuleKind(str, enum.Enum):
    MIN_LENGTH = "min_length"
    SELECTION = "selection"
    MULTI_SELECT = "multi_select"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class FieldRule:
    name: str
    label: str
    tier: Tier
    kind: RuleKind
    axis: Axis | None = None
    min_length: int = 0
    min_items: int = 0
    prompt: str = ""
    # A schema default that still counts as a deliberate answer
    default_is_choice: bool = False


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        "entry_point", "Entry point", Tier.CORE, RuleKind.SELECTION, Axis.CORE,
        prompt="Please choose how you want to start the project.",
    ),
    FieldRule(
        "project_topic", "Project topic", Tier.CORE, RuleKind.MIN_LENGTH, Axis.CORE,
        min_length=settings.min_text_length,
    ),
    FieldRule(
        "learning_goals", "Learning goals", Tier.CORE, RuleKind.MIN_LENGTH, Axis.CORE,
        min_length=settings.min_text_length,
    ),
    FieldRule(
        "subjects", "Subject area(s)", Tier.SCAFFOLD, RuleKind.MULTI_SELECT, Axis.CONTEXT,
        min_items=1, prompt="Please select at least one subject.",
    ),
    FieldRule(
        "grade_level", "Grade level", Tier.SCAFFOLD, RuleKind.SELECTION, Axis.CONTEXT,
        prompt="Please select a grade level.",
    ),
    FieldRule(
        "duration", "Project duration", Tier.SCAFFOLD, RuleKind.SELECTION, Axis.CONTEXT,
        prompt="Please specify the project duration.", default_is_choice=True,
    ),
    FieldRule("special_requirements", "Special requirements", Tier.SCAFFOLD, RuleKind.OPTIONAL),
    FieldRule(
        "pbl_experience", "PBL experience level", Tier.ASPIRATIONAL, RuleKind.SELECTION,
        prompt="Please tell us how much PBL experience you have.", default_is_choice=True,
    ),
    FieldRule("special_considerations", "Special considerations", Tier.ASPIRATIONAL, RuleKind.OPTIONAL),
    FieldRule("driving_question", "Driving question", Tier.ASPIRATIONAL, RuleKind.OPTIONAL),
    FieldRule("materials", "Materials", Tier.ASPIRATIONAL, RuleKind.OPTIONAL),
)

FIELD_RULES_BY_NAME: dict[str, FieldRule] = {rule.name: rule for rule in FIELD_RULES}


def rules_for_axis(axis: Axis) -> list[FieldRule]:
    return [rule for rule in FIELD_RULES if rule.axis is axis]


def text_length(record: IntakeRecord, name: str) -> int:
    value = getattr(record, name) or ""
    return len(value.strip())


def rule_satisfied(rule: FieldRule, record: IntakeRecord) -> bool:
    """Whether ``record`` meets the declared constraint of ``rule``."""
    value = getattr(record, rule.name)
    if rule.kind is RuleKind.MIN_LENGTH:
        return text_length(record, rule.name) >= rule.min_length
    if rule.kind is RuleKind.SELECTION:
        return value is not None and value != ""
    if rule.kind is RuleKind.MULTI_SELECT:
        return len(value or []) >= rule.min_items
    return True


def is_default_value(record: IntakeRecord, name: str) -> bool:
    field = IntakeRecord.model_fields[name]
    return getattr(record, name) == field.get_default(call_default_factory=True)


# ── Parse result ────────────────────────────────────────────

class FieldViolation(BaseModel):
    field: str
    message: str
    type: str


class Ok(BaseModel):
    kind: Literal["ok"] = "ok"
    record: IntakeRecord

    @property
    def ok(self) -> bool:
        return True


class Invalid(BaseModel):
    kind: Literal["invalid"] = "invalid"
    violations: list[FieldViolation]

    @property
    def ok(self) -> bool:
        return False


ParseResult = Annotated[Union[Ok, Invalid], Field(discriminator="kind")]


def violations_from_error(exc: ValidationError) -> list[FieldViolation]:
    violations = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"]) or "__root__"
        violations.append(FieldViolation(field=field, message=error["msg"], type=error["type"]))
    return violations


def _input_touched_fields(data: Mapping[str, Any]) -> list[str]:
    touched = []
    for key in data:
        name = FIELD_NAMES.get(key)
        if name and name not in ("schema_version", "metadata") and name not in touched:
            touched.append(name)
    return touched


def parse_record(data: Any) -> Ok | Invalid:
    """Parse untrusted input into an IntakeRecord.

    Never raises for malformed input: constraint violations come back as
    an ``Invalid`` result. Unknown keys are dropped silently.
    """
    if isinstance(data, IntakeRecord):
        return Ok(record=data)
    if not isinstance(data, Mapping):
        return Invalid(violations=[
            FieldViolation(
                field="__root__",
                message="Intake record must be an object",
                type="model_type",
            )
        ])

    try:
        record = IntakeRecord.model_validate(dict(data))
    except ValidationError as exc:
        return Invalid(violations=violations_from_error(exc))

    # Drafts we wrote ourselves carry their touched list; anything else
    # counts the keys it supplied as explicit answers.
    raw_metadata = data.get("metadata")
    if not (isinstance(raw_metadata, Mapping)
            and ("touchedFields" in raw_metadata or "touched_fields" in raw_metadata)):
        metadata = record.metadata.model_copy(
            update={"touched_fields": _input_touched_fields(data)}
        )
        record = record.model_copy(update={"metadata": metadata})
    return Ok(record=record)


# ── Construction & mutation ─────────────────────────────────

def default_record() -> IntakeRecord:
    """A valid, minimal record: core fields empty, context defaulted."""
    now = utcnow()
    return IntakeRecord(metadata=RecordMetadata(created_at=now, last_modified=now))


def cap_subjects(value: Any) -> Any:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return value
    subjects = _ordered_unique(list(value))
    if len(subjects) > settings.max_subjects:
        logger.debug(
            f"Dropping {len(subjects) - settings.max_subjects} subject(s) "
            f"beyond the cap of {settings.max_subjects}"
        )
        subjects = subjects[: settings.max_subjects]
    return subjects


def update_record(record: IntakeRecord, changes: Mapping[str, Any] | BaseModel) -> IntakeRecord:
    """Merge ``changes`` into a copy of ``record``.

    This is the only mutation path. Keys may be python names or camelCase
    aliases; unknown keys, ``schemaVersion`` and ``metadata`` are ignored.
    ``progressiveContext`` merges key-wise (a ``None`` value removes the
    key). Raises ``pydantic.ValidationError`` for values of the wrong type.
    """
    if isinstance(changes, BaseModel):
        changes = changes.model_dump(exclude_unset=True)

    current = record.model_dump()
    touched = list(record.metadata.touched_fields)
    for key, value in changes.items():
        name = FIELD_NAMES.get(key)
        if name is None or name in ("schema_version", "metadata"):
            continue
        if name == "subjects":
            value = cap_subjects(value)
        elif name == "progressive_context" and isinstance(value, Mapping):
            merged = dict(current["progressive_context"])
            for item_key, item in value.items():
                if item is None:
                    merged.pop(item_key, None)
                else:
                    merged[item_key] = item
            value = merged
        current[name] = value
        if name not in touched:
            touched.append(name)

    current["metadata"] = record.metadata.model_copy(
        update={"last_modified": utcnow(), "touched_fields": touched}
    )
    return IntakeRecord.model_validate(current)


def add_context_item(
    record: IntakeRecord,
    key: str,
    value: Any,
    *,
    source: ContextSource = ContextSource.CHAT,
    confidence: float = 0.8,
) -> IntakeRecord:
    """Add one progressive context item; a lower-confidence value never
    replaces a higher-confidence one."""
    existing = record.progressive_context.get(key)
    if existing is not None and existing.confidence >= confidence:
        return record
    item = ContextItem(value=value, source=source, confidence=confidence)
    return update_record(record, {"progressive_context": {key: item}})


def mark_completed(record: IntakeRecord) -> IntakeRecord:
    metadata = record.metadata.model_copy(
        update={"wizard_completed": True, "last_modified": utcnow()}
    )
    return record.model_copy(update={"metadata": metadata})


def dump_record(record: IntakeRecord) -> dict[str, Any]:
    """JSON-ready draft form (camelCase keys)."""
    return record.model_dump(mode="json", by_alias=True)

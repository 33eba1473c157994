"""Record-wide completeness scoring.

Three independent axes, each an integer in [0, 100]:

  core         share of core fields meeting their minimum constraint
  context      share of context fields that hold a real answer
  progressive  saturating count of progressive context items

The missing list names unanswered context fields in declared order, so it
never reshuffles while a user types. Progressive context is open-ended
enrichment; how far it has to go is reported separately as
``progressive_gap``.
"""

import math

from pydantic import BaseModel, Field

from project_intake.config import settings
from project_intake.schemas.intake import (
    Axis,
    FieldRule,
    IntakeRecord,
    RuleKind,
    is_default_value,
    rule_satisfied,
    rules_for_axis,
)


def progressive_target() -> int:
    """Items needed for a full progressive score."""
    return math.ceil(100 / settings.progressive_increment)


class CompletenessResult(BaseModel):
    core: int = Field(ge=0, le=100)
    context: int = Field(ge=0, le=100)
    progressive: int = Field(ge=0, le=100)
    missing: list[str] = Field(default_factory=list)
    progressive_gap: str | None = None

    @property
    def core_complete(self) -> bool:
        return self.core == 100


def _score(met: int, total: int) -> int:
    if total == 0:
        return 100
    return met * 100 // total


def context_field_filled(rule: FieldRule, record: IntakeRecord) -> bool:
    """Whether a context field holds an answer rather than an omission.

    A default only counts when it is a legitimate choice in its own right
    (duration) or the user explicitly touched the field.
    """
    if not rule_satisfied(rule, record):
        return False
    if rule.kind is RuleKind.MULTI_SELECT or rule.default_is_choice:
        return True
    if not is_default_value(record, rule.name):
        return True
    return rule.name in record.metadata.touched_fields


def core_score(record: IntakeRecord) -> int:
    rules = rules_for_axis(Axis.CORE)
    return _score(sum(1 for rule in rules if rule_satisfied(rule, record)), len(rules))


def context_score(record: IntakeRecord) -> tuple[int, list[str]]:
    rules = rules_for_axis(Axis.CONTEXT)
    missing = [rule.label for rule in rules if not context_field_filled(rule, record)]
    return _score(len(rules) - len(missing), len(rules)), missing


def progressive_score(record: IntakeRecord) -> int:
    return min(100, settings.progressive_increment * len(record.progressive_context))


def evaluate(record: IntakeRecord) -> CompletenessResult:
    context, missing = context_score(record)
    progressive = progressive_score(record)
    gap = None
    if progressive < 100:
        gathered = len(record.progressive_context)
        gap = (
            "Additional context gathered during conversation "
            f"({gathered} of {progressive_target()} items)"
        )
    return CompletenessResult(
        core=core_score(record),
        context=context,
        progressive=progressive,
        missing=missing,
        progressive_gap=gap,
    )

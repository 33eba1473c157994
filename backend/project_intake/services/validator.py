"""Per-step validation.

Pure functions over a record snapshot. An empty list means the fields
owned by the step meet their declared constraints; it says nothing about
the rest of the record.
"""

from project_intake.schemas.intake import (
    FIELD_RULES_BY_NAME,
    FieldRule,
    IntakeRecord,
    RuleKind,
    rule_satisfied,
    text_length,
)
from project_intake.schemas.steps import get_step, get_step_config


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def violation_for(rule: FieldRule, record: IntakeRecord) -> str | None:
    """Message for ``rule`` on ``record``, or None when it is satisfied."""
    if rule_satisfied(rule, record):
        return None

    if rule.kind is RuleKind.MIN_LENGTH:
        length = text_length(record, rule.name)
        if length == 0:
            return f"Please enter {rule.label.lower()} (at least {_plural(rule.min_length, 'character')})."
        remaining = rule.min_length - length
        return f"{rule.label} needs {_plural(remaining, 'more character')} (minimum {rule.min_length})."

    if rule.prompt:
        return rule.prompt
    if rule.kind is RuleKind.MULTI_SELECT:
        return f"Please select at least {rule.min_items} {rule.label.lower()}."
    return f"Please choose {rule.label.lower()}."


def validate_step(step_id: str, record: IntakeRecord) -> list[str]:
    """Violation messages for the fields ``step_id`` owns, in field order.

    Raises UnknownStepError for a step id that is not configured.
    """
    step = get_step(step_id)
    messages = []
    for name in step.fields:
        message = violation_for(FIELD_RULES_BY_NAME[name], record)
        if message:
            messages.append(message)
    return messages


def is_step_valid(step_id: str, record: IntakeRecord) -> bool:
    return not validate_step(step_id, record)


def validate_all(record: IntakeRecord) -> dict[str, list[str]]:
    return {step.id: validate_step(step.id, record) for step in get_step_config()}

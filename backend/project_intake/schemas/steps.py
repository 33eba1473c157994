"""Static step configuration for the intake flow.

Loaded once per process. A step's tier is a label for the UI; gating
only ever looks at the fields a step owns.
"""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict

from project_intake.middleware.exceptions import UnknownStepError
from project_intake.schemas.intake import FIELD_RULES_BY_NAME, Tier


class StepDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    tier: Tier
    fields: tuple[str, ...] = ()
    description: str = ""
    help_text: str = ""


_STEPS = (
    StepDescriptor(
        id="intake",
        name="Project Intake",
        tier=Tier.CORE,
        fields=("entry_point", "project_topic", "learning_goals"),
        description="Choose your starting point and describe the project",
        help_text="A topic and learning goals of a sentence or two each are enough to start.",
    ),
    StepDescriptor(
        id="context",
        name="Project Context",
        tier=Tier.SCAFFOLD,
        fields=("subjects", "grade_level", "duration", "special_requirements"),
        description="Subjects, grade level and how long the project runs",
        help_text="The first subject you pick is treated as the primary subject.",
    ),
    StepDescriptor(
        id="experience",
        name="Teaching Context",
        tier=Tier.ASPIRATIONAL,
        fields=("pbl_experience", "special_considerations", "driving_question", "materials"),
        description="Your PBL experience and anything that should shape the design",
    ),
    StepDescriptor(
        id="review",
        name="Review",
        tier=Tier.SCAFFOLD,
        description="Check your answers before building the project",
        help_text="You can go back to review or edit previous steps at any time.",
    ),
)


@lru_cache(maxsize=1)
def get_step_config() -> tuple[StepDescriptor, ...]:
    for step in _STEPS:
        unknown = [name for name in step.fields if name not in FIELD_RULES_BY_NAME]
        if unknown:
            raise RuntimeError(f"Step {step.id} owns undeclared fields: {unknown}")
    return _STEPS


def get_step(step_id: str) -> StepDescriptor:
    for step in get_step_config():
        if step.id == step_id:
            return step
    raise UnknownStepError(step_id)


def step_index(step_id: str) -> int:
    for index, step in enumerate(get_step_config()):
        if step.id == step_id:
            return index
    raise UnknownStepError(step_id)

"""Step navigation state machine.

States are immutable; every transition returns a new state. The machine
never validates records itself: whoever calls ``go_to_next`` is expected
to have checked the current step first (IntakeSession does). Out-of-range
jumps are ignored rather than rejected, since double clicks in the UI can
race ahead of a re-render.
"""

import logging
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, model_validator

from project_intake.middleware.exceptions import NavigationInvariantError
from project_intake.schemas.steps import get_step_config

logger = logging.getLogger(__name__)


class NavigationState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_step: int = 0
    step_count: int
    valid_steps: frozenset[int] = frozenset()
    # Terminal state after a forward transition from the last step
    handed_off: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> "NavigationState":
        if self.step_count < 1:
            raise NavigationInvariantError(f"step_count must be positive, got {self.step_count}")
        if not 0 <= self.current_step < self.step_count:
            raise NavigationInvariantError(
                f"current_step {self.current_step} outside 0..{self.step_count - 1}"
            )
        stray = [index for index in self.valid_steps if not 0 <= index < self.step_count]
        if stray:
            raise NavigationInvariantError(f"valid_steps outside the step range: {sorted(stray)}")
        return self

    @property
    def is_first(self) -> bool:
        return self.current_step == 0

    @property
    def is_last(self) -> bool:
        return self.current_step == self.step_count - 1

    def in_bounds(self, index: int) -> bool:
        return 0 <= index < self.step_count


class Transition(NamedTuple):
    state: NavigationState
    handoff: bool = False


def initial_state(step_count: int | None = None) -> NavigationState:
    if step_count is None:
        step_count = len(get_step_config())
    return NavigationState(step_count=step_count)


def _replace(state: NavigationState, **changes) -> NavigationState:
    # model_copy skips validation; rebuild so the range check always runs
    return NavigationState(**{**state.model_dump(), **changes})


def go_to_next(state: NavigationState) -> Transition:
    if state.handed_off:
        return Transition(state)
    if state.is_last:
        logger.debug("Leaving the last step, handing off")
        return Transition(_replace(state, handed_off=True), handoff=True)
    return Transition(_replace(state, current_step=state.current_step + 1))


def go_to_previous(state: NavigationState) -> NavigationState:
    if state.handed_off:
        return reopen(state)
    if state.is_first:
        return state
    return _replace(state, current_step=state.current_step - 1)


def can_go_to(state: NavigationState, index: int) -> bool:
    if not state.in_bounds(index):
        return False
    return index <= state.current_step or index in state.valid_steps


def go_to_step(state: NavigationState, index: int) -> NavigationState:
    if state.handed_off or not can_go_to(state, index):
        return state
    return _replace(state, current_step=index)


def mark_step_valid(state: NavigationState, index: int, valid: bool = True) -> NavigationState:
    if not state.in_bounds(index):
        return state
    valid_steps = state.valid_steps | {index} if valid else state.valid_steps - {index}
    if valid_steps == state.valid_steps:
        return state
    return _replace(state, valid_steps=frozenset(valid_steps))


def reopen(state: NavigationState) -> NavigationState:
    """Leave the hand-off state back onto the last step for editing."""
    if not state.handed_off:
        return state
    return _replace(state, handed_off=False, current_step=state.step_count - 1)

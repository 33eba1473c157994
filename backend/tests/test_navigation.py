"""Navigation state machine transitions."""

import pytest
from pydantic import ValidationError

from project_intake.middleware.exceptions import NavigationInvariantError
from project_intake.services.navigation import (
    NavigationState,
    can_go_to,
    go_to_next,
    go_to_previous,
    go_to_step,
    initial_state,
    mark_step_valid,
    reopen,
)


@pytest.fixture
def start() -> NavigationState:
    return initial_state()


@pytest.mark.unit
class TestNavigationState:

    def test_initial_state(self, start):
        assert start.current_step == 0
        assert start.step_count == 4
        assert start.valid_steps == frozenset()
        assert not start.handed_off

    @pytest.mark.parametrize("current", [-1, 4, 10])
    def test_out_of_range_construction_is_defect(self, current):
        with pytest.raises(NavigationInvariantError):
            NavigationState(current_step=current, step_count=4)

    def test_stray_valid_step_is_defect(self):
        with pytest.raises(NavigationInvariantError):
            NavigationState(step_count=4, valid_steps=frozenset({7}))

    def test_state_is_frozen(self, start):
        with pytest.raises(ValidationError):
            start.current_step = 2


@pytest.mark.unit
class TestForwardAndBack:

    def test_next_advances(self, start):
        transition = go_to_next(start)
        assert transition.state.current_step == 1
        assert transition.handoff is False
        assert start.current_step == 0

    def test_next_from_last_step_hands_off(self):
        state = NavigationState(current_step=3, step_count=4)
        transition = go_to_next(state)
        assert transition.handoff is True
        assert transition.state.handed_off
        assert transition.state.current_step == 3

    def test_next_after_handoff_is_noop(self):
        state = NavigationState(current_step=3, step_count=4, handed_off=True)
        transition = go_to_next(state)
        assert transition.state == state
        assert transition.handoff is False

    def test_previous_at_first_step_is_noop(self, start):
        assert go_to_previous(start) == start

    def test_previous_needs_no_validation(self):
        state = NavigationState(current_step=2, step_count=4)
        assert go_to_previous(state).current_step == 1

    def test_previous_from_handoff_reopens(self):
        state = NavigationState(current_step=3, step_count=4, handed_off=True)
        reopened = go_to_previous(state)
        assert not reopened.handed_off
        assert reopened.current_step == 3
        assert reopen(reopened) == reopened


@pytest.mark.unit
class TestDirectJumps:

    @pytest.mark.parametrize("index", [-1, 4, 99])
    def test_out_of_bounds_is_noop(self, index):
        state = NavigationState(current_step=2, step_count=4, valid_steps=frozenset({0, 1}))
        assert go_to_step(state, index) == state

    def test_backward_jump_always_allowed(self):
        state = NavigationState(current_step=2, step_count=4)
        assert go_to_step(state, 0).current_step == 0

    def test_forward_jump_needs_valid_step(self, start):
        assert not can_go_to(start, 2)
        assert go_to_step(start, 2) == start

        state = mark_step_valid(start, 2)
        assert go_to_step(state, 2).current_step == 2

    def test_jump_ignored_after_handoff(self):
        state = NavigationState(current_step=3, step_count=4, handed_off=True)
        assert go_to_step(state, 0) == state


@pytest.mark.unit
class TestMarkStepValid:

    def test_mark_and_unmark(self, start):
        state = mark_step_valid(start, 1)
        assert state.valid_steps == frozenset({1})
        assert mark_step_valid(state, 1, valid=False).valid_steps == frozenset()

    def test_out_of_range_is_noop(self, start):
        assert mark_step_valid(start, 9) is start
        assert mark_step_valid(start, -1) is start

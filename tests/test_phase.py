"""
Tests for the project phase table.
"""

import pytest

from spo.status.phase import Phase, can_transition_to, get_phase_message, is_phase_healthy, is_phase_terminal

ORDERED = [
    Phase.PENDING,
    Phase.VALIDATING_DEPENDENCIES,
    Phase.DEPLOYING_SECRETS,
    Phase.INITIALIZING_DATABASE,
    Phase.DEPLOYING_COMPONENTS,
    Phase.RUNNING,
]


@pytest.mark.parametrize("current,target", list(zip(ORDERED, ORDERED[1:], strict=False)))
def test_forward_transitions_are_allowed(current, target):
    assert can_transition_to(current, target)


def test_steps_cannot_be_skipped():
    assert not can_transition_to(Phase.PENDING, Phase.DEPLOYING_SECRETS)
    assert not can_transition_to(Phase.VALIDATING_DEPENDENCIES, Phase.RUNNING)
    assert not can_transition_to(Phase.DEPLOYING_SECRETS, Phase.DEPLOYING_COMPONENTS)


@pytest.mark.parametrize("current", list(Phase))
def test_failed_and_terminating_reachable_from_everywhere(current):
    assert can_transition_to(current, Phase.FAILED)
    assert can_transition_to(current, Phase.TERMINATING)


def test_every_pass_may_restart_validation():
    for current in Phase:
        expected = current != Phase.TERMINATING
        assert can_transition_to(current, Phase.VALIDATING_DEPENDENCIES) is expected


def test_running_moves_to_updating_and_back():
    assert can_transition_to(Phase.RUNNING, Phase.UPDATING)
    assert can_transition_to(Phase.UPDATING, Phase.RUNNING)
    assert not can_transition_to(Phase.RUNNING, Phase.PENDING)


def test_string_phases_and_unknown_names():
    assert can_transition_to("Pending", "ValidatingDependencies")
    assert not can_transition_to("Exploding", "Running")
    assert not can_transition_to("Running", "Exploding")


def test_phase_messages():
    assert get_phase_message(Phase.RUNNING) == "All components running"
    assert get_phase_message("InitializingDatabase") == "Initializing database"
    assert get_phase_message("Exploding") == "Unknown phase"


def test_terminal_and_healthy():
    assert is_phase_terminal(Phase.RUNNING)
    assert is_phase_terminal(Phase.FAILED)
    assert not is_phase_terminal(Phase.DEPLOYING_COMPONENTS)
    assert is_phase_healthy("Running")
    assert not is_phase_healthy(Phase.FAILED)

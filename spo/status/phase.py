"""
Project lifecycle phases and the transitions allowed between them.
"""

from enum import Enum


class Phase(str, Enum):
    """Top-level lifecycle state of a project."""

    PENDING = "Pending"
    VALIDATING_DEPENDENCIES = "ValidatingDependencies"
    DEPLOYING_SECRETS = "DeployingSecrets"
    INITIALIZING_DATABASE = "InitializingDatabase"
    DEPLOYING_COMPONENTS = "DeployingComponents"
    RUNNING = "Running"
    UPDATING = "Updating"
    FAILED = "Failed"
    TERMINATING = "Terminating"


PHASE_MESSAGES: dict[Phase, str] = {
    Phase.PENDING: "SupabaseProject is pending",
    Phase.VALIDATING_DEPENDENCIES: "Validating external dependencies",
    Phase.DEPLOYING_SECRETS: "Deploying secrets and credentials",
    Phase.INITIALIZING_DATABASE: "Initializing database",
    Phase.DEPLOYING_COMPONENTS: "Deploying Supabase components",
    Phase.RUNNING: "All components running",
    Phase.UPDATING: "Updating components",
    Phase.FAILED: "Reconciliation failed",
    Phase.TERMINATING: "Terminating resources",
}

_TRANSITIONS: dict[Phase, set[Phase]] = {
    Phase.PENDING: {Phase.VALIDATING_DEPENDENCIES},
    Phase.VALIDATING_DEPENDENCIES: {Phase.DEPLOYING_SECRETS},
    Phase.DEPLOYING_SECRETS: {Phase.INITIALIZING_DATABASE},
    Phase.INITIALIZING_DATABASE: {Phase.DEPLOYING_COMPONENTS},
    Phase.DEPLOYING_COMPONENTS: {Phase.RUNNING},
    Phase.RUNNING: {Phase.UPDATING, Phase.TERMINATING},
    Phase.UPDATING: {Phase.VALIDATING_DEPENDENCIES, Phase.RUNNING},
}


def get_phase_message(phase: Phase | str) -> str:
    try:
        return PHASE_MESSAGES[Phase(phase)]
    except ValueError:
        return "Unknown phase"


def can_transition_to(current: Phase | str, target: Phase | str) -> bool:
    """
    Check whether the state machine may move from one phase to another.

    Failed and Terminating are reachable from every phase. Every pass starts again at
    ValidatingDependencies, so that is reachable from everything except Terminating.
    Unknown phase names never transition.
    """
    try:
        current, target = Phase(current), Phase(target)
    except ValueError:
        return False

    if target in (Phase.FAILED, Phase.TERMINATING):
        return True
    if target == Phase.VALIDATING_DEPENDENCIES and current != Phase.TERMINATING:
        return True
    return target in _TRANSITIONS.get(current, set())


def is_phase_terminal(phase: Phase | str) -> bool:
    return phase in (Phase.RUNNING, Phase.FAILED, Phase.TERMINATING)


def is_phase_healthy(phase: Phase | str) -> bool:
    return phase == Phase.RUNNING

"""
Per-component status entries written by the convergence engine.
"""

from spo.models.project import ComponentStatus, Condition
from spo.status.conditions import set_condition
from spo.utils.kubernetes import now_iso

COMPONENT_RUNNING = "Running"
COMPONENT_DEPLOYING = "Deploying"
COMPONENT_UNKNOWN = "Unknown"


def new_component_status(version: str, replicas: int, ready_replicas: int) -> ComponentStatus:
    """A component is ready when every desired replica reports ready."""
    ready = replicas == ready_replicas
    return ComponentStatus(
        phase=COMPONENT_RUNNING if ready else COMPONENT_DEPLOYING,
        ready=ready,
        version=version,
        replicas=replicas,
        ready_replicas=ready_replicas,
        last_update_time=now_iso(),
    )


def unknown_component_status(version: str, replicas: int) -> ComponentStatus:
    """Status for a component whose live state could not be read back."""
    return ComponentStatus(
        phase=COMPONENT_UNKNOWN,
        ready=False,
        version=version,
        replicas=replicas,
        ready_replicas=0,
        last_update_time=now_iso(),
    )


def set_component_condition(status: ComponentStatus, condition: Condition) -> ComponentStatus:
    return status.model_copy(update={"conditions": set_condition(status.conditions, condition)})


def set_component_status(
    components: dict[str, ComponentStatus], key: str, status: ComponentStatus
) -> dict[str, ComponentStatus]:
    """
    Store a component status and return the new mapping.

    lastUpdateTime and condition transition times are carried over from the previous entry
    when nothing else about the component changed.
    """
    result = dict(components)
    previous = result.get(key)
    if previous is not None:
        conditions = previous.conditions
        for condition in status.conditions:
            conditions = set_condition(conditions, condition)
        status = status.model_copy(update={"conditions": conditions})

        if _comparable(previous) == _comparable(status):
            status = status.model_copy(update={"last_update_time": previous.last_update_time})

    result[key] = status
    return result


def are_all_components_ready(components: dict[str, ComponentStatus], keys: list[str]) -> bool:
    """True when every listed component has a status entry that is ready."""
    return all(key in components and components[key].ready for key in keys)


def _comparable(status: ComponentStatus) -> dict:
    return status.model_dump(exclude={"last_update_time"})

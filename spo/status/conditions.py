"""
Typed conditions on a project or component status.

Conditions are keyed by type. Setting one is an upsert that keeps the previous
lastTransitionTime unless status, reason or message changed, so writing the same condition
on every pass leaves the persisted status untouched.
"""

from spo.models.project import Condition
from spo.utils.kubernetes import now_iso

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

# Overall
READY = "Ready"
PROGRESSING = "Progressing"
AVAILABLE = "Available"
DEGRADED = "Degraded"

# Per component
KONG_READY = "KongReady"
AUTH_READY = "AuthReady"
POSTGREST_READY = "PostgRESTReady"
REALTIME_READY = "RealtimeReady"
STORAGE_API_READY = "StorageAPIReady"
META_READY = "MetaReady"
STUDIO_READY = "StudioReady"

# Per dependency
POSTGRESQL_CONNECTED = "PostgreSQLConnected"
S3_CONNECTED = "S3Connected"

# Infrastructure
SECRETS_READY = "SecretsReady"
NETWORK_READY = "NetworkReady"
DATABASE_INITIALIZED = "DatabaseInitialized"

# DatabaseInitialized reason that blocks new bootstrap Jobs for the generation it was set on
REASON_RETRIES_EXHAUSTED = "RetriesExhausted"


def new_condition(
    condition_type: str, status: str, reason: str, message: str, observed_generation: int | None = None
) -> Condition:
    return Condition(
        type=condition_type,
        status=status,
        reason=reason,
        message=message,
        last_transition_time=now_iso(),
        observed_generation=observed_generation,
    )


def set_condition(conditions: list[Condition], condition: Condition) -> list[Condition]:
    """
    Upsert a condition by type and return the new list.

    The input list is not modified.
    """
    result = list(conditions)
    for index, existing in enumerate(result):
        if existing.type != condition.type:
            continue
        unchanged = (
            existing.status == condition.status
            and existing.reason == condition.reason
            and existing.message == condition.message
        )
        transition_time = existing.last_transition_time if unchanged else condition.last_transition_time
        result[index] = condition.model_copy(update={"last_transition_time": transition_time})
        return result

    result.append(condition)
    return result


def get_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def is_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    condition = get_condition(conditions, condition_type)
    return condition is not None and condition.status == CONDITION_TRUE

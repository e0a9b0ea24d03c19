"""
Tests for condition upserts and component status bookkeeping.
"""

from spo.models.project import ComponentStatus
from spo.status import conditions
from spo.status.component import (
    COMPONENT_DEPLOYING,
    COMPONENT_RUNNING,
    COMPONENT_UNKNOWN,
    are_all_components_ready,
    new_component_status,
    set_component_condition,
    set_component_status,
    unknown_component_status,
)


def _condition(status="True", reason="Ready", message="ok", when="2026-01-01T00:00:00Z"):
    condition = conditions.new_condition(conditions.READY, status, reason, message, 1)
    return condition.model_copy(update={"last_transition_time": when})


def test_set_condition_appends_new_type():
    result = conditions.set_condition([], _condition())
    assert len(result) == 1
    assert result[0].type == conditions.READY


def test_set_condition_keeps_transition_time_when_unchanged():
    existing = [_condition(when="2026-01-01T00:00:00Z")]
    result = conditions.set_condition(existing, _condition(when="2026-06-01T00:00:00Z"))
    assert result[0].last_transition_time == "2026-01-01T00:00:00Z"


def test_set_condition_updates_transition_time_on_change():
    existing = [_condition(when="2026-01-01T00:00:00Z")]
    result = conditions.set_condition(existing, _condition(status="False", when="2026-06-01T00:00:00Z"))
    assert result[0].status == "False"
    assert result[0].last_transition_time == "2026-06-01T00:00:00Z"

    result = conditions.set_condition(existing, _condition(message="changed", when="2026-06-01T00:00:00Z"))
    assert result[0].last_transition_time == "2026-06-01T00:00:00Z"


def test_set_condition_does_not_modify_input():
    existing = [_condition()]
    conditions.set_condition(existing, _condition(status="False"))
    assert existing[0].status == "True"


def test_get_condition_and_is_true():
    items = [_condition(), conditions.new_condition(conditions.PROGRESSING, "False", "Done", "")]
    assert conditions.get_condition(items, conditions.PROGRESSING).reason == "Done"
    assert conditions.get_condition(items, conditions.DEGRADED) is None
    assert conditions.is_condition_true(items, conditions.READY)
    assert not conditions.is_condition_true(items, conditions.PROGRESSING)


def test_component_ready_only_when_all_replicas_ready():
    status = new_component_status("kong:2.8.1", 3, 2)
    assert not status.ready
    assert status.phase == COMPONENT_DEPLOYING

    status = new_component_status("kong:2.8.1", 3, 3)
    assert status.ready
    assert status.phase == COMPONENT_RUNNING


def test_unknown_component_status():
    status = unknown_component_status("kong:2.8.1", 3)
    assert status.phase == COMPONENT_UNKNOWN
    assert not status.ready
    assert status.replicas == 3


def test_set_component_status_keeps_update_time_when_unchanged():
    previous = new_component_status("kong:2.8.1", 1, 1).model_copy(update={"last_update_time": "2026-01-01T00:00:00Z"})
    components = {"kong": previous}

    same = new_component_status("kong:2.8.1", 1, 1)
    result = set_component_status(components, "kong", same)
    assert result["kong"].last_update_time == "2026-01-01T00:00:00Z"

    changed = new_component_status("kong:3.0.0", 1, 1)
    result = set_component_status(components, "kong", changed)
    assert result["kong"].last_update_time == changed.last_update_time
    assert components["kong"] is previous


def test_set_component_condition_merges():
    status = ComponentStatus()
    condition = conditions.new_condition(conditions.KONG_READY, "True", "DeploymentReady", "1/1 replicas ready")
    status = set_component_condition(status, condition)
    assert [c.type for c in status.conditions] == [conditions.KONG_READY]


def test_are_all_components_ready():
    ready = new_component_status("x", 1, 1)
    not_ready = new_component_status("x", 1, 0)
    assert are_all_components_ready({"kong": ready, "auth": ready}, ["kong", "auth"])
    assert not are_all_components_ready({"kong": ready, "auth": not_ready}, ["kong", "auth"])
    assert not are_all_components_ready({"kong": ready}, ["kong", "auth"])

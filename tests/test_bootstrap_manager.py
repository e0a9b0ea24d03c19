"""
Tests for database bootstrap supervision.
"""

import pytest

from spo.components.database_init import DatabaseInitBuilder, generate_runner_script, get_init_scripts
from spo.core.config import settings
from spo.core.errors import BootstrapRetriesExhaustedError
from spo.manager.bootstrap_manager import BootstrapManager
from spo.models.project import Project
from spo.status import conditions


@pytest.mark.asyncio
async def test_creates_job_and_scripts(cluster, acme):
    manager = BootstrapManager(cluster)
    delay = await manager.ensure_bootstrapped(Project.from_k8s(acme))

    assert delay == settings.JOB_CREATED_REQUEUE_SECONDS
    job = cluster.get("Job", "acme-db-init")
    assert job["spec"]["backoffLimit"] == settings.BOOTSTRAP_BACKOFF_LIMIT
    assert job["metadata"]["ownerReferences"][0]["name"] == "acme"

    config_map = cluster.get("ConfigMap", "acme-db-init")
    assert "run.sh" in config_map["data"]
    assert "00-extensions.sql" in config_map["data"]


@pytest.mark.asyncio
async def test_running_job_requeues(cluster, acme):
    manager = BootstrapManager(cluster)
    project = Project.from_k8s(acme)
    await manager.ensure_bootstrapped(project)
    cluster.set_status("Job", "acme-db-init", {"active": 1})

    assert await manager.ensure_bootstrapped(project) == settings.JOB_RUNNING_REQUEUE_SECONDS


@pytest.mark.asyncio
async def test_succeeded_job_completes(cluster, acme):
    manager = BootstrapManager(cluster)
    project = Project.from_k8s(acme)
    await manager.ensure_bootstrapped(project)
    cluster.set_status("Job", "acme-db-init", {"succeeded": 1})

    assert await manager.ensure_bootstrapped(project) is None


@pytest.mark.asyncio
async def test_failures_up_to_limit_requeue_then_fatal(cluster, acme):
    manager = BootstrapManager(cluster)
    project = Project.from_k8s(acme)
    await manager.ensure_bootstrapped(project)

    for failures in (1, 2, 3):
        cluster.set_status("Job", "acme-db-init", {"failed": failures})
        assert await manager.ensure_bootstrapped(project) == settings.JOB_RETRY_REQUEUE_SECONDS

    cluster.set_status("Job", "acme-db-init", {"failed": 4})
    with pytest.raises(BootstrapRetriesExhaustedError) as exc_info:
        await manager.ensure_bootstrapped(project)
    assert exc_info.value.failures == 4
    assert exc_info.value.limit == 3
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_deleted_job_after_success_is_not_recreated(cluster, acme):
    obj = dict(acme)
    obj["status"] = {
        "conditions": [
            conditions.new_condition(conditions.DATABASE_INITIALIZED, "True", "JobSucceeded", "done").to_k8s()
        ]
    }

    assert await BootstrapManager(cluster).ensure_bootstrapped(Project.from_k8s(obj)) is None
    assert cluster.get("Job", "acme-db-init") is None


def _with_exhausted_condition(acme, generation):
    obj = dict(acme)
    obj["status"] = {
        "conditions": [
            conditions.new_condition(
                conditions.DATABASE_INITIALIZED,
                "False",
                conditions.REASON_RETRIES_EXHAUSTED,
                "database initialization job acme-db-init failed after 4 attempts (limit 3)",
                generation,
            ).to_k8s()
        ]
    }
    return Project.from_k8s(obj)


@pytest.mark.asyncio
async def test_exhausted_job_is_not_recreated_for_same_generation(cluster, acme):
    project = _with_exhausted_condition(acme, generation=1)

    with pytest.raises(BootstrapRetriesExhaustedError, match="failed after 4 attempts"):
        await BootstrapManager(cluster).ensure_bootstrapped(project)
    assert cluster.get("Job", "acme-db-init") is None


@pytest.mark.asyncio
async def test_exhausted_job_is_retried_after_spec_change(cluster, acme):
    project = _with_exhausted_condition(acme, generation=0)

    delay = await BootstrapManager(cluster).ensure_bootstrapped(project)

    assert delay == settings.JOB_CREATED_REQUEUE_SECONDS
    assert cluster.get("Job", "acme-db-init") is not None


def test_init_scripts_are_ordered_and_idempotent():
    scripts = get_init_scripts()
    names = [name for name, _ in scripts]
    assert names == sorted(names)
    for _, sql in scripts:
        assert "DROP" not in sql
    assert "IF NOT EXISTS" in scripts[0][1]


def test_runner_stops_on_first_error():
    script = generate_runner_script(get_init_scripts())
    assert "set -e" in script
    assert script.count("psql -v ON_ERROR_STOP=1") == len(get_init_scripts())


def test_job_references_secrets_without_embedding_values(acme):
    job = DatabaseInitBuilder().build_job(Project.from_k8s(acme))
    env = {item["name"]: item for item in job["spec"]["template"]["spec"]["containers"][0]["env"]}
    assert env["PGPASSWORD"]["valueFrom"]["secretKeyRef"] == {"name": "acme-db", "key": "password"}
    assert env["JWT_SECRET"]["valueFrom"]["secretKeyRef"] == {"name": "acme-jwt", "key": "jwt-secret"}
    assert env["PGSSLMODE"]["value"] == "require"

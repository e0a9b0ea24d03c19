"""
Supervision of the database bootstrap Job.

Each call looks at the Job as it currently exists and returns how long to wait before
looking again. Nothing sleeps in-process; waiting is always a requeue of the whole pass.
"""

import logging
from typing import Any

from spo.components.database_init import DatabaseInitBuilder
from spo.connectors.kubectl import KubectlAlreadyExistsError, KubectlConnector
from spo.core.config import settings
from spo.core.errors import BootstrapRetriesExhaustedError
from spo.credentials.bundle import CredentialBundle
from spo.models.project import Project
from spo.status.conditions import DATABASE_INITIALIZED, REASON_RETRIES_EXHAUSTED, get_condition, is_condition_true
from spo.utils.kubernetes import set_owner_reference
from spo.utils.naming import generate_db_init_name

logger = logging.getLogger(__name__)

JOB_RESOURCE = "jobs.batch"


class BootstrapManager:
    """Creates the bootstrap Job once and tracks it to completion."""

    def __init__(self, kubectl_connector: KubectlConnector, builder: DatabaseInitBuilder | None = None) -> None:
        self.kubectl_connector = kubectl_connector
        self.builder = builder or DatabaseInitBuilder()

    async def _ensure_config_map(self, project: Project) -> None:
        config_map = set_owner_reference(self.builder.build_config_map(project), project.name, project.metadata.uid)
        name = config_map["metadata"]["name"]
        if await self.kubectl_connector.get_object("configmap", name, project.namespace) is not None:
            return
        try:
            await self.kubectl_connector.create_object(config_map)
        except KubectlAlreadyExistsError:
            logger.debug(f"ConfigMap {project.namespace}/{name} was created concurrently")

    @staticmethod
    def _backoff_limit(job: dict[str, Any]) -> int:
        limit = job.get("spec", {}).get("backoffLimit")
        return settings.BOOTSTRAP_BACKOFF_LIMIT if limit is None else int(limit)

    async def ensure_bootstrapped(self, project: Project, bundle: CredentialBundle | None = None) -> float | None:
        """
        Drive the bootstrap Job one step.

        Args:
            project: The project whose database is bootstrapped
            bundle: Credential bundle referenced by the Job

        Returns:
            None when bootstrap is complete, otherwise the delay before the next check

        Raises:
            BootstrapRetriesExhaustedError: If the Job failed more often than its backoff limit, or already
                did so for the current generation
        """
        job_name = generate_db_init_name(project.name)
        job = await self.kubectl_connector.get_object(JOB_RESOURCE, job_name, project.namespace)

        if job is None:
            # A finished Job is removed by its TTL; the recorded condition says it already ran
            if is_condition_true(project.status.conditions, DATABASE_INITIALIZED):
                logger.debug(f"Bootstrap job {job_name} is gone but the database was already initialized")
                return None

            # The failed Job may have been removed by its TTL; do not start over for the same generation
            initialized = get_condition(project.status.conditions, DATABASE_INITIALIZED)
            if (
                initialized is not None
                and initialized.reason == REASON_RETRIES_EXHAUSTED
                and initialized.observed_generation == project.metadata.generation
            ):
                raise BootstrapRetriesExhaustedError(
                    job_name, None, settings.BOOTSTRAP_BACKOFF_LIMIT, message=initialized.message
                )

            await self._ensure_config_map(project)
            manifest = set_owner_reference(self.builder.build_job(project, bundle), project.name, project.metadata.uid)
            await self.kubectl_connector.create_object(manifest)
            logger.info(f"Created database bootstrap job {project.namespace}/{job_name}")
            return settings.JOB_CREATED_REQUEUE_SECONDS

        job_status = job.get("status") or {}
        succeeded = job_status.get("succeeded") or 0
        failed = job_status.get("failed") or 0
        active = job_status.get("active") or 0

        if succeeded > 0:
            logger.debug(f"Bootstrap job {job_name} completed")
            return None

        if failed > 0:
            limit = self._backoff_limit(job)
            if failed > limit:
                raise BootstrapRetriesExhaustedError(job_name, failed, limit)
            logger.info(f"Bootstrap job {job_name} failed {failed} time(s), waiting for retry (limit {limit})")
            return settings.JOB_RETRY_REQUEUE_SECONDS

        logger.debug(f"Bootstrap job {job_name} is running (active={active})")
        return settings.JOB_RUNNING_REQUEUE_SECONDS

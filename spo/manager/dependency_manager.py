"""Validation of the external credential bundles a project depends on."""

import logging

from spo.connectors.kubectl import KubectlConnector
from spo.core.errors import DependencyValidationError
from spo.credentials.validation import (
    BASIC_AUTH_DEPENDENCY,
    DATABASE_DEPENDENCY,
    STORAGE_DEPENDENCY,
    validate_basic_auth_secret,
    validate_database_secret,
    validate_storage_secret,
)
from spo.models.project import Project, SecretReference

logger = logging.getLogger(__name__)

DEPENDENCY_ORDER = [DATABASE_DEPENDENCY, STORAGE_DEPENDENCY, BASIC_AUTH_DEPENDENCY]


class DependencyManager:
    """Checks that referenced Secrets exist and carry the keys the components need."""

    def __init__(self, kubectl_connector: KubectlConnector) -> None:
        self.kubectl_connector = kubectl_connector

    async def _get_bundle(self, dependency: str, project: Project, ref: SecretReference) -> dict[str, str]:
        namespace = ref.namespace or project.namespace
        # Values may be binary; only key presence matters here
        data = await self.kubectl_connector.get_secret(ref.name, namespace, errors="replace")
        if data is None:
            raise DependencyValidationError(dependency, None, f"secret {namespace}/{ref.name} not found")
        return data

    async def validate_dependencies(self, project: Project) -> list[str]:
        """
        Validate the database, storage and optional dashboard basic-auth bundles in that order.

        Only key presence is checked. The first problem found is raised and later bundles are
        not looked at. Nothing is written.

        Args:
            project: The project whose references are checked

        Returns:
            Names of the dependencies that were validated

        Raises:
            DependencyValidationError: For a missing Secret or a missing required key
        """
        validated = []

        try:
            database = await self._get_bundle(DATABASE_DEPENDENCY, project, project.spec.database.secret_ref)
            validate_database_secret(database)
            validated.append(DATABASE_DEPENDENCY)

            storage = await self._get_bundle(STORAGE_DEPENDENCY, project, project.spec.storage.secret_ref)
            validate_storage_secret(storage)
            validated.append(STORAGE_DEPENDENCY)

            basic_auth_ref = project.spec.component_config("studio").dashboard_basic_auth_secret_ref
            if basic_auth_ref is not None:
                basic_auth = await self._get_bundle(BASIC_AUTH_DEPENDENCY, project, basic_auth_ref)
                validate_basic_auth_secret(basic_auth)
                validated.append(BASIC_AUTH_DEPENDENCY)
        except DependencyValidationError as e:
            logger.info(f"Dependency {e.dependency} of {project.namespace}/{project.name} is not valid: {e}")
            raise

        logger.debug(f"Validated dependencies of {project.namespace}/{project.name}: {validated}")
        return validated

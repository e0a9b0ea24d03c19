"""
Builder for the database bootstrap job.

The job runs an ordered list of idempotent SQL scripts against the project database with
psql. Scripts and the runner live in the ``<name>-db-init`` ConfigMap mounted at /scripts.
Every statement is safe to repeat, so a retried pod simply runs the whole list again.
"""

import logging
from typing import Any

from spo.core.config import settings
from spo.core.errors import ComponentBuildError
from spo.credentials.bundle import CredentialBundle
from spo.generation.manifests import ManifestGenerator
from spo.models.project import Project
from spo.utils.kubernetes import generate_labels
from spo.utils.naming import generate_credentials_secret_name, generate_db_init_name

logger = logging.getLogger(__name__)

EXTENSIONS = ["pgcrypto", "pgjwt", "uuid-ossp", "pg_stat_statements"]
SCHEMAS = ["auth", "storage", "realtime"]
# role -> attributes
ROLES = {
    "authenticator": "NOLOGIN",
    "anon": "NOLOGIN",
    "service_role": "NOLOGIN BYPASSRLS",
}


def _extensions_sql() -> str:
    return "".join(f'CREATE EXTENSION IF NOT EXISTS "{extension}";\n' for extension in EXTENSIONS)


def _schemas_sql() -> str:
    return "".join(f"CREATE SCHEMA IF NOT EXISTS {schema};\n" for schema in SCHEMAS)


def _roles_sql() -> str:
    statements = []
    for role, attributes in ROLES.items():
        statements.append(
            "DO $$\nBEGIN\n"
            f"  IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = '{role}') THEN\n"
            f"    CREATE ROLE {role} {attributes};\n"
            "  END IF;\nEND\n$$;\n"
        )
    return "".join(statements)


def _grants_sql() -> str:
    statements = [f"GRANT USAGE ON SCHEMA {schema} TO authenticator;\n" for schema in SCHEMAS]
    statements.append("GRANT anon TO authenticator;\n")
    statements.append("GRANT service_role TO authenticator;\n")
    return "".join(statements)


def get_init_scripts() -> list[tuple[str, str]]:
    """
    Ordered (file name, SQL) pairs applied by the bootstrap job.

    Returns:
        The scripts in execution order
    """
    return [
        ("00-extensions.sql", _extensions_sql()),
        ("01-schemas.sql", _schemas_sql()),
        ("02-roles.sql", _roles_sql()),
        ("03-grants.sql", _grants_sql()),
    ]


def generate_runner_script(scripts: list[tuple[str, str]]) -> str:
    """Shell script executing each SQL file in order, stopping at the first error."""
    lines = [
        "#!/bin/sh",
        "set -e",
        'echo "Starting database initialization against ${PGHOST}:${PGPORT}/${PGDATABASE}"',
    ]
    for filename, _ in scripts:
        lines.append(f'echo "Executing {filename}"')
        lines.append(f'psql -v ON_ERROR_STOP=1 -f "/scripts/{filename}"')
    lines.append('echo "Database initialization complete"')
    return "\n".join(lines) + "\n"


class DatabaseInitBuilder:
    """Builds the ConfigMap and Job that bootstrap a project's database."""

    component = "db-init"

    def __init__(self, generator: ManifestGenerator | None = None):
        self.generator = generator or ManifestGenerator()

    def _labels(self, project: Project) -> dict[str, str]:
        labels = generate_labels(project.name, self.component)
        labels["app.kubernetes.io/component"] = "database"
        return labels

    def _render(self, template_name: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            return self.generator.render_manifest(template_name, variables)
        except RuntimeError as e:
            raise ComponentBuildError(self.component, str(e)) from e

    def build_config_map(self, project: Project) -> dict[str, Any]:
        scripts = get_init_scripts()
        data = dict(scripts)
        data["run.sh"] = generate_runner_script(scripts)
        return self._render(
            "configmap",
            {
                "name": generate_db_init_name(project.name),
                "namespace": project.namespace,
                "labels": self._labels(project),
                "data": data,
            },
        )

    def build_job(self, project: Project, bundle: CredentialBundle | None = None) -> dict[str, Any]:
        secret_name = bundle.secret_name if bundle and bundle.secret_name else generate_credentials_secret_name(project.name)
        return self._render(
            "db-init-job",
            {
                "name": generate_db_init_name(project.name),
                "namespace": project.namespace,
                "labels": self._labels(project),
                "backoff_limit": settings.BOOTSTRAP_BACKOFF_LIMIT,
                "ttl_seconds": settings.BOOTSTRAP_TTL_SECONDS,
                "image": settings.BOOTSTRAP_IMAGE,
                "db_secret": project.spec.database.secret_ref.name,
                "ssl_mode": project.spec.database.ssl_mode,
                "jwt_secret_name": secret_name,
            },
        )

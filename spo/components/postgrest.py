"""
REST layer (PostgREST) builder.
"""

from typing import Any

from spo.components.builder import POSTGREST_PORT, ComponentBuilder, resource_requirements, secret_env, value_env
from spo.components.database import database_env
from spo.credentials.bundle import JWT_SECRET_KEY, CredentialBundle
from spo.models.project import Project


class PostgRESTBuilder(ComponentBuilder):
    name = "postgrest"
    status_key = "postgrest"
    component_label = "rest-api"
    default_image = "postgrest/postgrest:v13.0.7"
    default_resources = resource_requirements("128Mi", "100m", "256Mi", "200m")
    ports = [("http", POSTGREST_PORT)]

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        ssl_mode = project.spec.database.ssl_mode
        # PostgREST connects as the authenticator role created by the bootstrap job
        return database_env(project, include_user=False) + [
            value_env(
                "PGRST_DB_URI",
                f"postgres://authenticator:$(DB_PASSWORD)@$(DB_HOST):$(DB_PORT)/$(DB_NAME)?sslmode={ssl_mode}",
            ),
            secret_env("PGRST_JWT_SECRET", bundle.secret_name, JWT_SECRET_KEY),
            value_env("PGRST_DB_ANON_ROLE", "anon"),
            value_env("PGRST_DB_SCHEMA", "public"),
            value_env("PGRST_DB_EXTRA_SEARCH_PATH", "public"),
            value_env("PGRST_DB_POOL", str(project.spec.database.max_connections)),
        ]

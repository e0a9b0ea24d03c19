"""
Metadata service (postgres-meta) builder.
"""

from typing import Any

from spo.components.builder import META_PORT, ComponentBuilder, resource_requirements, secret_env, value_env
from spo.components.database import database_env
from spo.credentials.bundle import PG_META_CRYPTO_KEY, CredentialBundle
from spo.models.project import Project


class MetaBuilder(ComponentBuilder):
    name = "meta"
    status_key = "meta"
    component_label = "meta"
    default_image = "supabase/postgres-meta:v0.93.1"
    default_resources = resource_requirements("64Mi", "50m", "128Mi", "100m")
    ports = [("http", META_PORT)]

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        return database_env(project, prefix="PG_META_DB_") + [
            value_env("PG_META_PORT", str(META_PORT)),
            secret_env("CRYPTO_KEY", bundle.secret_name, PG_META_CRYPTO_KEY),
        ]

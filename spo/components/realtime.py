"""
Realtime service builder.
"""

from typing import Any

from spo.components.builder import REALTIME_PORT, ComponentBuilder, resource_requirements, secret_env, value_env
from spo.components.database import database_env
from spo.credentials.bundle import JWT_SECRET_KEY, CredentialBundle
from spo.models.project import Project


class RealtimeBuilder(ComponentBuilder):
    name = "realtime"
    status_key = "realtime"
    component_label = "realtime"
    default_image = "supabase/realtime:v2.51.11"
    default_resources = resource_requirements("128Mi", "100m", "256Mi", "200m")
    ports = [("http", REALTIME_PORT)]

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        ssl_mode = project.spec.database.ssl_mode
        return database_env(project) + [
            value_env(
                "DATABASE_URL",
                f"postgresql://$(DB_USER):$(DB_PASSWORD)@$(DB_HOST):$(DB_PORT)/$(DB_NAME)?sslmode={ssl_mode}",
            ),
            secret_env("JWT_SECRET", bundle.secret_name, JWT_SECRET_KEY),
            secret_env("SECRET_KEY_BASE", bundle.secret_name, JWT_SECRET_KEY),
            value_env("APP_NAME", "realtime"),
            value_env("PORT", str(REALTIME_PORT)),
            value_env("RLIMIT_NOFILE", "10000"),
            value_env("SECURE_CHANNELS", "true"),
        ]

"""
Auth service (GoTrue) builder.
"""

from typing import Any

from spo.components.builder import AUTH_PORT, KONG_PROXY_PORT, ComponentBuilder, resource_requirements, secret_env, value_env
from spo.components.database import database_env
from spo.credentials.bundle import JWT_SECRET_KEY, CredentialBundle
from spo.models.project import Project
from spo.utils.naming import generate_unique_name


class AuthBuilder(ComponentBuilder):
    name = "auth"
    status_key = "auth"
    component_label = "authentication"
    default_image = "supabase/gotrue:v2.180.0"
    default_resources = resource_requirements("64Mi", "50m", "128Mi", "100m")
    ports = [("http", AUTH_PORT)]

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        api_url = f"http://{generate_unique_name(project.name, 'kong')}:{KONG_PROXY_PORT}"
        site_url = project.spec.component_config("studio").public_url or api_url
        return database_env(project) + [
            value_env("GOTRUE_API_HOST", "0.0.0.0"),
            value_env("GOTRUE_API_PORT", str(AUTH_PORT)),
            value_env("API_EXTERNAL_URL", api_url),
            value_env("GOTRUE_SITE_URL", site_url),
            value_env("GOTRUE_DB_DRIVER", "postgres"),
            value_env(
                "GOTRUE_DB_DATABASE_URL",
                "postgres://$(DB_USER):$(DB_PASSWORD)@$(DB_HOST):$(DB_PORT)/$(DB_NAME)?sslmode=$(DB_SSL_MODE)",
            ),
            secret_env("GOTRUE_JWT_SECRET", bundle.secret_name, JWT_SECRET_KEY),
            value_env("GOTRUE_JWT_EXP", "3600"),
            value_env("GOTRUE_JWT_AUD", "authenticated"),
            value_env("GOTRUE_JWT_DEFAULT_GROUP_NAME", "authenticated"),
            value_env("GOTRUE_JWT_ADMIN_ROLES", "service_role"),
        ]

    def env_from(self, project: Project) -> list[dict[str, Any]]:
        """SMTP and OAuth provider settings come from user supplied Secrets as-is."""
        config = project.spec.component_config("auth")
        return [
            {"secretRef": {"name": ref.name}}
            for ref in (config.smtp_secret_ref, config.oauth_secret_ref)
            if ref is not None
        ]

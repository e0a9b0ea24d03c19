"""
Admin console (Studio) builder.
"""

from typing import Any

from spo.components.builder import (
    KONG_PROXY_PORT,
    META_PORT,
    STUDIO_PORT,
    ComponentBuilder,
    resource_requirements,
    secret_env,
    value_env,
)
from spo.credentials.bundle import ANON_KEY, JWT_SECRET_KEY, PG_META_CRYPTO_KEY, SERVICE_ROLE_KEY, CredentialBundle
from spo.models.project import Project
from spo.utils.naming import generate_unique_name


class StudioBuilder(ComponentBuilder):
    name = "studio"
    status_key = "studio"
    component_label = "studio"
    default_image = "supabase/studio:2025.10.01-sha-8460121"
    default_resources = resource_requirements("256Mi", "100m", "512Mi", "500m")
    ports = [("http", STUDIO_PORT)]

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        api_url = f"http://{generate_unique_name(project.name, 'kong')}:{KONG_PROXY_PORT}"
        meta_url = f"http://{generate_unique_name(project.name, 'meta')}:{META_PORT}"
        public_url = project.spec.component_config("studio").public_url or api_url
        return [
            value_env("PORT", str(STUDIO_PORT)),
            value_env("HOSTNAME", "0.0.0.0"),
            value_env("SUPABASE_URL", api_url),
            value_env("SUPABASE_PUBLIC_URL", public_url),
            value_env("NEXT_PUBLIC_SUPABASE_URL", public_url),
            value_env("NEXT_PUBLIC_GOTRUE_URL", f"{public_url}/auth/v1"),
            value_env("NEXT_PUBLIC_SITE_URL", public_url),
            value_env("STUDIO_PG_META_URL", meta_url),
            value_env("NEXT_PUBLIC_ENABLE_LOGS", "false"),
            value_env("NEXT_ANALYTICS_BACKEND_PROVIDER", "postgres"),
            secret_env("POSTGRES_PASSWORD", project.spec.database.secret_ref.name, "password"),
            secret_env("SUPABASE_ANON_KEY", bundle.secret_name, ANON_KEY),
            secret_env("NEXT_PUBLIC_SUPABASE_ANON_KEY", bundle.secret_name, ANON_KEY),
            secret_env("SUPABASE_SERVICE_KEY", bundle.secret_name, SERVICE_ROLE_KEY),
            secret_env("AUTH_JWT_SECRET", bundle.secret_name, JWT_SECRET_KEY),
            secret_env("PG_META_CRYPTO_KEY", bundle.secret_name, PG_META_CRYPTO_KEY),
        ]

"""
API gateway builder.

Kong runs DB-less from a declarative config kept in the ``<name>-kong-config`` ConfigMap.
The config contains ``$VARIABLE`` placeholders that the container command expands from its
environment at startup, so the API keys only ever live in the credential Secret.
"""

import logging
from typing import Any

from spo.components.builder import (
    AUTH_PORT,
    KONG_ADMIN_PORT,
    KONG_PROXY_PORT,
    KONG_PROXY_SSL_PORT,
    META_PORT,
    POSTGREST_PORT,
    REALTIME_PORT,
    STORAGE_PORT,
    STUDIO_PORT,
    ComponentBuilder,
    resource_requirements,
    secret_env,
    value_env,
)
from spo.core.errors import ComponentBuildError
from spo.credentials.bundle import ANON_KEY, SERVICE_ROLE_KEY, CredentialBundle
from spo.models.project import Project
from spo.utils.naming import generate_config_map_name, generate_unique_name

logger = logging.getLogger(__name__)

KONG_PLUGINS = "request-transformer,cors,key-auth,acl,basic-auth"
DECLARATIVE_CONFIG_PATH = "/tmp/kong.yml"
CONFIG_MOUNT_PATH = "/etc/kong"
DEFAULT_DASHBOARD_USERNAME = "supabase"
DEFAULT_DASHBOARD_PASSWORD = "this_password_is_insecure_and_should_be_updated"

OPEN_AUTH_ROUTES = [
    {"suffix": "", "path": "verify"},
    {"suffix": "-callback", "path": "callback"},
    {"suffix": "-authorize", "path": "authorize"},
]


class KongBuilder(ComponentBuilder):
    name = "kong"
    status_key = "kong"
    component_label = "api-gateway"
    default_image = "kong:2.8.1"
    default_resources = resource_requirements("1Gi", "250m", "2.5Gi", "500m")
    ports = [("proxy", KONG_PROXY_PORT), ("proxy-ssl", KONG_PROXY_SSL_PORT), ("admin", KONG_ADMIN_PORT)]
    service_ports = ("proxy", "proxy-ssl")

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        env = [
            value_env("KONG_DATABASE", "off"),
            value_env("KONG_DECLARATIVE_CONFIG", DECLARATIVE_CONFIG_PATH),
            value_env("KONG_PROXY_ACCESS_LOG", "/dev/stdout"),
            value_env("KONG_ADMIN_ACCESS_LOG", "/dev/stdout"),
            value_env("KONG_PROXY_ERROR_LOG", "/dev/stderr"),
            value_env("KONG_ADMIN_ERROR_LOG", "/dev/stderr"),
            value_env("KONG_ADMIN_LISTEN", f"0.0.0.0:{KONG_ADMIN_PORT}"),
            value_env("KONG_DNS_ORDER", "LAST,A,CNAME"),
            value_env("KONG_PLUGINS", KONG_PLUGINS),
            secret_env("SUPABASE_ANON_KEY", bundle.secret_name, ANON_KEY),
            secret_env("SUPABASE_SERVICE_KEY", bundle.secret_name, SERVICE_ROLE_KEY),
        ]

        basic_auth_ref = project.spec.component_config("studio").dashboard_basic_auth_secret_ref
        if basic_auth_ref is not None:
            env.append(secret_env("DASHBOARD_USERNAME", basic_auth_ref.name, "username"))
            env.append(secret_env("DASHBOARD_PASSWORD", basic_auth_ref.name, "password"))
        else:
            env.append(value_env("DASHBOARD_USERNAME", DEFAULT_DASHBOARD_USERNAME))
            env.append(value_env("DASHBOARD_PASSWORD", DEFAULT_DASHBOARD_PASSWORD))
        return env

    def command(self, project: Project) -> list[str]:
        return [
            "bash",
            "-lc",
            f'eval "echo \\"$$(cat {CONFIG_MOUNT_PATH}/kong.yml)\\"" > {DECLARATIVE_CONFIG_PATH} '
            f"&& export KONG_DECLARATIVE_CONFIG={DECLARATIVE_CONFIG_PATH} "
            "&& /docker-entrypoint.sh kong docker-start",
        ]

    def volumes(self, project: Project) -> list[dict[str, Any]]:
        return [{"name": "kong-config", "configMap": {"name": generate_config_map_name(project.name, self.name)}}]

    def volume_mounts(self, project: Project) -> list[dict[str, Any]]:
        return [{"name": "kong-config", "mountPath": CONFIG_MOUNT_PATH, "readOnly": True}]

    def declarative_config(self, project: Project) -> str:
        """Render kong.yml routing every API path to its component Service."""
        try:
            return self.generator.render_text(
                "kong-declarative-config",
                {
                    "open_auth_routes": OPEN_AUTH_ROUTES,
                    "auth_host": generate_unique_name(project.name, "auth"),
                    "auth_port": AUTH_PORT,
                    "postgrest_host": generate_unique_name(project.name, "postgrest"),
                    "postgrest_port": POSTGREST_PORT,
                    "realtime_host": generate_unique_name(project.name, "realtime"),
                    "realtime_port": REALTIME_PORT,
                    "storage_host": generate_unique_name(project.name, "storage"),
                    "storage_port": STORAGE_PORT,
                    "meta_host": generate_unique_name(project.name, "meta"),
                    "meta_port": META_PORT,
                    "studio_host": generate_unique_name(project.name, "studio"),
                    "studio_port": STUDIO_PORT,
                },
            )
        except RuntimeError as e:
            raise ComponentBuildError(self.name, str(e)) from e

    def build_config_map(self, project: Project) -> dict[str, Any]:
        return self._render(
            "configmap",
            {
                "name": generate_config_map_name(project.name, self.name),
                "namespace": project.namespace,
                "labels": self.labels(project),
                "data": {"kong.yml": self.declarative_config(project)},
            },
        )

    def build_ingress(self, project: Project) -> dict[str, Any] | None:
        """Ingress in front of the gateway, None when the project does not ask for one."""
        ingress = project.spec.ingress
        if ingress is None or not ingress.enabled:
            return None
        if not ingress.host:
            raise ComponentBuildError(self.name, "ingress is enabled but no host is set")

        return self._render(
            "ingress",
            {
                "name": self.resource_name(project),
                "namespace": project.namespace,
                "labels": self.labels(project),
                "annotations": ingress.annotations,
                "class_name": ingress.class_name,
                "host": ingress.host,
                "tls_secret_name": ingress.tls_secret_name,
                "service_name": self.resource_name(project),
                "service_port": KONG_PROXY_PORT,
            },
        )

    def extra_resources(self, project: Project) -> list[dict[str, Any]]:
        resources = [self.build_config_map(project)]
        ingress = self.build_ingress(project)
        if ingress is not None:
            resources.append(ingress)
        return resources

    def obsolete_resources(self, project: Project) -> list[tuple[str, str]]:
        ingress = project.spec.ingress
        if ingress is None or not ingress.enabled:
            return [("Ingress", self.resource_name(project))]
        return []

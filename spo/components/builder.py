"""
Base class for the per-component manifest builders.

A builder turns a project's declared spec into the Deployment and Service for one
component. Builders are deterministic and never touch the cluster; secrets are referenced
through secretKeyRef so the rendered manifests carry no credential values.
"""

import logging
from typing import Any, ClassVar

from spo.core.errors import ComponentBuildError
from spo.credentials.bundle import CredentialBundle
from spo.generation.manifests import ManifestGenerator
from spo.models.project import ComponentConfig, Project
from spo.utils.kubernetes import generate_labels, generate_selector_labels
from spo.utils.naming import generate_unique_name

logger = logging.getLogger(__name__)

DEFAULT_REPLICAS = 1

KONG_PROXY_PORT = 8000
KONG_PROXY_SSL_PORT = 8443
KONG_ADMIN_PORT = 8001
AUTH_PORT = 9999
POSTGREST_PORT = 3000
REALTIME_PORT = 4000
STORAGE_PORT = 5000
META_PORT = 8080
STUDIO_PORT = 3000


def value_env(name: str, value: str) -> dict[str, Any]:
    return {"name": name, "value": value}


def secret_env(name: str, secret_name: str, key: str) -> dict[str, Any]:
    return {"name": name, "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}}}


def resource_requirements(request_memory: str, request_cpu: str, limit_memory: str, limit_cpu: str) -> dict[str, Any]:
    return {
        "requests": {"memory": request_memory, "cpu": request_cpu},
        "limits": {"memory": limit_memory, "cpu": limit_cpu},
    }


class ComponentBuilder:
    """Builds the workload and endpoint of one component."""

    # Resource name suffix and container name
    name: ClassVar[str] = ""
    # Key of the component in the spec overrides and in status.components
    status_key: ClassVar[str] = ""
    component_label: ClassVar[str] = ""
    default_image: ClassVar[str] = ""
    default_resources: ClassVar[dict[str, Any]] = {}
    # (port name, container port)
    ports: ClassVar[list[tuple[str, int]]] = []
    # Port names exposed on the Service, None exposes every container port
    service_ports: ClassVar[tuple[str, ...] | None] = None

    def __init__(self, generator: ManifestGenerator | None = None):
        self.generator = generator or ManifestGenerator()

    def resource_name(self, project: Project) -> str:
        return generate_unique_name(project.name, self.name)

    def config(self, project: Project) -> ComponentConfig:
        return project.spec.component_config(self.status_key)

    def image(self, project: Project) -> str:
        return self.config(project).image or self.default_image

    def replicas(self, project: Project) -> int:
        replicas = self.config(project).replicas
        return DEFAULT_REPLICAS if replicas is None else replicas

    def labels(self, project: Project) -> dict[str, str]:
        labels = generate_labels(project.name, self.name)
        labels["app.kubernetes.io/component"] = self.component_label
        return labels

    def environment(self, project: Project, bundle: CredentialBundle) -> list[dict[str, Any]]:
        """Component specific environment, before the user's extraEnv is appended."""
        return []

    def env_from(self, project: Project) -> list[dict[str, Any]]:
        return []

    def command(self, project: Project) -> list[str] | None:
        return None

    def volumes(self, project: Project) -> list[dict[str, Any]]:
        return []

    def volume_mounts(self, project: Project) -> list[dict[str, Any]]:
        return []

    def extra_resources(self, project: Project) -> list[dict[str, Any]]:
        """Additional objects the component needs, converged like the workload on every pass."""
        return []

    def obsolete_resources(self, project: Project) -> list[tuple[str, str]]:
        """(kind, name) of optional objects the current spec no longer declares."""
        return []

    def _container_ports(self) -> list[dict[str, Any]]:
        return [{"name": name, "containerPort": port, "protocol": "TCP"} for name, port in self.ports]

    def _render(self, template_name: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            return self.generator.render_manifest(template_name, variables)
        except RuntimeError as e:
            raise ComponentBuildError(self.name, str(e)) from e

    def build_workload(self, project: Project, bundle: CredentialBundle) -> dict[str, Any]:
        """
        Render the component's Deployment.

        Raises:
            ComponentBuildError: If rendering fails or the result is not a usable Deployment
        """
        config = self.config(project)
        image = self.image(project)
        if not image:
            raise ComponentBuildError(self.name, "no image configured")

        manifest = self._render(
            "deployment",
            {
                "name": self.resource_name(project),
                "namespace": project.namespace,
                "labels": self.labels(project),
                "selector": generate_selector_labels(project.name, self.name),
                "replicas": self.replicas(project),
                "container": self.name,
                "image": image,
                "command": self.command(project),
                "ports": self._container_ports(),
                "env": self.environment(project, bundle) + list(config.extra_env),
                "env_from": self.env_from(project),
                "resources": config.resources or self.default_resources,
                "volumes": self.volumes(project),
                "volume_mounts": self.volume_mounts(project),
            },
        )
        self._check(manifest, "Deployment")
        if not manifest.get("spec", {}).get("template", {}).get("spec", {}).get("containers"):
            raise ComponentBuildError(self.name, "deployment has no containers")
        return manifest

    def build_endpoint(self, project: Project) -> dict[str, Any]:
        """
        Render the component's Service.

        Raises:
            ComponentBuildError: If rendering fails or the result is not a usable Service
        """
        ports = [
            port
            for port in self._container_ports()
            if self.service_ports is None or port["name"] in self.service_ports
        ]
        manifest = self._render(
            "service",
            {
                "name": self.resource_name(project),
                "namespace": project.namespace,
                "labels": self.labels(project),
                "selector": generate_selector_labels(project.name, self.name),
                "ports": ports,
            },
        )
        self._check(manifest, "Service")
        if not manifest.get("spec", {}).get("ports"):
            raise ComponentBuildError(self.name, "service exposes no ports")
        return manifest

    def _check(self, manifest: dict[str, Any], kind: str) -> None:
        if manifest.get("kind") != kind:
            raise ComponentBuildError(self.name, f"expected a {kind}, got {manifest.get('kind')}")
        if not manifest.get("metadata", {}).get("name"):
            raise ComponentBuildError(self.name, f"{kind} has no name")

    def primary_port(self) -> int:
        return self.ports[0][1]

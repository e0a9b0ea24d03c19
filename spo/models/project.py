"""
Pydantic models for the SupabaseProject custom resource.

Field names are snake_case in Python and camelCase on the wire. Models are parsed from the
object kubectl returns and dumped back with ``to_k8s()``; the raw object is kept on the
project so writes send back exactly what was read apart from the part being changed.
"""

import copy
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_k8s(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ObjectMeta(CamelModel):
    name: str
    namespace: str = "default"
    uid: str = ""
    generation: int = 0
    resource_version: str | None = None
    deletion_timestamp: str | None = None
    finalizers: list[str] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)


class SecretReference(CamelModel):
    name: str
    namespace: str | None = None


class DatabaseConfig(CamelModel):
    secret_ref: SecretReference
    ssl_mode: str = "require"
    max_connections: int = Field(default=20, ge=1, le=100)


class StorageConfig(CamelModel):
    secret_ref: SecretReference
    force_path_style: bool = True


class ComponentConfig(CamelModel):
    """Overrides shared by every component."""

    image: str | None = None
    replicas: int | None = Field(default=None, ge=0, le=10)
    resources: dict[str, Any] | None = None
    extra_env: list[dict[str, Any]] = Field(default_factory=list)


class AuthConfig(ComponentConfig):
    smtp_secret_ref: SecretReference | None = None
    oauth_secret_ref: SecretReference | None = None


class StudioConfig(ComponentConfig):
    public_url: str | None = None
    dashboard_basic_auth_secret_ref: SecretReference | None = None


class IngressConfig(CamelModel):
    enabled: bool = False
    class_name: str | None = None
    annotations: dict[str, str] = Field(default_factory=dict)
    host: str | None = None
    tls_secret_name: str | None = None


class ProjectSpec(CamelModel):
    project_id: str = ""
    database: DatabaseConfig
    storage: StorageConfig
    kong: ComponentConfig | None = None
    auth: AuthConfig | None = None
    postgrest: ComponentConfig | None = None
    realtime: ComponentConfig | None = None
    storage_api: ComponentConfig | None = None
    meta: ComponentConfig | None = None
    studio: StudioConfig | None = None
    ingress: IngressConfig | None = None

    def component_config(self, key: str) -> ComponentConfig:
        """
        Overrides for a component by its status key, e.g. 'storageApi'.

        Returns an empty config when the component is not mentioned in the spec.
        """
        field_name = {"storageApi": "storage_api"}.get(key, key)
        config = getattr(self, field_name)
        if config is not None:
            return config
        if key == "auth":
            return AuthConfig()
        if key == "studio":
            return StudioConfig()
        return ComponentConfig()


class Condition(CamelModel):
    type: str
    status: Literal["True", "False", "Unknown"]
    reason: str
    message: str = ""
    last_transition_time: str | None = None
    observed_generation: int | None = None


class ComponentStatus(CamelModel):
    phase: str = ""
    ready: bool = False
    version: str = ""
    replicas: int = 0
    ready_replicas: int = 0
    conditions: list[Condition] = Field(default_factory=list)
    last_update_time: str | None = None


class DependencyStatus(CamelModel):
    connected: bool = False
    last_connected_time: str | None = None
    error: str | None = None


class EndpointsStatus(CamelModel):
    api: str | None = None
    auth: str | None = None
    rest: str | None = None
    realtime: str | None = None
    storage: str | None = None


class ProjectStatus(CamelModel):
    phase: str = ""
    message: str = ""
    conditions: list[Condition] = Field(default_factory=list)
    components: dict[str, ComponentStatus] = Field(default_factory=dict)
    dependencies: dict[str, DependencyStatus] = Field(default_factory=dict)
    endpoints: EndpointsStatus = Field(default_factory=EndpointsStatus)
    observed_generation: int | None = None
    last_reconcile_time: str | None = None


class Project(CamelModel):
    """A SupabaseProject as read from the cluster."""

    metadata: ObjectMeta
    spec: ProjectSpec
    status: ProjectStatus = Field(default_factory=ProjectStatus)

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_k8s(cls, obj: dict[str, Any]) -> "Project":
        """
        Parse a project object.

        Raises:
            pydantic.ValidationError: If the spec does not match the schema
        """
        project = cls.model_validate({**obj, "status": obj.get("status") or {}})
        project._raw = copy.deepcopy(obj)
        return project

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def manifest_with_finalizers(self, finalizers: list[str]) -> dict[str, Any]:
        """The raw object with its finalizer list replaced, ready for a replace call."""
        manifest = copy.deepcopy(self._raw)
        manifest.setdefault("metadata", {})["finalizers"] = finalizers
        return manifest

    def manifest_with_status(self, status: ProjectStatus) -> dict[str, Any]:
        """The raw object with a new status, ready for a status subresource replace."""
        manifest = copy.deepcopy(self._raw)
        manifest["status"] = status.to_k8s()
        return manifest

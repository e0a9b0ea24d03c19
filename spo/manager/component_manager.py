"""
Convergence of the seven project components.

Components are converged in a fixed order so that everything the gateway routes to is
written in the same pass. A build or write error aborts the pass; failing to read a
component back for status only marks that component as unknown.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from spo.components.auth import AuthBuilder
from spo.components.builder import ComponentBuilder
from spo.components.kong import KongBuilder
from spo.components.meta import MetaBuilder
from spo.components.postgrest import PostgRESTBuilder
from spo.components.realtime import RealtimeBuilder
from spo.components.storage import StorageAPIBuilder
from spo.components.studio import StudioBuilder
from spo.connectors.kubectl import (
    KubectlAlreadyExistsError,
    KubectlConflictError,
    KubectlConnectionError,
    KubectlConnector,
    KubectlExecutionError,
)
from spo.core.errors import ComponentBuildError
from spo.credentials.bundle import CredentialBundle
from spo.generation.manifests import ManifestGenerator
from spo.models.project import ComponentStatus, Condition, Project
from spo.status import conditions
from spo.status.component import new_component_status, set_component_condition, unknown_component_status
from spo.utils.kubernetes import set_owner_reference

logger = logging.getLogger(__name__)

DEPLOYMENT_RESOURCE = "deployments.apps"

KIND_RESOURCES = {
    "ConfigMap": "configmap",
    "Ingress": "ingresses.networking.k8s.io",
    "Service": "service",
}

# Top-level fields the builders own; everything else on a live object is left as found
CONVERGED_FIELDS = ("spec", "data")


@dataclass(frozen=True)
class ComponentRecord:
    """One entry of the convergence order."""

    key: str
    builder: ComponentBuilder
    condition_type: str


@dataclass
class ConvergenceResult:
    components: dict[str, ComponentStatus] = field(default_factory=dict)
    conditions: list[Condition] = field(default_factory=list)


def build_registry(generator: ManifestGenerator | None = None) -> list[ComponentRecord]:
    """The components in convergence order: gateway first, admin console last."""
    generator = generator or ManifestGenerator()
    return [
        ComponentRecord("kong", KongBuilder(generator), conditions.KONG_READY),
        ComponentRecord("auth", AuthBuilder(generator), conditions.AUTH_READY),
        ComponentRecord("postgrest", PostgRESTBuilder(generator), conditions.POSTGREST_READY),
        ComponentRecord("realtime", RealtimeBuilder(generator), conditions.REALTIME_READY),
        ComponentRecord("storageApi", StorageAPIBuilder(generator), conditions.STORAGE_API_READY),
        ComponentRecord("meta", MetaBuilder(generator), conditions.META_READY),
        ComponentRecord("studio", StudioBuilder(generator), conditions.STUDIO_READY),
    ]


class ComponentManager:
    """Creates or updates the workloads and endpoints of every component."""

    def __init__(self, kubectl_connector: KubectlConnector, registry: list[ComponentRecord] | None = None) -> None:
        self.kubectl_connector = kubectl_connector
        self.registry = registry if registry is not None else build_registry()

    @property
    def keys(self) -> list[str]:
        return [record.key for record in self.registry]

    @staticmethod
    def _resource(kind: str) -> str:
        if kind == "Deployment":
            return DEPLOYMENT_RESOURCE
        return KIND_RESOURCES.get(kind, kind.lower())

    async def _create_if_missing(self, manifest: dict[str, Any]) -> None:
        kind = manifest["kind"]
        metadata = manifest["metadata"]
        existing = await self.kubectl_connector.get_object(self._resource(kind), metadata["name"], metadata.get("namespace"))
        if existing is not None:
            return
        try:
            await self.kubectl_connector.create_object(manifest)
        except KubectlAlreadyExistsError:
            logger.debug(f"{kind} {metadata['name']} was created concurrently")

    async def _converge(self, desired: dict[str, Any]) -> None:
        """Create the object, or overwrite the desired fields of the live one in place."""
        metadata = desired["metadata"]
        existing = await self.kubectl_connector.get_object(
            self._resource(desired["kind"]), metadata["name"], metadata["namespace"]
        )
        if existing is None:
            await self.kubectl_connector.create_object(desired)
            return

        updated = copy.deepcopy(existing)
        for field_name in CONVERGED_FIELDS:
            if field_name in desired:
                updated[field_name] = desired[field_name]
        live_metadata = updated["metadata"]
        live_metadata["labels"] = {**live_metadata.get("labels", {}), **metadata.get("labels", {})}
        # Annotations are only owned when the manifest declares them (Ingress)
        if "annotations" in metadata:
            live_metadata["annotations"] = metadata["annotations"]
        live_metadata["ownerReferences"] = metadata["ownerReferences"]
        updated.pop("status", None)

        if updated == {key: value for key, value in existing.items() if key != "status"}:
            return
        # The resourceVersion of the read guards against lost updates
        await self.kubectl_connector.replace_object(updated)
        logger.info(f"Updated {desired['kind']} {metadata['namespace']}/{metadata['name']}")

    async def _delete_obsolete(self, project: Project, builder: ComponentBuilder) -> None:
        for kind, name in builder.obsolete_resources(project):
            resource = self._resource(kind)
            if await self.kubectl_connector.get_object(resource, name, project.namespace) is None:
                continue
            await self.kubectl_connector.delete_resource(resource, name, project.namespace)
            logger.info(f"Deleted {kind} {project.namespace}/{name}, it is no longer declared")

    async def _observe(self, project: Project, record: ComponentRecord) -> ComponentStatus:
        builder = record.builder
        version = builder.image(project)
        desired_replicas = builder.replicas(project)
        name = builder.resource_name(project)

        try:
            live = await self.kubectl_connector.get_object(DEPLOYMENT_RESOURCE, name, project.namespace)
        except (KubectlExecutionError, KubectlConnectionError) as e:
            logger.warning(f"Could not read back {project.namespace}/{name} for status: {e}")
            live = None

        if live is None:
            status = unknown_component_status(version, desired_replicas)
            condition = conditions.new_condition(
                record.condition_type,
                conditions.CONDITION_UNKNOWN,
                "StatusUnavailable",
                f"Could not read the state of {name}",
                project.metadata.generation,
            )
            return set_component_condition(status, condition)

        replicas = (live.get("spec") or {}).get("replicas", desired_replicas)
        ready_replicas = (live.get("status") or {}).get("readyReplicas") or 0
        status = new_component_status(version, replicas, ready_replicas)
        if status.ready:
            condition = conditions.new_condition(
                record.condition_type,
                conditions.CONDITION_TRUE,
                "DeploymentReady",
                f"{ready_replicas}/{replicas} replicas ready",
                project.metadata.generation,
            )
        else:
            condition = conditions.new_condition(
                record.condition_type,
                conditions.CONDITION_FALSE,
                "ReplicasNotReady",
                f"{ready_replicas}/{replicas} replicas ready",
                project.metadata.generation,
            )
        return set_component_condition(status, condition)

    async def reconcile_component(
        self, project: Project, record: ComponentRecord, bundle: CredentialBundle
    ) -> ComponentStatus:
        """
        Converge one component and report its observed state.

        Raises:
            ComponentBuildError: If the builder cannot produce valid manifests
            KubectlConflictError: If a write raced with another writer
            KubectlExecutionError: If a write failed
        """
        builder = record.builder
        owner = (project.name, project.metadata.uid)

        workload = set_owner_reference(builder.build_workload(project, bundle), *owner)
        endpoint = set_owner_reference(builder.build_endpoint(project), *owner)
        extras = [set_owner_reference(manifest, *owner) for manifest in builder.extra_resources(project)]

        for manifest in extras:
            await self._converge(manifest)
        await self._delete_obsolete(project, builder)
        await self._converge(workload)
        # Service identity must stay stable, so an existing Service is never modified
        await self._create_if_missing(endpoint)

        logger.debug(f"Converged {record.key} for {project.namespace}/{project.name}")
        return await self._observe(project, record)

    async def reconcile_components(self, project: Project, bundle: CredentialBundle) -> ConvergenceResult:
        """
        Converge every component in registry order.

        The first error aborts the remaining components and is raised to the caller.
        """
        result = ConvergenceResult()
        for record in self.registry:
            try:
                status = await self.reconcile_component(project, record, bundle)
            except KubectlConflictError:
                raise
            except (ComponentBuildError, KubectlExecutionError, KubectlConnectionError) as e:
                logger.error(f"Failed to reconcile {record.key} for {project.namespace}/{project.name}: {e}")
                raise
            result.components[record.key] = status
            result.conditions.extend(status.conditions)
        return result

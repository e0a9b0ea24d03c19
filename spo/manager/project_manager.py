"""
Phase state machine for SupabaseProject resources.

One call to ``ProjectReconciler.reconcile`` is one pass: it reads the project, handles
deletion or adds the finalizer, then runs dependency validation, credentials, database
bootstrap and component convergence in that order. The reconciler is the only writer of
``phase``, ``message`` and the top-level conditions, and it never modifies the spec.

Status for a pass is built as a fresh value on top of the persisted conditions and written
once with the resourceVersion that was read, so an unchanged pass rewrites identical
conditions and a concurrent change makes the write fail instead of being overwritten.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from spo.connectors.kubectl import (
    KubectlConflictError,
    KubectlConnectionError,
    KubectlConnector,
    KubectlExecutionError,
    KubectlNotFoundError,
)
from spo.core import events
from spo.core.config import settings
from spo.core.errors import BootstrapRetriesExhaustedError, InvalidPhaseTransitionError, ReconcileError
from spo.core.events import EventRecorder, PendingEvent
from spo.credentials.bundle import CredentialBundle
from spo.credentials.validation import DATABASE_DEPENDENCY, STORAGE_DEPENDENCY
from spo.manager.bootstrap_manager import JOB_RESOURCE, BootstrapManager
from spo.manager.component_manager import ComponentManager
from spo.manager.credential_manager import CredentialManager
from spo.manager.dependency_manager import DependencyManager
from spo.models.project import Condition, DependencyStatus, EndpointsStatus, Project, ProjectStatus
from spo.status import conditions
from spo.status.component import are_all_components_ready, set_component_status
from spo.status.phase import Phase, can_transition_to, get_phase_message
from spo.utils.kubernetes import FINALIZER, RESOURCE, now_iso
from spo.utils.naming import generate_db_init_name, generate_service_url

logger = logging.getLogger(__name__)

DEPENDENCY_CONDITIONS = {
    DATABASE_DEPENDENCY: conditions.POSTGRESQL_CONNECTED,
    STORAGE_DEPENDENCY: conditions.S3_CONNECTED,
}

REASON_COMPONENTS_FAILED = "ComponentReconcileFailed"
REASON_INVALID_SPEC = "InvalidSpec"


@dataclass
class ReconcileResult:
    """Outcome of one pass, used by the run loop to schedule the next one."""

    namespace: str
    name: str
    phase: str | None = None
    phases: list[str] = field(default_factory=list)
    requeue_after: float | None = None
    error: str | None = None
    reason: str | None = None
    finished_at: str = field(default_factory=now_iso)

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None


class StepFailed(Exception):
    """Raised inside a pass once a step failure has been recorded on the pass status."""

    def __init__(self, result: ReconcileResult) -> None:
        super().__init__(result.error)
        self.result = result


class _Pass:
    """Mutable state of a single pass over one project."""

    def __init__(self, project: Project) -> None:
        self.project = project
        self.generation = project.metadata.generation
        previous = project.status
        self.status = ProjectStatus(
            phase=previous.phase,
            message=previous.message,
            conditions=list(previous.conditions),
            components=dict(previous.components),
            dependencies=dict(previous.dependencies),
            endpoints=previous.endpoints,
            observed_generation=previous.observed_generation,
            last_reconcile_time=previous.last_reconcile_time,
        )
        self.phases: list[str] = []
        self.events: list[PendingEvent] = []

        try:
            self.phase = Phase(previous.phase) if previous.phase else None
        except ValueError:
            logger.warning(f"Unknown persisted phase {previous.phase!r}, starting over from Pending")
            self.phase = None

    def enter(self, target: Phase) -> None:
        if self.phase is not None and self.phase != target and not can_transition_to(self.phase, target):
            raise InvalidPhaseTransitionError(f"cannot move from {self.phase.value} to {target.value}")
        self.phase = target
        self.phases.append(target.value)
        self.status.phase = target.value
        self.status.message = get_phase_message(target)

    def set_condition(self, condition_type: str, status: str, reason: str, message: str) -> None:
        condition = conditions.new_condition(condition_type, status, reason, message, self.generation)
        self.status.conditions = conditions.set_condition(self.status.conditions, condition)

    def merge_conditions(self, new_conditions: list[Condition]) -> None:
        for condition in new_conditions:
            self.status.conditions = conditions.set_condition(self.status.conditions, condition)

    def event(self, event_type: str, reason: str, message: str) -> None:
        self.events.append(PendingEvent(event_type, reason, message))


class ProjectReconciler:
    """Drives a SupabaseProject through its phases."""

    def __init__(
        self,
        kubectl_connector: KubectlConnector,
        dependency_manager: DependencyManager | None = None,
        credential_manager: CredentialManager | None = None,
        bootstrap_manager: BootstrapManager | None = None,
        component_manager: ComponentManager | None = None,
        event_recorder: EventRecorder | None = None,
    ) -> None:
        self.kubectl_connector = kubectl_connector
        self.dependency_manager = dependency_manager or DependencyManager(kubectl_connector)
        self.credential_manager = credential_manager or CredentialManager(kubectl_connector)
        self.bootstrap_manager = bootstrap_manager or BootstrapManager(kubectl_connector)
        self.component_manager = component_manager or ComponentManager(kubectl_connector)
        self.event_recorder = event_recorder or EventRecorder(kubectl_connector)

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """
        Run one reconciliation pass.

        Args:
            namespace: Namespace of the project
            name: Name of the project

        Returns:
            The pass result, with ``requeue_after`` set when another pass should be scheduled

        Raises:
            KubectlConnectionError: If the API server cannot be reached outside of a step
            KubectlExecutionError: If reading the project or writing its status fails
        """
        result = ReconcileResult(namespace=namespace, name=name)
        logger.debug(f"Reconciling SupabaseProject {namespace}/{name}")

        obj = await self.kubectl_connector.get_object(RESOURCE, name, namespace)
        if obj is None:
            logger.debug(f"SupabaseProject {namespace}/{name} no longer exists")
            return result

        try:
            project = Project.from_k8s(obj)
        except ValidationError as e:
            return await self._reject_invalid_spec(obj, result, e)

        try:
            if project.is_deleting:
                return await self._finalize(project, result)

            if not project.has_finalizer(FINALIZER):
                project = await self._add_finalizer(project)

            return await self._run_pass(project, result)
        except KubectlConflictError as e:
            logger.info(f"Conflict while reconciling {namespace}/{name}, retrying from a fresh read: {e}")
            result.error = str(e)
            result.reason = "Conflict"
            result.requeue_after = settings.CONFLICT_REQUEUE_SECONDS
            return result

    async def _add_finalizer(self, project: Project) -> Project:
        manifest = project.manifest_with_finalizers([*project.metadata.finalizers, FINALIZER])
        updated = await self.kubectl_connector.replace_object(manifest)
        logger.info(f"Added finalizer to {project.namespace}/{project.name}")
        return Project.from_k8s(updated)

    async def _finalize(self, project: Project, result: ReconcileResult) -> ReconcileResult:
        """Clean up before the project is removed; owned objects are garbage-collected afterwards."""
        if not project.has_finalizer(FINALIZER):
            return result

        logger.info(f"Finalizing SupabaseProject {project.namespace}/{project.name}")
        result.phase = Phase.TERMINATING.value
        result.phases.append(Phase.TERMINATING.value)

        status = project.status.model_copy(
            update={"phase": Phase.TERMINATING.value, "message": get_phase_message(Phase.TERMINATING)}
        )
        try:
            updated = await self.kubectl_connector.replace_status(project.manifest_with_status(status))
            project = Project.from_k8s(updated)
        except (KubectlExecutionError, KubectlConnectionError) as e:
            logger.warning(f"Could not record Terminating phase on {project.namespace}/{project.name}: {e}")

        await self.kubectl_connector.delete_resource(JOB_RESOURCE, generate_db_init_name(project.name), project.namespace)
        await self.event_recorder.record(
            project.name,
            project.namespace,
            project.metadata.uid,
            PendingEvent(events.EVENT_TYPE_NORMAL, events.REASON_TERMINATING, get_phase_message(Phase.TERMINATING)),
        )

        finalizers = [finalizer for finalizer in project.metadata.finalizers if finalizer != FINALIZER]
        try:
            await self.kubectl_connector.replace_object(project.manifest_with_finalizers(finalizers))
        except KubectlNotFoundError:
            logger.debug(f"{project.namespace}/{project.name} was removed while finalizing")
        logger.info(f"Removed finalizer from {project.namespace}/{project.name}")
        return result

    async def _reject_invalid_spec(self, obj: dict[str, Any], result: ReconcileResult, error: ValidationError) -> ReconcileResult:
        metadata = obj.get("metadata", {})
        message = f"invalid spec: {error.error_count()} validation error(s), first: {error.errors()[0]['msg']}"
        logger.error(f"SupabaseProject {result.namespace}/{result.name} has an {message}")

        try:
            previous = ProjectStatus.model_validate(obj.get("status") or {})
        except ValidationError:
            previous = ProjectStatus()

        condition = conditions.new_condition(
            conditions.READY, conditions.CONDITION_FALSE, REASON_INVALID_SPEC, message, metadata.get("generation")
        )
        status = previous.model_copy(
            update={
                "phase": Phase.FAILED.value,
                "message": f"{get_phase_message(Phase.FAILED)}: {message}",
                "conditions": conditions.set_condition(previous.conditions, condition),
            }
        )
        try:
            await self.kubectl_connector.replace_status({**obj, "status": status.to_k8s()})
        except KubectlConflictError:
            result.requeue_after = settings.CONFLICT_REQUEUE_SECONDS

        result.phase = Phase.FAILED.value
        result.error = message
        result.reason = REASON_INVALID_SPEC
        return result

    async def _run_pass(self, project: Project, result: ReconcileResult) -> ReconcileResult:
        state = _Pass(project)
        previous_phase = project.status.phase
        previous_message = project.status.message

        if state.phase is None:
            state.enter(Phase.PENDING)
            state.event(events.EVENT_TYPE_NORMAL, events.REASON_PHASE_CHANGED, "Entered Pending phase")
        elif state.phase == Phase.RUNNING and project.status.observed_generation != project.metadata.generation:
            state.enter(Phase.UPDATING)
            state.event(events.EVENT_TYPE_NORMAL, events.REASON_PHASE_CHANGED, "Spec changed, updating components")

        try:
            await self._validate_dependencies(state)
            bundle = await self._ensure_credentials(state)
            waiting = await self._ensure_bootstrapped(state, bundle)
            if waiting is not None:
                result.requeue_after = waiting
            else:
                await self._converge_components(state, bundle)
                if not self._complete(state):
                    result.requeue_after = settings.READINESS_REQUEUE_SECONDS
        except StepFailed as failure:
            result.requeue_after = failure.result.requeue_after
            result.error = failure.result.error
            result.reason = failure.result.reason
        except InvalidPhaseTransitionError as e:
            logger.error(f"Aborting pass for {project.namespace}/{project.name}: {e}")
            result.phase = project.status.phase or None
            result.phases = state.phases
            result.error = str(e)
            result.reason = e.reason
            return result

        result.phase = state.status.phase
        result.phases = state.phases

        await self.kubectl_connector.replace_status(project.manifest_with_status(state.status))

        if state.status.phase != previous_phase or state.status.message != previous_message:
            await self.event_recorder.record_all(project.name, project.namespace, project.metadata.uid, state.events)

        logger.info(
            f"Reconciled {project.namespace}/{project.name}: phase={result.phase} "
            f"requeue_after={result.requeue_after} error={result.error}"
        )
        return result

    def _fail(
        self, state: _Pass, error: Exception, reason: str, requeue_after: float | None, event_reason: str
    ) -> StepFailed:
        """Record a failed step on the pass status and build the exception that ends the pass."""
        if isinstance(error, ReconcileError) and not error.retryable:
            requeue_after = None

        message = f"{get_phase_message(Phase.FAILED)}: {error}"
        state.enter(Phase.FAILED)
        state.status.message = message
        state.set_condition(conditions.READY, conditions.CONDITION_FALSE, reason, str(error))
        state.set_condition(conditions.PROGRESSING, conditions.CONDITION_FALSE, "ReconciliationFailed", str(error))
        state.set_condition(conditions.DEGRADED, conditions.CONDITION_TRUE, reason, str(error))
        state.event(events.EVENT_TYPE_WARNING, event_reason, message)

        logger.warning(f"Reconciliation of {state.project.namespace}/{state.project.name} failed ({reason}): {error}")
        failed = ReconcileResult(
            namespace=state.project.namespace,
            name=state.project.name,
            requeue_after=requeue_after,
            error=str(error),
            reason=reason,
        )
        return StepFailed(failed)

    async def _validate_dependencies(self, state: _Pass) -> None:
        state.enter(Phase.VALIDATING_DEPENDENCIES)
        try:
            validated = await self.dependency_manager.validate_dependencies(state.project)
        except KubectlConflictError:
            raise
        except (ReconcileError, KubectlExecutionError, KubectlConnectionError) as e:
            failed_dependency = getattr(e, "dependency", None)
            for dependency, condition_type in DEPENDENCY_CONDITIONS.items():
                if failed_dependency is None:
                    break
                if dependency == failed_dependency:
                    self._set_dependency(state, dependency, False, str(e))
                    state.set_condition(condition_type, conditions.CONDITION_FALSE, "SecretInvalid", str(e))
                    break
                self._set_dependency(state, dependency, True)
                state.set_condition(condition_type, conditions.CONDITION_TRUE, "SecretValid", "Credentials present")
            raise self._fail(
                state,
                e,
                "DependencyValidationFailed",
                settings.DEPENDENCY_REQUEUE_SECONDS,
                events.REASON_VALIDATION_FAILED,
            ) from e

        for dependency in validated:
            condition_type = DEPENDENCY_CONDITIONS.get(dependency)
            if condition_type is None:
                continue
            self._set_dependency(state, dependency, True)
            state.set_condition(condition_type, conditions.CONDITION_TRUE, "SecretValid", "Credentials present")
        state.event(
            events.EVENT_TYPE_NORMAL,
            events.REASON_DEPENDENCIES_VALIDATED,
            "Successfully validated external dependencies",
        )

    @staticmethod
    def _set_dependency(state: _Pass, dependency: str, connected: bool, error: str | None = None) -> None:
        previous = state.status.dependencies.get(dependency)
        if connected:
            keep_time = previous is not None and previous.connected and previous.last_connected_time
            last_connected_time = previous.last_connected_time if keep_time else now_iso()
        else:
            last_connected_time = previous.last_connected_time if previous else None
        state.status.dependencies = {
            **state.status.dependencies,
            dependency: DependencyStatus(connected=connected, last_connected_time=last_connected_time, error=error),
        }

    async def _ensure_credentials(self, state: _Pass) -> CredentialBundle:
        state.enter(Phase.DEPLOYING_SECRETS)
        try:
            bundle = await self.credential_manager.ensure_credentials(state.project)
        except KubectlConflictError:
            raise
        except (ReconcileError, KubectlExecutionError, KubectlConnectionError) as e:
            state.set_condition(conditions.SECRETS_READY, conditions.CONDITION_FALSE, "SecretGenerationFailed", str(e))
            raise self._fail(
                state, e, "SecretGenerationFailed", settings.SECRETS_REQUEUE_SECONDS, events.REASON_SECRETS_FAILED
            ) from e

        state.set_condition(conditions.SECRETS_READY, conditions.CONDITION_TRUE, "SecretsReady", "Credential bundle present")
        state.event(events.EVENT_TYPE_NORMAL, events.REASON_SECRETS_CREATED, "JWT secrets present")
        return bundle

    async def _ensure_bootstrapped(self, state: _Pass, bundle: CredentialBundle) -> float | None:
        state.enter(Phase.INITIALIZING_DATABASE)
        job_name = generate_db_init_name(state.project.name)
        try:
            delay = await self.bootstrap_manager.ensure_bootstrapped(state.project, bundle)
        except KubectlConflictError:
            raise
        except (ReconcileError, KubectlExecutionError, KubectlConnectionError) as e:
            reason = (
                conditions.REASON_RETRIES_EXHAUSTED
                if isinstance(e, BootstrapRetriesExhaustedError)
                else "DatabaseInitFailed"
            )
            state.set_condition(conditions.DATABASE_INITIALIZED, conditions.CONDITION_FALSE, reason, str(e))
            raise self._fail(
                state, e, "DatabaseInitFailed", settings.BOOTSTRAP_REQUEUE_SECONDS, events.REASON_DATABASE_INIT_FAILED
            ) from e

        if delay is not None:
            state.set_condition(
                conditions.DATABASE_INITIALIZED,
                conditions.CONDITION_FALSE,
                "JobInProgress",
                f"Waiting for database initialization job {job_name}",
            )
            state.set_condition(
                conditions.READY, conditions.CONDITION_FALSE, "InitializingDatabase", "Database is being initialized"
            )
            state.set_condition(
                conditions.PROGRESSING, conditions.CONDITION_TRUE, "InitializingDatabase", "Waiting for database bootstrap"
            )
            return delay

        state.set_condition(
            conditions.DATABASE_INITIALIZED,
            conditions.CONDITION_TRUE,
            "JobSucceeded",
            f"Database initialization job {job_name} completed",
        )
        state.event(
            events.EVENT_TYPE_NORMAL,
            events.REASON_DATABASE_INITIALIZED,
            "PostgreSQL database initialized successfully",
        )
        return None

    async def _converge_components(self, state: _Pass, bundle: CredentialBundle) -> None:
        state.enter(Phase.DEPLOYING_COMPONENTS)
        try:
            convergence = await self.component_manager.reconcile_components(state.project, bundle)
        except KubectlConflictError:
            raise
        except (ReconcileError, KubectlExecutionError, KubectlConnectionError) as e:
            raise self._fail(
                state, e, REASON_COMPONENTS_FAILED, settings.COMPONENTS_REQUEUE_SECONDS, events.REASON_COMPONENTS_FAILED
            ) from e

        components = state.status.components
        for key, component_status in convergence.components.items():
            components = set_component_status(components, key, component_status)
        state.status.components = components
        state.merge_conditions(convergence.conditions)
        state.set_condition(conditions.NETWORK_READY, conditions.CONDITION_TRUE, "ServicesCreated", "All services exist")
        state.status.endpoints = self._endpoints(state.project)

    @staticmethod
    def _endpoints(project: Project) -> EndpointsStatus:
        api = generate_service_url(project.name, "kong", project.namespace, 8000)
        return EndpointsStatus(
            api=api,
            auth=f"{api}/auth/v1",
            rest=f"{api}/rest/v1",
            realtime=f"{api}/realtime/v1",
            storage=f"{api}/storage/v1",
        )

    def _complete(self, state: _Pass) -> bool:
        """Enter Running; returns whether every component reported all replicas ready."""
        state.enter(Phase.RUNNING)
        ready = are_all_components_ready(state.status.components, self.component_manager.keys)
        if ready:
            state.set_condition(conditions.READY, conditions.CONDITION_TRUE, "AllComponentsReady", "All components are running")
            state.set_condition(conditions.AVAILABLE, conditions.CONDITION_TRUE, "AllComponentsReady", "All replicas are ready")
        else:
            state.set_condition(
                conditions.READY, conditions.CONDITION_TRUE, "ComponentsDeployed", "All components are deployed"
            )
            state.set_condition(
                conditions.AVAILABLE, conditions.CONDITION_FALSE, "ReplicasNotReady", "Some replicas are not ready yet"
            )
        state.set_condition(conditions.PROGRESSING, conditions.CONDITION_FALSE, "ReconciliationComplete", "Reconciliation complete")
        state.set_condition(conditions.DEGRADED, conditions.CONDITION_FALSE, "ReconciliationSucceeded", "No errors")
        state.status.observed_generation = state.generation
        state.status.last_reconcile_time = now_iso()
        state.event(events.EVENT_TYPE_NORMAL, events.REASON_RECONCILIATION_COMPLETE, "SupabaseProject is now Running")
        return ready

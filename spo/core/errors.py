"""
Error taxonomy for reconciliation passes.

Every step raises one of these (or a connector error) back to the project reconciler, which
is the only place that turns an error into a phase, a Ready reason and a requeue delay.
Errors that are not retryable stop automatic requeueing until the project changes.
"""


class ReconcileError(Exception):
    """Base class for errors raised by a reconciliation step."""

    reason: str = "ReconcileFailed"
    retryable: bool = True


class DependencyValidationError(ReconcileError):
    """An external credential bundle is missing or lacks a required key."""

    reason = "DependencyValidationFailed"

    def __init__(self, dependency: str, field: str | None, message: str) -> None:
        super().__init__(message)
        self.dependency = dependency
        self.field = field


class CredentialGenerationError(ReconcileError):
    """Generating or deriving a credential failed."""

    reason = "SecretGenerationFailed"


class CredentialBundleCorruptError(CredentialGenerationError):
    """An existing credential bundle has no signing key, so its tokens cannot be healed."""

    retryable = False


class BootstrapRetriesExhaustedError(ReconcileError):
    """The database bootstrap job failed more often than its backoff limit allows."""

    reason = "DatabaseInitFailed"
    retryable = False

    def __init__(self, job_name: str, failures: int | None, limit: int, message: str | None = None) -> None:
        super().__init__(
            message or f"database initialization job {job_name} failed after {failures} attempts (limit {limit})"
        )
        self.job_name = job_name
        self.failures = failures
        self.limit = limit


class ComponentBuildError(ReconcileError):
    """A component builder produced an invalid workload or endpoint description."""

    reason = "ComponentBuildFailed"
    retryable = False

    def __init__(self, component: str, message: str) -> None:
        super().__init__(f"failed to build {component}: {message}")
        self.component = component


class InvalidPhaseTransitionError(ReconcileError):
    """The state machine attempted a transition the phase table does not allow."""

    reason = "InvalidPhaseTransition"
    retryable = False

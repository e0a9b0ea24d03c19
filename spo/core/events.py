"""
Kubernetes Event recording for project lifecycle changes.

Events are informational: a failure to record one is logged and never fails a pass.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from spo.connectors.kubectl import KubectlConnectionError, KubectlConnector, KubectlExecutionError
from spo.core.config import settings
from spo.utils.kubernetes import API_GROUP, API_VERSION, KIND, MANAGED_BY, now_iso

logger = logging.getLogger(__name__)

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

REASON_PHASE_CHANGED = "PhaseChanged"
REASON_DEPENDENCIES_VALIDATED = "DependenciesValidated"
REASON_VALIDATION_FAILED = "ValidationFailed"
REASON_SECRETS_CREATED = "SecretsCreated"
REASON_SECRETS_FAILED = "SecretsFailed"
REASON_DATABASE_INITIALIZED = "DatabaseInitialized"
REASON_DATABASE_INIT_FAILED = "DatabaseInitFailed"
REASON_COMPONENTS_FAILED = "ComponentReconcileFailed"
REASON_RECONCILIATION_COMPLETE = "ReconciliationComplete"
REASON_TERMINATING = "Terminating"


@dataclass
class PendingEvent:
    event_type: str
    reason: str
    message: str


class EventRecorder:
    """Creates core/v1 Events pointing at a project."""

    def __init__(self, kubectl_connector: KubectlConnector, enabled: bool | None = None):
        self.kubectl_connector = kubectl_connector
        self.enabled = settings.ENABLE_EVENTS if enabled is None else enabled

    def _build_event(self, name: str, namespace: str, uid: str, event: PendingEvent) -> dict[str, Any]:
        timestamp = now_iso()
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{name}.{time.time_ns():x}",
                "namespace": namespace,
            },
            "involvedObject": {
                "apiVersion": f"{API_GROUP}/{API_VERSION}",
                "kind": KIND,
                "name": name,
                "namespace": namespace,
                "uid": uid,
            },
            "type": event.event_type,
            "reason": event.reason,
            "message": event.message,
            "source": {"component": MANAGED_BY},
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
        }

    async def record(self, name: str, namespace: str, uid: str, event: PendingEvent) -> None:
        if not self.enabled:
            return

        try:
            await self.kubectl_connector.create_object(self._build_event(name, namespace, uid, event))
        except (KubectlExecutionError, KubectlConnectionError) as e:
            logger.warning(f"Failed to record event {event.reason} for {namespace}/{name}: {e}")

    async def record_all(self, name: str, namespace: str, uid: str, events: list[PendingEvent]) -> None:
        for event in events:
            await self.record(name, namespace, uid, event)

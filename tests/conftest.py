"""
Shared fixtures: an in-memory cluster standing in for the kubectl connector.

The fake keeps objects keyed by kind, namespace and name and enforces the same
resourceVersion rules the API server does, so conflict handling can be tested without a
cluster.
"""

import base64
import copy
import uuid
from typing import Any

import pytest

from spo.connectors.kubectl import (
    KubectlAlreadyExistsError,
    KubectlConflictError,
    KubectlNotFoundError,
    decode_secret_data,
    encode_secret_data,
)
from spo.utils.kubernetes import API_GROUP, API_VERSION, KIND, RESOURCE

RESOURCE_KINDS = {
    RESOURCE: KIND,
    "secret": "Secret",
    "configmap": "ConfigMap",
    "service": "Service",
    "deployment": "Deployment",
    "deployments.apps": "Deployment",
    "job": "Job",
    "jobs.batch": "Job",
    "ingresses.networking.k8s.io": "Ingress",
}

# Kinds whose status is only writable through the status subresource
STATUS_SUBRESOURCE_KINDS = {KIND, "Deployment", "Job"}


class FakeCluster:
    """In-memory replacement for KubectlConnector used by manager and reconciler tests."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.events: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str, str]] = []
        self._version = 0
        self._failures: dict[tuple[str, str], list] = {}

    # helpers for tests

    def fail(self, operation: str, kind: str, error: Exception, times: int | None = 1) -> None:
        """Make the next ``times`` calls of an operation on a kind raise ``error``; None means always."""
        self._failures[(operation, kind)] = [error, times]

    def _maybe_fail(self, operation: str, kind: str) -> None:
        entry = self._failures.get((operation, kind))
        if entry is None:
            return
        error, times = entry
        if times is not None:
            if times <= 1:
                del self._failures[(operation, kind)]
            else:
                entry[1] = times - 1
        raise error

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def get(self, kind: str, name: str, namespace: str = "default") -> dict[str, Any] | None:
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def kinds(self, kind: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(obj) for (k, _, _), obj in self.objects.items() if k == kind]

    def set_status(self, kind: str, name: str, status: dict[str, Any], namespace: str = "default") -> None:
        obj = self.objects[(kind, namespace, name)]
        obj["status"] = copy.deepcopy(status)
        obj["metadata"]["resourceVersion"] = self._next_version()

    def mark_deleted(self, kind: str, name: str, namespace: str = "default") -> None:
        obj = self.objects[(kind, namespace, name)]
        obj["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"
        obj["metadata"]["resourceVersion"] = self._next_version()

    def update_spec(self, kind: str, name: str, spec: dict[str, Any], namespace: str = "default") -> None:
        obj = self.objects[(kind, namespace, name)]
        obj["spec"] = copy.deepcopy(spec)
        obj["metadata"]["generation"] = obj["metadata"].get("generation", 1) + 1
        obj["metadata"]["resourceVersion"] = self._next_version()

    def add_secret(self, name: str, data: dict[str, str], namespace: str = "default") -> None:
        self.objects[("Secret", namespace, name)] = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": name, "namespace": namespace, "resourceVersion": self._next_version()},
            "data": encode_secret_data(data),
        }

    def add_raw_secret(self, name: str, data: dict[str, bytes], namespace: str = "default") -> None:
        """Store a Secret whose values are arbitrary bytes."""
        self.add_secret(name, {}, namespace)
        self.objects[("Secret", namespace, name)]["data"] = {
            key: base64.b64encode(value).decode("ascii") for key, value in data.items()
        }

    def secret_data(self, name: str, namespace: str = "default") -> dict[str, str] | None:
        secret = self.objects.get(("Secret", namespace, name))
        return decode_secret_data(secret) if secret is not None else None

    def add_project(self, name: str, spec: dict[str, Any], namespace: str = "default") -> dict[str, Any]:
        obj = {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": KIND,
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": str(uuid.uuid4()),
                "generation": 1,
                "resourceVersion": self._next_version(),
            },
            "spec": copy.deepcopy(spec),
        }
        self.objects[(KIND, namespace, name)] = obj
        return copy.deepcopy(obj)

    # connector surface

    async def wait_for_connection(self) -> None:
        return None

    async def get_object(self, kind: str, name: str, namespace: str | None = None) -> dict[str, Any] | None:
        kind = RESOURCE_KINDS.get(kind, kind)
        self.calls.append(("get", kind, name))
        self._maybe_fail("get", kind)
        return self.get(kind, name, namespace or "default")

    async def list_objects(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        kind = RESOURCE_KINDS.get(kind, kind)
        self._maybe_fail("list", kind)
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in self.objects.items()
            if k == kind and (namespace is None or ns == namespace)
        ]

    async def get_secret(self, secret_name: str, namespace: str, errors: str = "strict") -> dict[str, str] | None:
        self._maybe_fail("get", "Secret")
        secret = self.objects.get(("Secret", namespace, secret_name))
        return decode_secret_data(secret, errors=errors) if secret is not None else None

    async def create_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        kind = manifest["kind"]
        metadata = manifest["metadata"]
        self.calls.append(("create", kind, metadata["name"]))
        self._maybe_fail("create", kind)

        if kind == "Event":
            self.events.append(copy.deepcopy(manifest))
            return copy.deepcopy(manifest)

        key = (kind, metadata.get("namespace", "default"), metadata["name"])
        if key in self.objects:
            raise KubectlAlreadyExistsError(f'{kind} "{metadata["name"]}" already exists')

        obj = copy.deepcopy(manifest)
        obj["metadata"]["resourceVersion"] = self._next_version()
        obj["metadata"].setdefault("uid", str(uuid.uuid4()))
        obj["metadata"].setdefault("generation", 1)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def _check_version(self, manifest: dict[str, Any]) -> tuple[tuple[str, str, str], dict[str, Any]]:
        kind = manifest["kind"]
        metadata = manifest["metadata"]
        key = (kind, metadata.get("namespace", "default"), metadata["name"])
        existing = self.objects.get(key)
        if existing is None:
            raise KubectlNotFoundError(f'{kind} "{metadata["name"]}" not found')
        version = metadata.get("resourceVersion")
        if version is not None and version != existing["metadata"]["resourceVersion"]:
            raise KubectlConflictError(
                f'Operation cannot be fulfilled on {kind} "{metadata["name"]}": the object has been modified'
            )
        return key, existing

    async def replace_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        kind = manifest["kind"]
        self.calls.append(("replace", kind, manifest["metadata"]["name"]))
        self._maybe_fail("replace", kind)
        key, existing = self._check_version(manifest)

        obj = copy.deepcopy(manifest)
        if kind in STATUS_SUBRESOURCE_KINDS:
            obj.pop("status", None)
            if "status" in existing:
                obj["status"] = copy.deepcopy(existing["status"])
        generation = existing["metadata"].get("generation", 1)
        if obj.get("spec") != existing.get("spec"):
            generation += 1
        obj["metadata"]["generation"] = generation
        obj["metadata"]["resourceVersion"] = self._next_version()

        if obj["metadata"].get("deletionTimestamp") and not obj["metadata"].get("finalizers"):
            del self.objects[key]
        else:
            self.objects[key] = obj
        return copy.deepcopy(obj)

    async def replace_status(self, manifest: dict[str, Any]) -> dict[str, Any]:
        kind = manifest["kind"]
        self.calls.append(("replace_status", kind, manifest["metadata"]["name"]))
        self._maybe_fail("replace_status", kind)
        key, existing = self._check_version(manifest)

        obj = copy.deepcopy(existing)
        obj["status"] = copy.deepcopy(manifest.get("status", {}))
        obj["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = obj
        return copy.deepcopy(obj)

    async def delete_resource(self, resource_type: str, resource_name: str, namespace: str | None = None) -> bool:
        kind = RESOURCE_KINDS.get(resource_type, resource_type)
        self.calls.append(("delete", kind, resource_name))
        self.objects.pop((kind, namespace or "default", resource_name), None)
        return True


DATABASE_SECRET = {
    "host": "db.example.internal",
    "port": "5432",
    "database": "acme",
    "username": "acme",
    "password": "s3cret",
}

STORAGE_SECRET = {
    "endpoint": "https://s3.example.internal",
    "region": "eu-west-1",
    "bucket": "acme",
    "accessKeyId": "AKIA123",
    "secretAccessKey": "abc123",
}


def project_spec(**overrides: Any) -> dict[str, Any]:
    spec = {
        "projectId": "acme",
        "database": {"secretRef": {"name": "acme-db"}},
        "storage": {"secretRef": {"name": "acme-s3"}},
    }
    spec.update(overrides)
    return spec


@pytest.fixture
def cluster() -> FakeCluster:
    """A fake cluster holding the external credential bundles of the ``acme`` project."""
    fake = FakeCluster()
    fake.add_secret("acme-db", DATABASE_SECRET)
    fake.add_secret("acme-s3", STORAGE_SECRET)
    return fake


@pytest.fixture
def acme(cluster: FakeCluster) -> dict[str, Any]:
    return cluster.add_project("acme", project_spec())


def mark_deployments_ready(cluster: FakeCluster) -> None:
    """Report every Deployment as fully rolled out."""
    for deployment in cluster.kinds("Deployment"):
        metadata = deployment["metadata"]
        replicas = deployment["spec"].get("replicas", 1)
        cluster.set_status(
            "Deployment",
            metadata["name"],
            {"replicas": replicas, "readyReplicas": replicas},
            metadata["namespace"],
        )

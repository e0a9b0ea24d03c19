"""
Tests for the SupabaseProject model and manifest helpers.
"""

import pytest
from pydantic import ValidationError

from spo.generation.manifests import ManifestGenerator
from spo.models.project import AuthConfig, ComponentConfig, Project, ProjectStatus
from spo.utils.kubernetes import FINALIZER, generate_labels, set_owner_reference
from spo.utils.naming import generate_config_map_name, generate_credentials_secret_name, generate_service_url
from tests.conftest import project_spec


def _obj(**spec_overrides):
    return {
        "apiVersion": "supabase.strrl.dev/v1alpha1",
        "kind": "SupabaseProject",
        "metadata": {"name": "acme", "namespace": "tenants", "uid": "uid-1", "generation": 2, "resourceVersion": "9"},
        "spec": project_spec(**spec_overrides),
    }


def test_parses_camel_case_spec():
    project = Project.from_k8s(
        _obj(database={"secretRef": {"name": "acme-db"}, "sslMode": "disable"}, storageApi={"replicas": 2})
    )
    assert project.name == "acme"
    assert project.namespace == "tenants"
    assert project.metadata.resource_version == "9"
    assert project.spec.database.ssl_mode == "disable"
    assert project.spec.component_config("storageApi").replicas == 2


def test_component_config_defaults():
    spec = Project.from_k8s(_obj()).spec
    assert isinstance(spec.component_config("kong"), ComponentConfig)
    assert isinstance(spec.component_config("auth"), AuthConfig)
    assert spec.component_config("kong").replicas is None


def test_invalid_replicas_rejected():
    with pytest.raises(ValidationError):
        Project.from_k8s(_obj(kong={"replicas": 11}))


def test_missing_database_rejected():
    obj = _obj()
    del obj["spec"]["database"]
    with pytest.raises(ValidationError):
        Project.from_k8s(obj)


def test_manifests_keep_raw_object():
    obj = _obj()
    obj["spec"]["unknownField"] = "kept"
    project = Project.from_k8s(obj)

    with_finalizer = project.manifest_with_finalizers([FINALIZER])
    assert with_finalizer["metadata"]["finalizers"] == [FINALIZER]
    assert with_finalizer["spec"]["unknownField"] == "kept"
    assert with_finalizer["metadata"]["resourceVersion"] == "9"
    assert "finalizers" not in obj["metadata"]

    with_status = project.manifest_with_status(ProjectStatus(phase="Running", observed_generation=2))
    assert with_status["status"]["phase"] == "Running"
    assert with_status["status"]["observedGeneration"] == 2


def test_deletion_detection():
    obj = _obj()
    obj["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"
    obj["metadata"]["finalizers"] = [FINALIZER]
    project = Project.from_k8s(obj)
    assert project.is_deleting
    assert project.has_finalizer(FINALIZER)


def test_names():
    assert generate_credentials_secret_name("acme") == "acme-jwt"
    assert generate_config_map_name("acme", "kong") == "acme-kong-config"
    assert generate_service_url("acme", "auth", "tenants", 9999) == "http://acme-auth.tenants.svc.cluster.local:9999"


def test_owner_reference_replaces_controller():
    manifest = {"metadata": {"ownerReferences": [{"name": "old", "controller": True}, {"name": "other"}]}}
    set_owner_reference(manifest, "acme", "uid-1")
    references = manifest["metadata"]["ownerReferences"]
    assert [ref["name"] for ref in references] == ["other", "acme"]
    assert references[1]["uid"] == "uid-1"


def test_labels():
    labels = generate_labels("acme", "kong")
    assert labels["app.kubernetes.io/instance"] == "acme"
    assert labels["app.kubernetes.io/managed-by"] == "supabase-operator"


def test_generator_renders_structured_values():
    manifest = ManifestGenerator().render_manifest(
        "configmap",
        {
            "name": "acme-test",
            "namespace": "tenants",
            "labels": generate_labels("acme", "test"),
            "data": {"script.sql": "SELECT 'a' <> 'b';\n", "run.sh": "#!/bin/sh\nset -e\n"},
        },
    )
    assert manifest["data"]["script.sql"] == "SELECT 'a' <> 'b';\n"
    assert manifest["metadata"]["labels"]["app.kubernetes.io/name"] == "test"


def test_generator_missing_template():
    with pytest.raises(RuntimeError):
        ManifestGenerator().render_manifest("does-not-exist", {})

"""
Helpers for metadata shared by every object the operator creates.
"""

from datetime import UTC, datetime
from typing import Any

API_GROUP = "supabase.strrl.dev"
API_VERSION = "v1alpha1"
KIND = "SupabaseProject"
PLURAL = "supabaseprojects"
RESOURCE = f"{PLURAL}.{API_GROUP}"
FINALIZER = f"{API_GROUP}/finalizer"

PART_OF = "supabase"
MANAGED_BY = "supabase-operator"


def now_iso() -> str:
    """Current UTC time in the RFC 3339 form the API server uses for timestamps."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_labels(project_name: str, component: str) -> dict[str, str]:
    """
    Standard labels for a project-owned object.

    Example:
        generate_labels("acme", "kong")["app.kubernetes.io/instance"] -> "acme"
    """
    return {
        "app.kubernetes.io/name": component,
        "app.kubernetes.io/instance": project_name,
        "app.kubernetes.io/component": component,
        "app.kubernetes.io/part-of": PART_OF,
        "app.kubernetes.io/managed-by": MANAGED_BY,
    }


def generate_selector_labels(project_name: str, component: str) -> dict[str, str]:
    """Subset of the standard labels that is stable enough to use as a pod selector."""
    return {
        "app.kubernetes.io/name": component,
        "app.kubernetes.io/instance": project_name,
    }


def generate_owner_reference(name: str, uid: str) -> dict[str, Any]:
    """Controller owner reference pointing at a project, so its objects are garbage-collected with it."""
    return {
        "apiVersion": f"{API_GROUP}/{API_VERSION}",
        "kind": KIND,
        "name": name,
        "uid": uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def set_owner_reference(manifest: dict[str, Any], name: str, uid: str) -> dict[str, Any]:
    """
    Make the project the controller owner of a manifest.

    Any existing controller reference is replaced; the manifest is modified in place and returned.
    """
    metadata = manifest.setdefault("metadata", {})
    references = [ref for ref in metadata.get("ownerReferences", []) if not ref.get("controller")]
    references.append(generate_owner_reference(name, uid))
    metadata["ownerReferences"] = references
    return manifest

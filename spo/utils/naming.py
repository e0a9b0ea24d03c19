"""
Centralized naming utilities for the resources owned by a project.

Every name is derived from the project name only, so the same project always maps to the
same set of objects and a pass can find what an earlier pass created.
"""

CREDENTIALS_SUFFIX = "jwt"
DB_INIT_SUFFIX = "db-init"


def generate_unique_name(project_name: str, component_name: str) -> str:
    """
    Generate the name of a resource belonging to one project component.

    Example:
        generate_unique_name("acme", "kong") -> "acme-kong"
    """
    return f"{project_name}-{component_name}"


def generate_credentials_secret_name(project_name: str) -> str:
    """
    Name of the Secret holding the project's signing key and derived tokens.

    Example:
        generate_credentials_secret_name("acme") -> "acme-jwt"
    """
    return generate_unique_name(project_name, CREDENTIALS_SUFFIX)


def generate_db_init_name(project_name: str) -> str:
    """Name shared by the bootstrap Job and the ConfigMap holding its scripts."""
    return generate_unique_name(project_name, DB_INIT_SUFFIX)


def generate_config_map_name(project_name: str, component_name: str) -> str:
    """
    Name of a component's configuration ConfigMap.

    Example:
        generate_config_map_name("acme", "kong") -> "acme-kong-config"
    """
    return f"{generate_unique_name(project_name, component_name)}-config"


def generate_service_url(project_name: str, component_name: str, namespace: str, port: int) -> str:
    """
    In-cluster URL of a component's Service.

    Example:
        generate_service_url("acme", "auth", "default", 9999) -> "http://acme-auth.default.svc.cluster.local:9999"
    """
    return f"http://{generate_unique_name(project_name, component_name)}.{namespace}.svc.cluster.local:{port}"

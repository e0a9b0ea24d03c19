"""
Environment shared by the components that talk to the project database.
"""

from typing import Any

from spo.components.builder import secret_env, value_env
from spo.models.project import Project

DB_SECRET_KEYS = {
    "HOST": "host",
    "PORT": "port",
    "NAME": "database",
    "USER": "username",
    "PASSWORD": "password",
}


def database_env(project: Project, prefix: str = "DB_", include_user: bool = True) -> list[dict[str, Any]]:
    """
    Connection settings read from the database bundle, plus the SSL mode from the spec.

    Example:
        database_env(project, "PG_META_DB_") -> [PG_META_DB_HOST, PG_META_DB_PORT, ...]
    """
    secret_name = project.spec.database.secret_ref.name
    env = [
        secret_env(f"{prefix}{suffix}", secret_name, key)
        for suffix, key in DB_SECRET_KEYS.items()
        if include_user or suffix != "USER"
    ]
    env.append(value_env(f"{prefix}SSL_MODE", project.spec.database.ssl_mode))
    return env
